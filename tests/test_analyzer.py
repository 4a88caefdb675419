"""Tests for the content analyzer, manifest parsers and README parsing."""

from __future__ import annotations

import json

import pytest
from conftest import MCP_PACKAGE_JSON, MCP_README

from mcp_catalog.entities.analysis import AnalysisProfile, Capability
from mcp_catalog.entities.repository import Repository, StructureEntry
from mcp_catalog.errors import ParseFailureError
from mcp_catalog.nodes.analysis.analyzer import ContentAnalyzer
from mcp_catalog.nodes.analysis.manifests import (
    GoModParser,
    PackageJsonParser,
    PyprojectParser,
    RequirementsParser,
    SetupPyParser,
    requirement_name,
)
from mcp_catalog.nodes.analysis.readme import parse_readme


def _repo(full_name: str = "acme/weather-mcp-server", **fields: object) -> Repository:
    owner, name = full_name.split("/")
    return Repository.model_validate({"full_name": full_name, "owner": owner, "name": name, **fields})


class TestManifestParsers:
    """Per-ecosystem manifest parsing."""

    def test_package_json(self) -> None:
        """Dependencies, bin and scripts are extracted."""
        info = PackageJsonParser().parse(json.dumps(MCP_PACKAGE_JSON))
        assert info.name == "weather-mcp-server"
        assert info.dependencies == ["@modelcontextprotocol/sdk", "zod"]
        assert info.dev_dependencies == ["typescript"]
        assert info.entry_points == ["dist/index.js"]
        assert info.has_executable is True

    def test_package_json_invalid(self) -> None:
        """Malformed JSON raises ParseFailureError."""
        with pytest.raises(ParseFailureError):
            PackageJsonParser().parse("{not json")

    def test_pyproject_pep621(self) -> None:
        """PEP 621 tables, including optional dependencies and scripts."""
        content = """
[project]
name = "files-mcp"
version = "0.3.0"
description = "MCP server for local files"
dependencies = ["mcp>=1.2", "httpx[http2]~=0.27"]

[project.optional-dependencies]
test = ["pytest>=8"]

[project.scripts]
files-mcp = "files_mcp.server:main"
"""
        info = PyprojectParser().parse(content)
        assert info.name == "files-mcp"
        assert info.dependencies == ["mcp", "httpx"]
        assert info.dev_dependencies == ["pytest"]
        assert info.entry_points == ["files_mcp.server:main"]
        assert info.has_executable is True

    def test_pyproject_poetry(self) -> None:
        """Poetry tables are used when there is no [project] table."""
        content = """
[tool.poetry]
name = "legacy-mcp"
version = "1.0.0"

[tool.poetry.dependencies]
python = "^3.11"
mcp = "^1.0"
"""
        info = PyprojectParser().parse(content)
        assert info.name == "legacy-mcp"
        assert info.dependencies == ["mcp"]

    def test_setup_py(self) -> None:
        """setup() keyword arguments are read statically."""
        content = """
from setuptools import setup
setup(
    name="old-mcp",
    version="0.1",
    install_requires=["mcp>=1.0", "requests"],
    entry_points={"console_scripts": ["old-mcp=old_mcp:main"]},
)
"""
        info = SetupPyParser().parse(content)
        assert info.name == "old-mcp"
        assert info.dependencies == ["mcp", "requests"]
        assert info.has_executable is True

    def test_go_mod(self) -> None:
        """Module path and required modules."""
        content = "module github.com/acme/go-mcp\n\nrequire (\n\tgithub.com/mark3labs/mcp-go v0.8.0\n)\n"
        info = GoModParser().parse(content)
        assert info.name == "github.com/acme/go-mcp"
        assert info.dependencies == ["github.com/mark3labs/mcp-go"]

    def test_requirements(self) -> None:
        """Comments, options and version specifiers are dropped."""
        info = RequirementsParser().parse("mcp>=1.0  # sdk\n-r base.txt\n\nuvicorn[standard]==0.30\n")
        assert info.dependencies == ["mcp", "uvicorn"]

    @pytest.mark.parametrize(
        ("spec", "expected"),
        [("Django>=4", "django"), ("pkg[extra]; python_version<'3.12'", "pkg"), ("  ", "")],
    )
    def test_requirement_name(self, spec: str, expected: str) -> None:
        """Requirement names are normalized to lower case."""
        assert requirement_name(spec) == expected


class TestReadme:
    """README parsing."""

    def test_front_matter_and_headings(self) -> None:
        """Front matter is split off and fenced headings are ignored."""
        doc = parse_readme("---\ntitle: Demo\n---\n# MCP Server for files\n\n```\n# not a heading\n```\n")
        assert doc.metadata == {"title": "Demo"}
        assert [h.title for h in doc.headings] == ["MCP Server for files"]
        assert doc.code_blocks == ["# not a heading"]

    def test_plain_readme(self) -> None:
        """A README without front matter keeps its whole body."""
        doc = parse_readme("## Usage\nRun it.")
        assert doc.metadata == {}
        assert doc.headings[0].level == 2
        assert "run it." in doc.text


class TestContentAnalyzer:
    """End-to-end profile extraction."""

    def test_mcp_server_profile(self) -> None:
        """An npm MCP server yields a rich profile and a high seed."""
        files = {"package.json": json.dumps(MCP_PACKAGE_JSON), "README.md": MCP_README}
        structure = [StructureEntry(name=n) for n in ("package.json", "README.md", "tests")]

        profile = ContentAnalyzer().analyze(_repo(language="TypeScript"), files, structure)

        assert profile.package is not None and profile.package.name == "weather-mcp-server"
        assert profile.language == "typescript"
        assert profile.installation_method == "npm"
        assert "@modelcontextprotocol/sdk" in profile.dependencies
        assert "dependency: @modelcontextprotocol/sdk" in profile.indicators
        assert "readme heading: Weather MCP Server" in profile.indicators
        assert profile.documentation.has_readme
        assert profile.documentation.has_installation
        assert profile.documentation.has_tests
        assert Capability.TOOLS in profile.capabilities
        assert profile.server_type == "ai"
        assert profile.seed_confidence >= 70
        assert profile.seed_confidence <= 100

    def test_invalid_manifest_is_a_warning(self) -> None:
        """A broken manifest is recorded and analysis continues."""
        profile = ContentAnalyzer().analyze(
            _repo(language="JavaScript"), {"package.json": "{oops", "README.md": "# Tool\n"}
        )
        assert profile.package is None
        assert any("package.json" in w for w in profile.parse_warnings)
        assert profile.language == "javascript"
        assert profile.documentation.has_readme

    def test_requirements_only(self) -> None:
        """requirements.txt contributes dependencies and a language, not a package."""
        profile = ContentAnalyzer().analyze(_repo("acme/py-mcp"), {"requirements.txt": "mcp>=1.0\nhttpx\n"})
        assert profile.package is None
        assert profile.language == "python"
        assert profile.dependencies == ["mcp", "httpx"]
        assert "dependency: mcp" in profile.indicators

    def test_structure_signals(self) -> None:
        """Listing entries flag relevant files, docs and tests."""
        structure = [
            StructureEntry(name="server.py"),
            StructureEntry(name="docs", type="dir"),
            StructureEntry(name="tests", type="dir"),
        ]
        profile = ContentAnalyzer().analyze(_repo("acme/plain"), {}, structure)
        assert profile.mcp_relevant_files == ["server.py"]
        assert profile.documentation.has_docs
        assert profile.documentation.has_tests
        assert "file: server.py" in profile.indicators

    def test_entry_file_patterns(self) -> None:
        """Server patterns in entry files add indicators."""
        profile = ContentAnalyzer().analyze(
            _repo("acme/entry"), {"main.py": "from mcp.server import Server\nserver = Server('x')\n"}
        )
        assert "main.py" in profile.analyzed_files
        assert "main.py: mcp.*server" in profile.indicators
        assert "main.py" in profile.file_excerpts

    def test_empty_repository(self) -> None:
        """No files means no signals and a zero seed."""
        profile = ContentAnalyzer().analyze(_repo("acme/empty"), {})
        assert profile.seed_confidence == 0
        assert profile.language == "unknown"
        assert profile.server_type == "general"

    def test_summarize(self) -> None:
        """Summaries count languages and seed bands."""
        profiles = [
            AnalysisProfile(full_name="a/1", language="python", seed_confidence=80),
            AnalysisProfile(full_name="a/2", language="python", seed_confidence=45),
            AnalysisProfile(full_name="a/3", language="go", seed_confidence=0),
        ]
        summary = ContentAnalyzer.summarize(profiles)
        assert summary.total == 3
        assert summary.languages == {"python": 2, "go": 1}
        assert summary.seed_bands == {"high": 1, "medium": 1, "low": 0, "none": 1}
        assert summary.average_seed == round(125 / 3, 2)

"""Manifest parsers, one per ecosystem, all producing :class:`PackageInfo`."""

from __future__ import annotations

import json
import logging
import re
import tomllib
from typing import Any, Protocol, runtime_checkable

from mcp_catalog.entities.analysis import PackageInfo
from mcp_catalog.errors import ParseFailureError

logger = logging.getLogger(__name__)

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*(?:/[A-Za-z0-9._-]+)?)")


def requirement_name(spec: str) -> str:
    """Strip version specifiers, extras and markers from a requirement string."""
    match = _REQUIREMENT_NAME.match(spec)
    return match.group(1).lower() if match else ""


@runtime_checkable
class ManifestParser(Protocol):
    """Protocol for ecosystem manifest parsers."""

    file_name: str
    ecosystem: str
    language: str

    def parse(self, content: str) -> PackageInfo:
        """Parse manifest text. Raises ParseFailureError on malformed input."""
        ...


class PackageJsonParser:
    file_name = "package.json"
    ecosystem = "npm"
    language = "javascript"

    def parse(self, content: str) -> PackageInfo:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            msg = f"package.json is not valid JSON: {exc}"
            raise ParseFailureError(msg) from exc
        if not isinstance(data, dict):
            msg = "package.json root is not an object"
            raise ParseFailureError(msg)

        bin_field = data.get("bin") or {}
        if isinstance(bin_field, str):
            bin_field = {data.get("name") or "bin": bin_field}
        scripts = {str(k): str(v) for k, v in (data.get("scripts") or {}).items()}
        entry_points = [str(v) for v in bin_field.values()]
        if data.get("main"):
            entry_points.append(str(data["main"]))

        return PackageInfo(
            ecosystem=self.ecosystem,
            source_file=self.file_name,
            name=str(data.get("name") or ""),
            version=str(data.get("version") or ""),
            description=str(data.get("description") or ""),
            dependencies=sorted(data.get("dependencies") or {}),
            dev_dependencies=sorted(data.get("devDependencies") or {}),
            keywords=[str(k) for k in data.get("keywords") or []],
            scripts=scripts,
            entry_points=entry_points,
            has_executable=bool(bin_field) or "start" in scripts,
        )


def _load_toml(content: str, file_name: str) -> dict[str, Any]:
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        msg = f"{file_name} is not valid TOML: {exc}"
        raise ParseFailureError(msg) from exc


class PyprojectParser:
    """PEP 621 ``[project]`` tables, with a Poetry fallback."""

    file_name = "pyproject.toml"
    ecosystem = "pypi"
    language = "python"

    def parse(self, content: str) -> PackageInfo:
        data = _load_toml(content, self.file_name)
        project = data.get("project") or {}
        poetry = (data.get("tool") or {}).get("poetry") or {}

        if project:
            deps = [requirement_name(d) for d in project.get("dependencies") or []]
            dev = [
                requirement_name(d)
                for group in (project.get("optional-dependencies") or {}).values()
                for d in group
            ]
            scripts = dict(project.get("scripts") or {})
            scripts.update(project.get("gui-scripts") or {})
            name, version = project.get("name", ""), project.get("version", "")
            description, keywords = project.get("description", ""), project.get("keywords") or []
        else:
            deps = [d.lower() for d in poetry.get("dependencies") or {} if d.lower() != "python"]
            dev = [d.lower() for d in (poetry.get("dev-dependencies") or {})]
            scripts = dict(poetry.get("scripts") or {})
            name, version = poetry.get("name", ""), poetry.get("version", "")
            description, keywords = poetry.get("description", ""), poetry.get("keywords") or []

        return PackageInfo(
            ecosystem=self.ecosystem,
            source_file=self.file_name,
            name=str(name),
            version=str(version),
            description=str(description),
            dependencies=[d for d in deps if d],
            dev_dependencies=[d for d in dev if d],
            keywords=[str(k) for k in keywords],
            scripts={str(k): str(v) for k, v in scripts.items()},
            entry_points=[str(v) for v in scripts.values()],
            has_executable=bool(scripts),
        )


class SetupPyParser:
    """Best-effort static read of ``setup()`` keyword arguments."""

    file_name = "setup.py"
    ecosystem = "pypi"
    language = "python"

    _STRING_ARG = r"""\b{key}\s*=\s*['"]([^'"]*)['"]"""
    _LIST_ARG = r"\b{key}\s*=\s*\[([^\]]*)\]"

    def _string(self, content: str, key: str) -> str:
        match = re.search(self._STRING_ARG.format(key=key), content)
        return match.group(1) if match else ""

    def _list(self, content: str, key: str) -> list[str]:
        match = re.search(self._LIST_ARG.format(key=key), content, re.DOTALL)
        if not match:
            return []
        return re.findall(r"""['"]([^'"]+)['"]""", match.group(1))

    def parse(self, content: str) -> PackageInfo:
        if "setup(" not in content and "setuptools" not in content:
            msg = "setup.py has no setup() call"
            raise ParseFailureError(msg)
        console_scripts = self._list(content, "console_scripts") or self._list(content, "scripts")
        entry_points = [s.split("=", 1)[-1].strip() for s in console_scripts]
        return PackageInfo(
            ecosystem=self.ecosystem,
            source_file=self.file_name,
            name=self._string(content, "name"),
            version=self._string(content, "version"),
            description=self._string(content, "description"),
            dependencies=[n for n in (requirement_name(d) for d in self._list(content, "install_requires")) if n],
            keywords=self._list(content, "keywords"),
            entry_points=entry_points,
            has_executable=bool(console_scripts) or "entry_points" in content,
        )


class CargoParser:
    file_name = "Cargo.toml"
    ecosystem = "crates"
    language = "rust"

    def parse(self, content: str) -> PackageInfo:
        data = _load_toml(content, self.file_name)
        package = data.get("package") or {}
        bins = data.get("bin") or []
        return PackageInfo(
            ecosystem=self.ecosystem,
            source_file=self.file_name,
            name=str(package.get("name") or ""),
            version=str(package.get("version") or ""),
            description=str(package.get("description") or ""),
            dependencies=sorted(data.get("dependencies") or {}),
            dev_dependencies=sorted(data.get("dev-dependencies") or {}),
            keywords=[str(k) for k in package.get("keywords") or []],
            entry_points=[str(b.get("path") or b.get("name")) for b in bins if isinstance(b, dict)],
            has_executable=bool(bins),
        )


class GoModParser:
    file_name = "go.mod"
    ecosystem = "go"
    language = "go"

    def parse(self, content: str) -> PackageInfo:
        module = re.search(r"^\s*module\s+(\S+)", content, re.MULTILINE)
        if not module:
            msg = "go.mod has no module directive"
            raise ParseFailureError(msg)

        deps: list[str] = []
        in_block = False
        for raw in content.splitlines():
            line = raw.split("//", 1)[0].strip()
            if line.startswith("require ("):
                in_block = True
                continue
            if in_block and line == ")":
                in_block = False
                continue
            if in_block and line:
                deps.append(line.split()[0])
            elif line.startswith("require "):
                deps.append(line.split()[1])

        return PackageInfo(
            ecosystem=self.ecosystem,
            source_file=self.file_name,
            name=module.group(1),
            dependencies=deps,
        )


class RequirementsParser:
    file_name = "requirements.txt"
    ecosystem = "pypi"
    language = "python"

    def parse(self, content: str) -> PackageInfo:
        deps = []
        for raw in content.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line or line.startswith("-"):
                continue
            name = requirement_name(line)
            if name:
                deps.append(name)
        return PackageInfo(ecosystem=self.ecosystem, source_file=self.file_name, dependencies=deps)


def default_parsers() -> list[ManifestParser]:
    """Parsers in primary-manifest priority order."""
    return [
        PackageJsonParser(),
        PyprojectParser(),
        SetupPyParser(),
        CargoParser(),
        GoModParser(),
        RequirementsParser(),
    ]

"""Content Analyzer: fetched files -> normalized :class:`AnalysisProfile`.

The analyzer only extracts. It seeds a confidence accumulator that the
Detector finalizes and never assigns a final score itself.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import TYPE_CHECKING

from mcp_catalog.entities.analysis import (
    AnalysisProfile,
    AnalysisSummary,
    Capability,
    PackageInfo,
    RepositoryTraits,
)
from mcp_catalog.errors import ParseFailureError
from mcp_catalog.nodes.analysis.manifests import ManifestParser, default_parsers
from mcp_catalog.nodes.analysis.readme import parse_readme
from mcp_catalog.nodes.analysis.vocabulary import DEFAULT_VOCABULARY, SERVER_TYPE_PRIORITY, AnalyzerVocabulary

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from mcp_catalog.entities.repository import Repository, StructureEntry

logger = logging.getLogger(__name__)


class ContentAnalyzer:
    """Parses manifests, README, listing and entry points into a profile."""

    def __init__(
        self,
        vocabulary: AnalyzerVocabulary | None = None,
        parsers: list[ManifestParser] | None = None,
    ) -> None:
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY
        self.parsers = parsers if parsers is not None else default_parsers()
        self._capability_res = {
            cap: re.compile(pattern, re.IGNORECASE) for cap, pattern in self.vocabulary.capability_patterns.items()
        }
        self._server_res = [(p, re.compile(p, re.IGNORECASE)) for p in self.vocabulary.server_patterns]
        self._install_re = re.compile(self.vocabulary.install_pattern, re.IGNORECASE)
        self._example_re = re.compile(self.vocabulary.example_pattern, re.IGNORECASE)

    def analyze(
        self,
        repository: Repository,
        files: Mapping[str, str],
        structure: Iterable[StructureEntry] = (),
    ) -> AnalysisProfile:
        """Build the profile for one repository.

        Args:
            repository: Repository metadata.
            files: File name -> decoded content for the fetched file set.
            structure: Top-level directory listing.

        Returns:
            Profile with ``seed_confidence`` set.
        """
        structure = list(structure)
        profile = AnalysisProfile(
            full_name=repository.full_name,
            traits=RepositoryTraits(
                name=repository.name,
                description=repository.description,
                stars=repository.stars,
                size=repository.size,
                archived=repository.archived,
                fork=repository.fork,
                updated_at=repository.updated_at,
                top_level_files=[entry.name for entry in structure],
            ),
            language=(repository.language or "unknown").lower(),
        )
        seed = 0

        seed += self._analyze_manifests(profile, files)

        readme_name = next((name for name in files if name.lower().startswith("readme")), None)
        if readme_name:
            seed += self._analyze_readme(profile, files[readme_name])
            profile.analyzed_files.append(readme_name)

        seed += self._analyze_structure(profile, structure)
        seed += self._analyze_entry_files(profile, files)

        profile.seed_confidence = self._finalize_seed(profile, seed)
        profile.installation_method = self.vocabulary.install_methods.get(profile.language, "unknown")
        profile.server_type = self.server_type(profile.capabilities)
        return profile

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def _analyze_manifests(self, profile: AnalysisProfile, files: Mapping[str, str]) -> int:
        seed = 0
        for parser in self.parsers:
            content = files.get(parser.file_name)
            if content is None:
                continue
            try:
                info = parser.parse(content)
            except ParseFailureError as exc:
                logger.warning("%s: %s", profile.full_name, exc)
                profile.parse_warnings.append(str(exc))
                continue

            profile.manifests[parser.file_name] = info
            profile.analyzed_files.append(parser.file_name)
            serialized = info.model_dump_json().lower()
            profile.file_excerpts[parser.file_name] = serialized[: self.vocabulary.excerpt_chars]

            if profile.package is None and info.source_file != "requirements.txt":
                profile.package = info
                profile.language = self._manifest_language(parser, info)
            elif profile.package is None and profile.language == "unknown":
                profile.language = parser.language

            for dep in info.all_dependencies():
                if dep not in profile.dependencies:
                    profile.dependencies.append(dep)

            seed += self._score_manifest(profile, info, serialized)
            profile.framework = profile.framework or self._detect_framework(info)

        return seed

    @staticmethod
    def _manifest_language(parser: ManifestParser, info: PackageInfo) -> str:
        if parser.language == "javascript" and {"typescript", "@types/node"} & set(info.all_dependencies()):
            return "typescript"
        return parser.language

    def _detect_framework(self, info: PackageInfo) -> str | None:
        deps = set(info.all_dependencies())
        for framework in (*self.vocabulary.node_frameworks, *self.vocabulary.python_frameworks):
            if framework in deps:
                return framework
        return None

    def _score_manifest(self, profile: AnalysisProfile, info: PackageInfo, serialized: str) -> int:
        weights = self.vocabulary.weights
        seed = 0

        matched_deps = [
            dep
            for dep in info.all_dependencies()
            if any(term in dep.lower() for term in self.vocabulary.dependency_terms)
        ]
        if matched_deps:
            seed += weights.dependency_match
            for dep in matched_deps:
                profile.add_indicator(f"dependency: {dep}")

        name_desc = f"{info.name} {info.description}".lower()
        matched_keywords = [kw for kw in self.vocabulary.keywords if kw in name_desc]
        for kw in matched_keywords:
            seed += weights.name_description_keyword
            profile.add_indicator(f"{info.source_file} keyword: {kw}")

        mentioned = [kw for kw in self.vocabulary.keywords if kw in serialized and kw not in matched_keywords]
        if mentioned:
            seed += weights.generic_mention
            profile.add_indicator(f"{info.source_file} mention: {mentioned[0]}")

        if info.has_executable:
            seed += weights.executable
            profile.add_indicator(f"{info.source_file}: executable entry point")

        return seed

    # ------------------------------------------------------------------
    # README
    # ------------------------------------------------------------------

    def _analyze_readme(self, profile: AnalysisProfile, content: str) -> int:
        weights = self.vocabulary.weights
        doc = parse_readme(content)
        if doc.parse_warning:
            profile.parse_warnings.append(f"README: {doc.parse_warning}")
        text = doc.text
        seed = 0

        profile.documentation.has_readme = True
        for kw in self.vocabulary.keywords:
            if kw in text:
                seed += weights.readme_keyword
                profile.add_indicator(f"readme: {kw}")

        self._collect_capabilities(profile, text)

        if self._install_re.search(text):
            profile.documentation.has_installation = True
        if self._example_re.search(text):
            profile.documentation.has_examples = True
        if any(marker in text for marker in self.vocabulary.config_example_markers):
            profile.documentation.has_config_example = True

        for heading in doc.headings:
            title = heading.title.lower()
            if any(kw in title for kw in self.vocabulary.keywords):
                seed += weights.readme_heading
                profile.add_indicator(f"readme heading: {heading.title}")

        return seed

    def _collect_capabilities(self, profile: AnalysisProfile, text: str) -> None:
        for capability, pattern in self._capability_res.items():
            if pattern.search(text):
                profile.add_capability(capability)

    # ------------------------------------------------------------------
    # Listing and entry points
    # ------------------------------------------------------------------

    def _analyze_structure(self, profile: AnalysisProfile, structure: list[StructureEntry]) -> int:
        vocab = self.vocabulary
        seed = 0
        for entry in structure:
            name = entry.name.lower()
            if name in vocab.relevant_file_names or any(term in name for term in vocab.relevant_name_terms):
                seed += vocab.weights.structure_file
                profile.mcp_relevant_files.append(entry.name)
                profile.add_indicator(f"file: {entry.name}")
            if name in vocab.docs_dirs:
                profile.documentation.has_docs = True
            if name in vocab.example_dirs:
                profile.documentation.has_examples = True
            if name in vocab.test_names or name.startswith("test_"):
                profile.documentation.has_tests = True
            if "example" in name and name.endswith((".json", ".yaml", ".yml", ".toml")):
                profile.documentation.has_config_example = True
        return seed

    def _analyze_entry_files(self, profile: AnalysisProfile, files: Mapping[str, str]) -> int:
        seed = 0
        for file_name in self.vocabulary.entry_files:
            content = files.get(file_name)
            if content is None:
                continue
            profile.analyzed_files.append(file_name)
            text = content.lower()
            profile.file_excerpts[file_name] = text[: self.vocabulary.excerpt_chars]
            for pattern, regex in self._server_res:
                if regex.search(text):
                    seed += self.vocabulary.weights.server_pattern
                    profile.add_indicator(f"{file_name}: {pattern}")
            self._collect_capabilities(profile, text)
        return seed

    def _finalize_seed(self, profile: AnalysisProfile, seed: int) -> int:
        weights = self.vocabulary.weights
        if len(profile.indicators) >= weights.indicator_bonus_min:
            seed += weights.indicator_bonus
        seed += len(profile.capabilities) * weights.per_capability
        if profile.documentation.has_readme and profile.documentation.has_installation:
            seed += weights.readme_with_install
        return max(0, min(seed, weights.max_seed))

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @staticmethod
    def server_type(capabilities: Iterable[Capability]) -> str:
        """Primary server type by fixed capability priority."""
        caps = set(capabilities)
        for capability, server_type in SERVER_TYPE_PRIORITY:
            if capability in caps:
                return server_type
        return "general"

    @staticmethod
    def summarize(profiles: Iterable[AnalysisProfile]) -> AnalysisSummary:
        """Aggregate languages, seed bands, capabilities and server types."""
        profiles = list(profiles)
        summary = AnalysisSummary(total=len(profiles))
        if not profiles:
            return summary

        languages: Counter[str] = Counter()
        capabilities: Counter[str] = Counter()
        server_types: Counter[str] = Counter()
        for profile in profiles:
            languages[profile.language] += 1
            server_types[profile.server_type] += 1
            capabilities.update(cap.value for cap in profile.capabilities)
            seed = profile.seed_confidence
            band = "high" if seed >= 70 else "medium" if seed >= 40 else "low" if seed > 0 else "none"
            summary.seed_bands[band] += 1

        summary.languages = dict(languages.most_common())
        summary.capabilities = dict(capabilities.most_common())
        summary.server_types = dict(server_types.most_common())
        summary.average_seed = round(sum(p.seed_confidence for p in profiles) / len(profiles), 2)
        return summary

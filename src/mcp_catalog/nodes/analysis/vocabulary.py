"""Keyword, capability and weight tables used by the Content Analyzer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from mcp_catalog.entities.analysis import Capability

DEFAULT_CAPABILITY_PATTERNS: dict[Capability, str] = {
    Capability.FILESYSTEM: r"\b(?:file|directory|path|read|write|list|delete|create)",
    Capability.DATABASE: r"\b(?:sql|database|db|query|table|insert|select|update)",
    Capability.API: r"\b(?:api|http|request|endpoint|rest|graphql|webhook)",
    Capability.AI: r"\b(?:ai|ml|model|openai|anthropic|llm|gpt|claude)",
    Capability.TOOLS: r"\b(?:tool|function|command|execute|run|script)",
    Capability.DATA: r"\b(?:json|csv|xml|yaml|parse|transform|convert)",
    Capability.WEB: r"\b(?:web|browser|scrape|html|dom|selenium|playwright)",
    Capability.GIT: r"\b(?:git|github|repository|commit|branch|pull|push)",
    Capability.TIME: r"\b(?:time|date|calendar|schedule|cron|timer)",
    Capability.MATH: r"\b(?:math|calculate|compute|formula|statistics)",
    Capability.SEARCH: r"\b(?:search|index|elasticsearch|solr|lucene)",
    Capability.MONITORING: r"\b(?:monitor|log|metric|alert|dashboard|observability)",
}

# First match wins.
SERVER_TYPE_PRIORITY: tuple[tuple[Capability, str], ...] = (
    (Capability.FILESYSTEM, "filesystem"),
    (Capability.DATABASE, "database"),
    (Capability.API, "api"),
    (Capability.AI, "ai"),
    (Capability.WEB, "web"),
    (Capability.TOOLS, "tools"),
)


class AnalyzerWeights(BaseModel):
    """Fixed per-match increments for the seed accumulator."""

    model_config = ConfigDict(frozen=True)

    dependency_match: int = 30
    name_description_keyword: int = 15
    generic_mention: int = 10
    executable: int = 10
    readme_keyword: int = 10
    readme_heading: int = 5
    structure_file: int = 10
    server_pattern: int = 20
    indicator_bonus: int = 15
    indicator_bonus_min: int = 3
    per_capability: int = 5
    readme_with_install: int = 10
    max_seed: int = 100


class AnalyzerVocabulary(BaseModel):
    """Immutable vocabulary injected into the Content Analyzer."""

    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = (
        "mcp-server",
        "model-context-protocol",
        "claude-mcp",
        "anthropic-mcp",
        "claude-desktop",
        "claude_desktop_config",
        "context-protocol",
        "mcp server",
        "model context protocol",
        "anthropic claude",
    )
    dependency_terms: tuple[str, ...] = (
        "mcp",
        "modelcontextprotocol",
        "claude",
        "anthropic",
        "context-protocol",
    )
    capability_patterns: dict[Capability, str] = Field(default_factory=lambda: dict(DEFAULT_CAPABILITY_PATTERNS))
    server_patterns: tuple[str, ...] = (
        r"mcp.*server",
        r"server.*mcp",
        r"context.*protocol",
        r"claude.*server",
        r"anthropic.*mcp",
    )
    install_pattern: str = r"\b(?:install|setup)"
    example_pattern: str = r"\b(?:example|usage)"
    config_example_markers: tuple[str, ...] = ("claude_desktop_config", '"mcpservers"')
    relevant_file_names: tuple[str, ...] = ("server.js", "server.py", "claude_desktop_config.json")
    relevant_name_terms: tuple[str, ...] = ("mcp", "claude")
    docs_dirs: tuple[str, ...] = ("docs", "documentation")
    example_dirs: tuple[str, ...] = ("examples", "example")
    test_names: tuple[str, ...] = ("test", "tests", "__tests__", "spec", "pytest.ini", "jest.config.js")
    entry_files: tuple[str, ...] = ("server.js", "main.js", "index.js", "__main__.py", "main.py")
    node_frameworks: tuple[str, ...] = ("express", "fastify", "koa")
    python_frameworks: tuple[str, ...] = ("fastapi", "flask", "django")
    install_methods: dict[str, str] = Field(
        default_factory=lambda: {
            "javascript": "npm",
            "typescript": "npm",
            "python": "pip",
            "rust": "cargo",
            "go": "go install",
        }
    )
    excerpt_chars: int = 4000
    weights: AnalyzerWeights = Field(default_factory=AnalyzerWeights)


DEFAULT_VOCABULARY = AnalyzerVocabulary()

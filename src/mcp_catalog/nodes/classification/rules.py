"""Indicator tables for the Detector, injected as immutable configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class IndicatorRule(BaseModel):
    """A regex with a fixed weight (negative weights penalize)."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    weight: int
    description: str


class FileRule(BaseModel):
    """Patterns matched against one file's serialized content.

    With ``listing_only`` the rule fires on the file's mere presence in
    the top-level listing.
    """

    model_config = ConfigDict(frozen=True)

    file: str
    patterns: tuple[str, ...] = ()
    weight: int
    description: str
    listing_only: bool = False


class CharacteristicWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    server_executable: int = 20
    config_example: int = 15
    install_instructions: int = 10
    recent_activity: int = 5
    has_tests: int = 8
    archived: int = -25
    no_activity: int = -15
    fork: int = -5
    very_small: int = -10
    no_description: int = -5
    recent_days: int = 180
    inactive_days: int = 730


class EdgeCaseRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    monorepo: tuple[str, ...] = (r"packages.*mcp", r"services.*mcp", r"apps.*mcp", r"tools.*mcp")
    example: tuple[str, ...] = (r"example.*mcp", r"mcp.*example", r"sample.*mcp", r"demo.*mcp")
    documentation: tuple[str, ...] = (r"docs.*mcp", r"mcp.*docs", r"documentation")
    example_penalty: int = -20
    documentation_penalty: int = -30


class BoostRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    multiple_strong: int = 15
    multiple_strong_min: int = 2
    documented: int = 10
    no_positive_penalty: int = -20
    official_package: int = 25
    official_namespace: str = r"^@modelcontextprotocol/[\w.-]+$"


class DetectionRules(BaseModel):
    """Complete indicator configuration for :class:`MCPDetector`."""

    model_config = ConfigDict(frozen=True)

    strong: tuple[IndicatorRule, ...] = (
        IndicatorRule(pattern=r"mcp-server", weight=40, description='Contains "mcp-server"'),
        IndicatorRule(pattern=r"model.context.protocol", weight=35, description="References Model Context Protocol"),
        IndicatorRule(pattern=r"@modelcontextprotocol/", weight=45, description="Official MCP package dependency"),
        IndicatorRule(pattern=r"claude_desktop_config", weight=30, description="Claude Desktop configuration"),
        IndicatorRule(pattern=r"anthropic.*mcp", weight=25, description="Anthropic MCP reference"),
    )
    positive: tuple[IndicatorRule, ...] = (
        IndicatorRule(pattern=r"claude.*mcp", weight=20, description="Claude MCP reference"),
        IndicatorRule(pattern=r"mcp.*tool", weight=18, description="MCP tool reference"),
        IndicatorRule(pattern=r"context.*protocol.*server", weight=15, description="Context protocol server"),
        IndicatorRule(pattern=r"mcp.*client", weight=12, description="MCP client reference"),
        IndicatorRule(pattern=r"server.*mcp", weight=15, description="Server MCP reference"),
    )
    weak: tuple[IndicatorRule, ...] = (
        IndicatorRule(pattern=r"mcp", weight=5, description='Contains "mcp"'),
        IndicatorRule(pattern=r"claude", weight=3, description="References Claude"),
        IndicatorRule(pattern=r"anthropic", weight=4, description="References Anthropic"),
        IndicatorRule(pattern=r"context.*protocol", weight=8, description="Context protocol mention"),
    )
    weak_per_match: int = 3
    weak_cap: int = 15
    negative: tuple[IndicatorRule, ...] = (
        IndicatorRule(pattern=r"bitcoin", weight=-10, description="Cryptocurrency project"),
        IndicatorRule(pattern=r"mining", weight=-8, description="Mining related"),
        IndicatorRule(pattern=r"game", weight=-5, description="Game project"),
        IndicatorRule(pattern=r"website", weight=-3, description="Website project"),
        IndicatorRule(pattern=r"blog", weight=-5, description="Blog project"),
        IndicatorRule(pattern=r"tutorial", weight=-8, description="Tutorial project"),
        IndicatorRule(pattern=r"exercise", weight=-10, description="Exercise/learning project"),
        IndicatorRule(pattern=r"homework", weight=-15, description="Homework project"),
        IndicatorRule(pattern=r"test.*repo", weight=-20, description="Test repository"),
        IndicatorRule(pattern=r"^hello.world", weight=-15, description="Hello world project"),
        IndicatorRule(pattern=r"portfolio", weight=-8, description="Portfolio project"),
    )
    file_positive: tuple[FileRule, ...] = (
        FileRule(
            file="package.json",
            patterns=(r"@modelcontextprotocol", r"mcp.*server"),
            weight=25,
            description="package.json contains MCP patterns",
        ),
        FileRule(
            file="pyproject.toml", patterns=(r"mcp", r"claude"), weight=20, description="pyproject.toml contains MCP patterns"
        ),
        FileRule(file="Cargo.toml", patterns=(r"mcp", r"claude"), weight=20, description="Cargo.toml contains MCP patterns"),
        FileRule(
            file="server.js", patterns=(r"mcp", r"context.*protocol"), weight=15, description="server.js contains MCP patterns"
        ),
        FileRule(file="main.py", patterns=(r"mcp", r"server"), weight=12, description="main.py contains MCP patterns"),
    )
    file_negative: tuple[FileRule, ...] = (
        FileRule(
            file="package.json",
            patterns=(r"react.*app", r"vue.*app", r"next.*app"),
            weight=-10,
            description="package.json suggests a web app",
        ),
        FileRule(file="index.html", weight=-15, description="Static website entry page", listing_only=True),
        FileRule(
            file="requirements.txt",
            patterns=(r"django", r"flask"),
            weight=-5,
            description="requirements.txt uses a web framework",
        ),
    )
    characteristics: CharacteristicWeights = Field(default_factory=CharacteristicWeights)
    edge_cases: EdgeCaseRules = Field(default_factory=EdgeCaseRules)
    boosts: BoostRules = Field(default_factory=BoostRules)


DEFAULT_RULES = DetectionRules()

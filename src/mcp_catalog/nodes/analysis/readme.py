"""README parsing into a small navigable structure."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import frontmatter
import yaml

logger = logging.getLogger(__name__)

_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*$")


@dataclass
class Heading:
    level: int
    title: str


@dataclass
class ReadmeDocument:
    """README body with front matter split off and headings indexed."""

    body: str
    metadata: dict[str, Any] = field(default_factory=dict)
    headings: list[Heading] = field(default_factory=list)
    code_blocks: list[str] = field(default_factory=list)
    parse_warning: str | None = None

    @property
    def text(self) -> str:
        return self.body.lower()


def parse_readme(content: str) -> ReadmeDocument:
    """Split front matter off a README and collect headings and code blocks.

    Headings inside fenced code blocks are ignored. Malformed front matter
    falls back to the raw text.
    """
    warning = None
    try:
        post = frontmatter.loads(content)
        metadata, body = dict(post.metadata), post.content
    except (yaml.YAMLError, ValueError, TypeError) as exc:
        logger.warning("Failed to parse README front matter: %s", exc)
        metadata, body, warning = {}, content, str(exc)

    headings: list[Heading] = []
    code_blocks: list[str] = []
    current_block: list[str] | None = None
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("```"):
            if current_block is None:
                current_block = []
            else:
                code_blocks.append("\n".join(current_block))
                current_block = None
            continue
        if current_block is not None:
            current_block.append(line)
            continue
        match = _HEADING.match(stripped)
        if match:
            headings.append(Heading(level=len(match.group(1)), title=match.group(2).strip()))

    return ReadmeDocument(
        body=body,
        metadata=metadata,
        headings=headings,
        code_blocks=code_blocks,
        parse_warning=warning,
    )

"""Similarity measures used to match scanner records with directory servers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rapidfuzz import fuzz

if TYPE_CHECKING:
    from collections.abc import Iterable

# Weights of the four match signals; they sum to 1.
URL_WEIGHT = 0.4
NAME_WEIGHT = 0.3
DESCRIPTION_WEIGHT = 0.2
CAPABILITY_WEIGHT = 0.1

_TOKEN_SPLIT = re.compile(r"\W+")
_GITHUB_HOST = re.compile(r"github\.com[:/\\]")


@dataclass
class MatchSide:
    """The fields of one record that take part in matching."""

    name: str = ""
    description: str = ""
    url: str = ""
    capabilities: list[str] = field(default_factory=list)


def normalize_url(url: str | None) -> str:
    """Strip scheme, ``git@`` prefix and ``.git`` suffix, then lowercase.

    >>> normalize_url("git@github.com:Acme/Server.git")
    'github.com/acme/server'
    """
    if not url:
        return ""
    url = re.sub(r"^https?://", "", url.strip())
    url = re.sub(r"^git@", "", url)
    url = re.sub(r"\.git$", "", url)
    url = _GITHUB_HOST.sub("github.com/", url, count=1)
    return url.rstrip("/").lower()


def _tokens(text: str) -> set[str]:
    return {word for word in _TOKEN_SPLIT.split(text.lower()) if len(word) > 2}


def jaccard(first: str | None, second: str | None) -> float:
    """Word-set Jaccard index over lowercased tokens longer than two characters."""
    if not first or not second:
        return 0.0
    first, second = first.lower(), second.lower()
    if first == second:
        return 1.0
    words1, words2 = _tokens(first), _tokens(second)
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def capability_overlap(first: Iterable[str], second: Iterable[str], threshold: float = 80.0) -> float:
    """Share of capabilities in ``first`` with a fuzzy counterpart in ``second``.

    Two capability tags count as the same when their rapidfuzz ratio exceeds
    ``threshold``; the denominator is the exact union of both sets.
    """
    caps1 = [cap.lower() for cap in first]
    caps2 = [cap.lower() for cap in second]
    if not caps1 or not caps2:
        return 0.0
    matched = [cap for cap in caps1 if any(fuzz.ratio(cap, other) > threshold for other in caps2)]
    return len(matched) / len(set(caps1) | set(caps2))


def url_match(first: str | None, second: str | None) -> float:
    if not first or not second:
        return 0.0
    return 1.0 if normalize_url(first) == normalize_url(second) else 0.0


def match_score(scanner: MatchSide, directory: MatchSide, threshold: float = 80.0) -> float:
    """Weighted match score in [0, 1]."""
    score = (
        URL_WEIGHT * url_match(scanner.url, directory.url)
        + NAME_WEIGHT * jaccard(scanner.name, directory.name)
        + DESCRIPTION_WEIGHT * jaccard(scanner.description, directory.description)
        + CAPABILITY_WEIGHT * capability_overlap(scanner.capabilities, directory.capabilities, threshold)
    )
    return round(score, 4)


def match_reasons(scanner: MatchSide, directory: MatchSide, threshold: float = 80.0) -> list[str]:
    """Names of the signals that individually support a match."""
    reasons = []
    if url_match(scanner.url, directory.url) > 0.9:
        reasons.append("repository_url")
    if jaccard(scanner.name, directory.name) > 0.8:
        reasons.append("name_similarity")
    if jaccard(scanner.description, directory.description) > 0.7:
        reasons.append("description_similarity")
    if capability_overlap(scanner.capabilities, directory.capabilities, threshold) > 0.5:
        reasons.append("capabilities_overlap")
    return reasons

"""
Detection of unfilled placeholders in compiled text.

A document is complete when none of the markers below remain: ``{{name}}``
tokens, runs of three or more underscores, and bracketed sentinels such as
``[blank]`` or ``[TODO]`` (Italian equivalents included).
"""
import re
from typing import List

BRACE_PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")
UNDERSCORE_PLACEHOLDER_RE = re.compile(r"_{3,}")

#: Bracketed sentinels, matched case-insensitively.
BRACKET_SENTINELS = [
    "[vuoto]",
    "[blank]",
    "[da compilare]",
    "[TODO]",
]

BRACKET_SENTINEL_RES = [re.compile(re.escape(s), re.IGNORECASE) for s in BRACKET_SENTINELS]

PLACEHOLDER_PATTERNS = [BRACE_PLACEHOLDER_RE, UNDERSCORE_PLACEHOLDER_RE] + BRACKET_SENTINEL_RES


def contains_placeholders(text: str) -> bool:
    """True when `text` still has at least one unfilled placeholder."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in PLACEHOLDER_PATTERNS)


def count_placeholders(text: str) -> int:
    """Number of placeholder occurrences across all marker kinds."""
    if not text:
        return 0
    return sum(len(pattern.findall(text)) for pattern in PLACEHOLDER_PATTERNS)


def extract_placeholder_names(text: str) -> List[str]:
    """Inner names of ``{{...}}`` tokens, in order of appearance."""
    if not text:
        return []
    return [name.strip() for name in BRACE_PLACEHOLDER_RE.findall(text)]

"""Identifier case conversion between entity attributes and storage columns."""

import re
from typing import Literal

CaseConvention = Literal["snake", "camel", "pascal", "upper", "lower", "none"]

_WORD_BOUNDARY = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?=[A-Z][a-z]|\b|[0-9_]|$)|[A-Z]")


def _split_words(identifier: str) -> list[str]:
    """Split an identifier into lower-case words on separators and case changes."""
    words: list[str] = []
    for chunk in re.split(r"[_\-\s]+", identifier):
        if not chunk:
            continue
        if chunk.isupper() or chunk.islower() or chunk.isdigit():
            words.append(chunk.lower())
            continue
        words.extend(match.lower() for match in _WORD_BOUNDARY.findall(chunk))
    return words


def convert_case(identifier: str, convention: CaseConvention | str) -> str:
    """Convert an identifier to the given case convention.

    Args:
        identifier: ASCII identifier, e.g. "createdAt" or "created_at"
        convention: One of snake, camel, pascal, upper, lower, none

    Returns:
        The converted identifier. "none" returns it unchanged.

    Raises:
        ValueError: If the convention is unknown
    """
    if convention == "none" or not identifier:
        return identifier

    words = _split_words(identifier)
    if not words:
        return identifier

    if convention == "snake":
        return "_".join(words)
    if convention == "camel":
        return words[0] + "".join(word.capitalize() for word in words[1:])
    if convention == "pascal":
        return "".join(word.capitalize() for word in words)
    if convention == "upper":
        return "_".join(words).upper()
    if convention == "lower":
        return "_".join(words).lower()
    raise ValueError(f"Unknown case convention: {convention!r}")

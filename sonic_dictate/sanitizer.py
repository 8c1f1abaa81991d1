"""Cleanup of raw LLM output before it is typed into the focused application."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

THOUGHT_TAGS = ("thought", "thinking", "think")

# Closed blocks first, then anything left open runs to the end of the string
_CLOSED_THOUGHT_PATTERNS = [
    re.compile(rf"<{tag}>[\s\S]*?</{tag}>", re.IGNORECASE) for tag in THOUGHT_TAGS
]
_OPEN_THOUGHT_PATTERNS = [re.compile(rf"<{tag}>[\s\S]*$", re.IGNORECASE) for tag in THOUGHT_TAGS]

_PREAMBLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^\s*(here is the|here is a|here's the|here's a|this is the) "
        r"(precise |refined |corrected |translated )?(translation|result|text|version)\b[:\s]*",
        r"^\s*the (refined|corrected|translated) text is[:\s]*",
        r"^\s*(translation|result|revised text)\s*:\s*",
        r"^\s*sure!\s*",
        r"^\s*certainly!\s*",
        r"^\s*here you go:\s*",
        r"^\s*voici (la traduction|le texte corrigé|le résultat|le texte)\s*:\s*",
        r"^\s*bien sûr\s*!\s*",
        r"^\s*certainement\s*!\s*",
    )
]


def strip_thoughts(text: str) -> str:
    """Remove reasoning blocks, including an unterminated trailing one."""
    while True:
        before = text
        for pattern in _CLOSED_THOUGHT_PATTERNS:
            text = pattern.sub("", text)
        for pattern in _OPEN_THOUGHT_PATTERNS:
            text = pattern.sub("", text)
        # Removing a nested block can splice a new tag together
        if text == before:
            return text


def strip_preambles(text: str) -> str:
    """Remove conversational lead-ins such as "Sure!" from the start of text."""
    stripped = text.lstrip()
    # Repeat until stable so stacked lead-ins ("Sure! Here you go: ...") are
    # all removed and a second call is a no-op.
    while True:
        before = stripped
        for pattern in _PREAMBLE_PATTERNS:
            stripped = pattern.sub("", stripped, count=1)
        if stripped == before:
            return stripped


def sanitize(raw: str | None) -> str:
    """
    Turn raw model output into insertable text.

    Thought blocks are removed before preambles are stripped; the order
    matters because a model may open with a reasoning block followed by
    "Sure!".

    Args:
        raw: Text returned by a provider (may be None)

    Returns:
        Cleaned text, or "" for empty input
    """
    if not raw:
        return ""

    try:
        return strip_preambles(strip_thoughts(raw)).strip()
    except Exception as e:
        logger.warning(f"Sanitizing model output failed, returning it unchanged: {e}")
        return raw

"""Vocabulary correction: rewrite spoken terms into their preferred spelling."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path

from sonic_dictate.models import VocabularyMap

logger = logging.getLogger(__name__)

# Spoken -> corrected mapping stored next to the other app data
VOCABULARY_FILE = Path.home() / ".sonic_dictate/sonic_dictate_vocabulary.json"


def ordered_terms(vocabulary: Mapping[str, str]) -> list[tuple[str, str]]:
    """Return (spoken, corrected) pairs, longest spoken phrase first.

    ``sorted`` is stable, so keys of equal length keep their original order.
    """
    pairs = [
        (spoken.strip(), corrected)
        for spoken, corrected in vocabulary.items()
        if isinstance(spoken, str) and spoken.strip() and isinstance(corrected, str)
    ]
    return sorted(pairs, key=lambda pair: -len(pair[0]))


def _compile(spoken: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(spoken)}\b", re.IGNORECASE)


def correct(text: str, vocabulary: Mapping[str, str] | None) -> str:
    """
    Apply vocabulary corrections to ``text``.

    Each spoken term is matched case-insensitively on word boundaries and
    replaced by its corrected form. Longer terms are applied first so a phrase
    like "New York City" wins over "New York".

    Args:
        text: Transcribed text
        vocabulary: Mapping of spoken term to corrected term

    Returns:
        Corrected text, or ``text`` unchanged when there is nothing to apply or
        the correction fails for any reason.
    """
    if not text or not vocabulary:
        return text

    try:
        result = text
        for spoken, corrected in ordered_terms(vocabulary):
            # Callable replacement keeps backslashes in the corrected form literal
            result = _compile(spoken).sub(lambda _m, value=corrected: value, result)
        return result
    except Exception as e:
        logger.warning(f"Vocabulary correction failed, keeping original text: {e}")
        return text


def format_for_prompt(vocabulary: Mapping[str, str] | None) -> str:
    """Render the vocabulary as a block appended to the refinement system prompt."""
    pairs = ordered_terms(vocabulary or {})
    if not pairs:
        return ""

    lines = ["", "", "CRITICAL VOCABULARY:"]
    for spoken, corrected in pairs:
        lines.append(f'- Always use "{corrected}" instead of "{spoken}"')
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Persistence
# ----------------------------------------------------------------------
def load_vocabulary(path: Path | None = None) -> VocabularyMap:
    """Load the vocabulary map from disk.

    JSON objects are preferred, but "spoken => corrected" lines are accepted too.
    """
    path = path or VOCABULARY_FILE

    if not path.is_file():
        return {}

    try:
        content = path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        # OSError: File access errors
        # UnicodeDecodeError: Invalid UTF-8 encoding
        logger.error(f"Could not read saved vocabulary: {e}")
        return {}

    if not content:
        return {}

    try:
        data = json.loads(content)
        if isinstance(data, dict):
            return {
                str(k).strip(): str(v).strip()
                for k, v in data.items()
                if str(k).strip() and str(v).strip()
            }
    except json.JSONDecodeError:
        pass

    return parse_vocabulary_lines(content)


def save_vocabulary(vocabulary: Mapping[str, str], path: Path | None = None) -> bool:
    """Persist the vocabulary map as JSON. Returns True on success."""
    path = path or VOCABULARY_FILE

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(dict(vocabulary), indent=2, ensure_ascii=False)
        path.write_text(payload, encoding="utf-8")
        return True
    except (OSError, UnicodeEncodeError, TypeError, ValueError) as e:
        # OSError: File/directory write errors
        # UnicodeEncodeError: Invalid character encoding
        # TypeError / ValueError: Non-serializable content
        logger.error(f"Could not save vocabulary: {e}")
        return False


def parse_vocabulary_lines(text: str) -> VocabularyMap:
    """Parse simple `spoken => corrected` lines into a mapping."""
    mapping: VocabularyMap = {}
    for line in text.splitlines():
        cleaned = line.strip()
        if not cleaned or cleaned.startswith("#"):
            continue
        if "=>" in cleaned:
            spoken, corrected = cleaned.split("=>", 1)
        elif "=" in cleaned:
            spoken, corrected = cleaned.split("=", 1)
        else:
            continue
        spoken = spoken.strip()
        corrected = corrected.strip()
        if spoken and corrected:
            mapping[spoken] = corrected
    return mapping

"""
Text normalisation shared by the rule engine
"""

import unicodedata
from typing import Iterable, Optional, Union


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, strip accents, treat underscores and hyphens as spaces"""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    stripped = stripped.lower().replace("_", " ").replace("-", " ")
    return " ".join(stripped.split())


def normalize_key(value: Optional[str]) -> str:
    """Normalised identifier form: 'Rive-Sud' -> 'rive_sud'"""
    return normalize_text(value).replace(" ", "_")


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def join_keywords(keywords: Union[str, Iterable[Optional[str]], None]) -> str:
    """Normalise a string or an iterable of strings into one searchable text"""
    if keywords is None:
        return ""
    if isinstance(keywords, str):
        return normalize_text(keywords)
    # Separator keeps phrases from matching across item boundaries
    return " | ".join(normalize_text(k) for k in keywords if k)


def is_emergency(urgency: Optional[str]) -> bool:
    """P1 tier or the agent's 'critical' urgency level"""
    return normalize_text(urgency) in ("p1", "critical", "critique")

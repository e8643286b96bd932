"""
Utility helper functions
"""
from datetime import datetime
import re


def collapse_whitespace(text: str) -> str:
    """Replace runs of whitespace (including full-width spaces and newlines) with one space"""
    return re.sub(r"\s+", " ", text or "").strip()


def truncate_text(text: str, length: int = 100, suffix: str = "...") -> str:
    """
    Prefix of *text* with whitespace collapsed; *suffix* is appended when the
    original text is longer than *length*.
    """
    if text is None:
        return None
    head = collapse_whitespace(text[:length])
    return head + (suffix if len(text) > length else "")


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns"""
    return datetime.utcnow()

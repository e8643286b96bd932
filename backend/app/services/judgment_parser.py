"""
services/judgment_parser.py

Turns a raw JDoc payload into the fields stored on a Judgment row.

Registry fields used:
  JCASE    case number, e.g. "112年度訴字第1234號民事判決"
  JDATE    ROC date "YYYMMDD" (year + 1911 = Gregorian year)
  JCOURT   court name
  JFULL    full judgment text (older payloads: JFULLX.JFULLCONTENT)

Every field is extracted on its own: a malformed field is logged and left
as None, the rest of the record still goes through.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.db.models import CaseType, RiskLevel
from app.services.risk_classifier import classify_risk
from app.utils.helpers import truncate_text

logger = logging.getLogger(__name__)

ROC_YEAR_OFFSET = 1911
ROC_DATE_RE = re.compile(r"^(\d{3})(\d{2})(\d{2})$")

PARTY_MARKERS = ("原告", "被告", "上訴人", "被上訴人")
PARTY_SCAN_LINES = 20

CASE_TYPE_MARKERS = (
    ("民事", CaseType.civil),
    ("刑事", CaseType.criminal),
    ("行政", CaseType.administrative),
)


@dataclass
class ParsedJudgment:
    case_number: Optional[str] = None
    judgment_date: Optional[date] = None
    case_type: Optional[CaseType] = None
    court_name: Optional[str] = None
    full_text: Optional[str] = None
    parties: Optional[str] = None
    summary: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.MEDIUM


# ============================================================================
# Field helpers
# ============================================================================

def roc_date_to_date(value: Any) -> Optional[date]:
    """
    "1130101" -> date(2024, 1, 1). Anything that is not exactly seven digits,
    or not a real calendar day, gives None.
    """
    if value is None:
        return None
    m = ROC_DATE_RE.match(str(value).strip())
    if not m:
        return None
    year, month, day = (int(g) for g in m.groups())
    try:
        return date(year + ROC_YEAR_OFFSET, month, day)
    except ValueError:
        return None


def roc_date_to_iso(value: Any) -> Optional[str]:
    parsed = roc_date_to_date(value)
    return parsed.isoformat() if parsed else None


def classify_case_type(case_number: Optional[str]) -> Optional[CaseType]:
    if not case_number:
        return None
    for marker, case_type in CASE_TYPE_MARKERS:
        if marker in case_number:
            return case_type
    return CaseType.other


def extract_parties(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    found = []
    for line in text.splitlines()[:PARTY_SCAN_LINES]:
        line = line.strip()
        if line and any(marker in line for marker in PARTY_MARKERS):
            found.append(line)
    return "; ".join(found) if found else None


def generate_summary(text: Optional[str], length: int | None = None) -> Optional[str]:
    if not text:
        return None
    return truncate_text(text, length=length or settings.JUDGMENT_SUMMARY_LENGTH)


def _full_text(raw: Dict[str, Any]) -> Optional[str]:
    text = raw.get("JFULL")
    if text is None and isinstance(raw.get("JFULLX"), dict):
        text = raw["JFULLX"].get("JFULLCONTENT")
    if text is None:
        return None
    return str(text)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ============================================================================
# Record
# ============================================================================

def _field(jid: str, name: str, fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except Exception as exc:
        logger.warning("Judgment %s: could not extract %s: %s", jid, name, exc)
        return None


def parse_judgment(raw: Dict[str, Any], jid: str) -> ParsedJudgment:
    """
    Normalize one registry payload. Risk is classified on the complete text;
    only the stored copy is truncated.
    """
    if not isinstance(raw, dict):
        logger.warning("Judgment %s: payload is %s, not an object", jid, type(raw).__name__)
        raw = {}

    text = _field(jid, "full_text", lambda: _full_text(raw))
    case_number = _field(jid, "case_number", lambda: _optional_str(raw.get("JCASE")))
    max_len = settings.JUDGMENT_TEXT_MAX_LENGTH

    parsed = ParsedJudgment(
        case_number=case_number,
        judgment_date=_field(jid, "judgment_date", lambda: roc_date_to_date(raw.get("JDATE"))),
        case_type=_field(jid, "case_type", lambda: classify_case_type(case_number)),
        court_name=_field(jid, "court_name", lambda: _optional_str(raw.get("JCOURT"))),
        full_text=_field(jid, "full_text", lambda: text[:max_len] if text is not None else None),
        parties=_field(jid, "parties", lambda: extract_parties(text)),
        summary=_field(jid, "summary", lambda: generate_summary(text)),
    )
    parsed.risk_level = _field(jid, "risk_level", lambda: classify_risk(text)) or RiskLevel.MEDIUM
    return parsed

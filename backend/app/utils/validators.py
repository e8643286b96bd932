"""
Custom validators
"""
import re
from datetime import date

from app.utils.exceptions import InvalidQueryError

# JIDs look like "TPDV,112,訴,1234,20240101,1"; allow anything printable without slashes
JID_PATTERN = re.compile(r"^[^/\\\s][^/\\]{0,254}$")


def validate_jid(jid: str) -> str:
    """Reject empty or path-like identifiers before they reach the store"""
    value = (jid or "").strip()
    if not JID_PATTERN.match(value):
        raise InvalidQueryError(f"malformed judgment id {jid!r}")
    return value


def validate_date_range(date_from: date | None, date_to: date | None) -> None:
    if date_from and date_to and date_from > date_to:
        raise InvalidQueryError("date_from must not be after date_to")


def validate_company_name(company_name: str) -> str:
    """Company names are matched as substrings; require at least two characters"""
    value = re.sub(r"\s+", " ", company_name or "").strip()
    if len(value) < 2:
        raise InvalidQueryError("company_name must be at least 2 characters")
    return value

"""
services/risk_classifier.py

Keyword heuristics for judgment risk, and the per-company roll-up used by the
company lookup endpoint. Both are pure functions; the keyword lists and
thresholds are part of the stored data's meaning and must not drift.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from app.db.models import CaseType, RiskLevel

HIGH_RISK_KEYWORDS = ("詐欺", "背信", "侵占", "洗錢", "重大違法", "刑事責任")
MEDIUM_RISK_KEYWORDS = ("違約", "債務", "糾紛", "賠償", "損害")


def classify_risk(text: Optional[str]) -> RiskLevel:
    """
    Count distinct keywords present:
      >= 2 high                  -> HIGH
      >= 1 high or >= 3 medium   -> MEDIUM
      otherwise                  -> LOW
    No text at all -> MEDIUM.
    """
    if not text:
        return RiskLevel.MEDIUM

    high = sum(1 for kw in HIGH_RISK_KEYWORDS if kw in text)
    medium = sum(1 for kw in MEDIUM_RISK_KEYWORDS if kw in text)

    if high >= 2:
        return RiskLevel.HIGH
    if high >= 1 or medium >= 3:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


# ============================================================================
# Company roll-up
# ============================================================================

LEVEL_POINTS = {RiskLevel.HIGH: 40, RiskLevel.MEDIUM: 20, RiskLevel.LOW: 5}

# (text keywords, case keywords, points, detail); text keywords match the judgment
# body (or summary), case keywords match the case number string
TOPIC_RULES = (
    (("詐欺", "背信"), ("金融犯罪",), 30, "涉及金融犯罪或詐欺背信"),
    (("違反證券交易法",), ("證券",), 25, "涉及證券交易法相關案件"),
    (("洗錢",), (), 35, "涉及洗錢防制相關案件"),
    (("稅捐", "逃漏稅"), (), 15, "涉及稅務爭議"),
    (("勞動基準法", "勞資爭議"), ("勞資",), 10, "涉及勞資爭議"),
    ((), ("智慧財產權",), 8, "涉及智慧財產權爭議"),
)
CIVIL_POINTS = 3
VOLUME_THRESHOLD = 5
VOLUME_POINTS = 10
HIGH_SCORE = 50
MEDIUM_SCORE = 20
MAX_SCORE = 100

SUMMARIES = {
    RiskLevel.HIGH: "該公司涉及多起高風險訴訟案件，建議審慎評估往來風險。",
    RiskLevel.MEDIUM: "該公司涉及部分訴訟案件，建議持續關注相關動態。",
    RiskLevel.LOW: "該公司訴訟風險較低。",
}


def _get(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _as_level(value: Any) -> Optional[RiskLevel]:
    if isinstance(value, RiskLevel):
        return value
    try:
        return RiskLevel(str(value).upper())
    except ValueError:
        return None


def analyze_company_risk(records: Iterable[Any]) -> Dict[str, Any]:
    """
    Aggregate stored judgments (ORM rows or dicts) mentioning a company into
    {risk_level, risk_score, details, summary, total_cases}.
    """
    records = list(records)
    if not records:
        return {
            "risk_level": RiskLevel.LOW,
            "risk_score": 0,
            "details": [],
            "summary": "查無相關判決紀錄。",
            "total_cases": 0,
        }

    score = 0
    details: List[str] = []

    for record in records:
        level = _as_level(_get(record, "risk_level"))
        score += LEVEL_POINTS.get(level, 0)

        case_text = str(_get(record, "case_number") or "")
        text = str(_get(record, "full_text") or _get(record, "summary") or "")
        for text_keywords, case_keywords, points, detail in TOPIC_RULES:
            if any(kw in text for kw in text_keywords) or any(kw in case_text for kw in case_keywords):
                score += points
                if detail not in details:
                    details.append(detail)

        case_type = _get(record, "case_type")
        if case_type == CaseType.civil or case_type == CaseType.civil.value:
            score += CIVIL_POINTS

    if len(records) > VOLUME_THRESHOLD:
        score += VOLUME_POINTS
        details.append(f"涉訟案件數量較多（{len(records)} 件）")

    score = min(score, MAX_SCORE)
    if score >= HIGH_SCORE:
        level = RiskLevel.HIGH
    elif score >= MEDIUM_SCORE:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return {
        "risk_level": level,
        "risk_score": score,
        "details": details,
        "summary": SUMMARIES[level],
        "total_cases": len(records),
    }

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import CaseType, Judgment, JudgmentSyncLog, RiskLevel
from app.services.judgment_parser import ParsedJudgment
from app.services.service_window import service_window
from app.utils.exceptions import PersistenceError
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

RECONCILE_NEW = "new"
RECONCILE_UPDATED = "updated"

DERIVED_FIELDS = (
    "case_number",
    "judgment_date",
    "case_type",
    "court_name",
    "full_text",
    "parties",
    "summary",
    "risk_level",
)


class JudgmentStore:
    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def reconcile(
        self,
        db: Session,
        jid: str,
        parsed: ParsedJudgment,
        raw_payload: Dict[str, Any] | None,
    ) -> str:
        """
        Insert or overwrite one judgment and commit it. Returns "new" or "updated".
        Any database failure is rolled back and raised as PersistenceError.
        """
        try:
            return self._reconcile(db, jid, parsed, raw_payload)
        except IntegrityError:
            # another writer inserted the same jid between our read and insert
            db.rollback()
            try:
                return self._reconcile(db, jid, parsed, raw_payload)
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError(f"could not store judgment {jid}: {exc}") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"could not store judgment {jid}: {exc}") from exc

    def _reconcile(
        self,
        db: Session,
        jid: str,
        parsed: ParsedJudgment,
        raw_payload: Dict[str, Any] | None,
    ) -> str:
        now = utc_now()
        existing = db.query(Judgment).filter(Judgment.jid == jid).first()

        if existing is None:
            row = Judgment(jid=jid, raw_payload=raw_payload, created_at=now, updated_at=now)
            for name in DERIVED_FIELDS:
                setattr(row, name, getattr(parsed, name))
            db.add(row)
            db.commit()
            return RECONCILE_NEW

        for name in DERIVED_FIELDS:
            setattr(existing, name, getattr(parsed, name))
        existing.raw_payload = raw_payload
        previous = existing.updated_at
        existing.updated_at = max(now, previous) if previous else now
        db.commit()
        return RECONCILE_UPDATED

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_jid(self, db: Session, jid: str) -> Judgment | None:
        return db.query(Judgment).filter(Judgment.jid == jid).first()

    def has_content(self, db: Session, jid: str) -> bool:
        row = (
            db.query(Judgment.id)
            .filter(Judgment.jid == jid, Judgment.full_text.isnot(None), Judgment.full_text != "")
            .first()
        )
        return row is not None

    def search(
        self,
        db: Session,
        q: str | None = None,
        risk_level: RiskLevel | None = None,
        case_type: CaseType | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        query = db.query(Judgment)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(
                or_(
                    Judgment.case_number.ilike(pattern),
                    Judgment.court_name.ilike(pattern),
                    Judgment.parties.ilike(pattern),
                    Judgment.summary.ilike(pattern),
                    Judgment.full_text.ilike(pattern),
                )
            )
        if risk_level:
            query = query.filter(Judgment.risk_level == risk_level)
        if case_type:
            query = query.filter(Judgment.case_type == case_type)
        if date_from:
            query = query.filter(Judgment.judgment_date >= date_from)
        if date_to:
            query = query.filter(Judgment.judgment_date <= date_to)

        total = query.count()
        rows = (
            query.order_by(Judgment.judgment_date.desc().nullslast(), Judgment.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "data": rows,
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
        }

    def search_by_company(self, db: Session, company_name: str, limit: int = 50) -> List[Judgment]:
        pattern = f"%{company_name}%"
        return (
            db.query(Judgment)
            .filter(
                or_(
                    Judgment.parties.ilike(pattern),
                    Judgment.summary.ilike(pattern),
                    Judgment.full_text.ilike(pattern),
                )
            )
            .order_by(Judgment.judgment_date.desc().nullslast(), Judgment.id.desc())
            .limit(limit)
            .all()
        )

    def statistics(self, db: Session, today: date | None = None, now: datetime | None = None) -> Dict[str, Any]:
        """recent_syncs covers the last 7 registry-local days (Asia/Taipei by default)."""
        today = today or service_window.local_now(now).date()

        by_risk = {level.value: 0 for level in RiskLevel}
        for level, count in db.query(Judgment.risk_level, func.count(Judgment.id)).group_by(Judgment.risk_level):
            if level is not None:
                by_risk[level.value] = int(count)

        by_case_type: Dict[str, int] = {}
        for case_type, count in db.query(Judgment.case_type, func.count(Judgment.id)).group_by(Judgment.case_type):
            key = case_type.value if case_type is not None else "unknown"
            by_case_type[key] = int(count)

        recent_syncs = (
            db.query(JudgmentSyncLog)
            .filter(JudgmentSyncLog.sync_date >= today - timedelta(days=6))
            .order_by(JudgmentSyncLog.sync_date.desc())
            .all()
        )
        last_update: Optional[datetime] = db.query(func.max(Judgment.updated_at)).scalar()

        return {
            "total_judgments": sum(by_risk.values()),
            "by_risk_level": by_risk,
            "by_case_type": by_case_type,
            "recent_syncs": recent_syncs,
            "last_update": last_update,
        }


judgment_store = JudgmentStore()

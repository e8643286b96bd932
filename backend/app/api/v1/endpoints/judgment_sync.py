"""
Judgment sync operator endpoints.

    GET  /api/v1/judgment-sync/status
    POST /api/v1/judgment-sync/manual-sync?force=false
    GET  /api/v1/judgment-sync/search
    GET  /api/v1/judgment-sync/judgment/{jid}
    GET  /api/v1/judgment-sync/statistics
    GET  /api/v1/judgment-sync/company-risk?company_name=...

Authentication: x-sync-token header must match settings.JUDGMENT_SYNC_ADMIN_TOKEN.
If JUDGMENT_SYNC_ADMIN_TOKEN is empty the endpoints are disabled (503).
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logger import logger
from app.db.database import get_db
from app.db.models import CaseType, RiskLevel
from app.db.schemas import (
    CompanyRiskResponse,
    JudgmentDetail,
    JudgmentSearchResponse,
    ManualSyncResponse,
    StatisticsResponse,
    SyncStatusResponse,
)
from app.services.historical_import_service import HistoricalImportService, historical_import_service
from app.services.judgment_store import judgment_store
from app.services.judgment_sync_service import (
    OUTCOME_ALREADY_RUNNING,
    OUTCOME_WINDOW_CLOSED,
    JudgmentSyncService,
    judgment_sync_service,
)
from app.services.risk_classifier import analyze_company_risk
from app.utils.exceptions import (
    JudgmentNotFoundError,
    ServiceWindowClosedHTTPError,
    SyncAlreadyRunningHTTPError,
)
from app.utils.validators import validate_company_name, validate_date_range, validate_jid

router = APIRouter()


# ── Security ──────────────────────────────────────────────────────────────────


def _verify_admin_token(x_sync_token: Optional[str] = Header(None)) -> None:
    expected = (settings.JUDGMENT_SYNC_ADMIN_TOKEN or "").strip()
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Judgment sync endpoints not configured (JUDGMENT_SYNC_ADMIN_TOKEN unset)",
        )
    if not x_sync_token or x_sync_token.strip() != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing x-sync-token",
        )


def get_sync_service() -> JudgmentSyncService:
    return judgment_sync_service


def get_import_service() -> HistoricalImportService:
    return historical_import_service


# ── Sync control ──────────────────────────────────────────────────────────────


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    db: Session = Depends(get_db),
    sync_service: JudgmentSyncService = Depends(get_sync_service),
    import_service: HistoricalImportService = Depends(get_import_service),
    _: None = Depends(_verify_admin_token),
):
    return {**sync_service.get_status(db), "backfill": import_service.get_stats()}


@router.post("/manual-sync", response_model=ManualSyncResponse, status_code=status.HTTP_202_ACCEPTED)
def manual_sync(
    force: bool = Query(False, description="Bypass the registry service window"),
    sync_service: JudgmentSyncService = Depends(get_sync_service),
    _: None = Depends(_verify_admin_token),
):
    """
    Start a sync in the background and return at once. Progress is visible
    through /status.
    """
    ack = sync_service.trigger_sync(force=force)
    if ack["status"] == OUTCOME_ALREADY_RUNNING:
        raise SyncAlreadyRunningHTTPError(ack.get("active_job"))
    if ack["status"] == OUTCOME_WINDOW_CLOSED:
        raise ServiceWindowClosedHTTPError(sync_service.window.describe())
    logger.info("judgment-sync/manual-sync: started (force=%s)", force)
    return ack


# ── Queries ───────────────────────────────────────────────────────────────────


@router.get("/search", response_model=JudgmentSearchResponse)
def search_judgments(
    q: Optional[str] = Query(None, max_length=200),
    risk_level: Optional[RiskLevel] = None,
    case_type: Optional[CaseType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(_verify_admin_token),
):
    validate_date_range(date_from, date_to)
    return judgment_store.search(
        db,
        q=q,
        risk_level=risk_level,
        case_type=case_type,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


@router.get("/judgment/{jid}", response_model=JudgmentDetail)
def get_judgment(
    jid: str,
    db: Session = Depends(get_db),
    _: None = Depends(_verify_admin_token),
):
    jid = validate_jid(jid)
    judgment = judgment_store.get_by_jid(db, jid)
    if not judgment:
        raise JudgmentNotFoundError(jid)
    return judgment


@router.get("/statistics", response_model=StatisticsResponse)
def statistics(
    db: Session = Depends(get_db),
    _: None = Depends(_verify_admin_token),
):
    return judgment_store.statistics(db)


@router.get("/company-risk", response_model=CompanyRiskResponse)
def company_risk(
    company_name: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _: None = Depends(_verify_admin_token),
):
    """Stored judgments mentioning a company, with the aggregated risk analysis"""
    name = validate_company_name(company_name)
    judgments = judgment_store.search_by_company(db, name, limit=limit)
    return {
        "company_name": name,
        "judgments": judgments,
        "analysis": analyze_company_risk(judgments),
    }

"""
Pydantic response schemas
"""
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import date, datetime

from app.db.models import CaseType, RiskLevel, SyncStatus

# ============================================================================
# Judgment Schemas
# ============================================================================

class JudgmentSummary(BaseModel):
    """Search result row; full text and raw payload left out"""
    jid: str
    case_number: Optional[str] = None
    judgment_date: Optional[date] = None
    case_type: Optional[CaseType] = None
    court_name: Optional[str] = None
    parties: Optional[str] = None
    summary: Optional[str] = None
    risk_level: RiskLevel
    updated_at: datetime

    class Config:
        from_attributes = True

class JudgmentDetail(JudgmentSummary):
    id: int
    full_text: Optional[str] = None
    raw_payload: Optional[Dict[str, Any]] = None
    created_at: datetime

class JudgmentSearchResponse(BaseModel):
    data: List[JudgmentSummary]
    total: int
    limit: int
    offset: int
    has_more: bool

# ============================================================================
# Sync Run Schemas
# ============================================================================

class SyncLogResponse(BaseModel):
    id: int
    sync_date: date
    status: SyncStatus
    trigger_source: str
    total_fetched: int
    new_records: int
    updated_records: int
    skipped_records: int
    errors: int
    started_at: Optional[datetime] = None
    heartbeat_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True

class BackfillStatsResponse(BaseModel):
    is_running: bool
    mode: Optional[str] = None
    status: str
    total_processed: int = 0
    new_records: int = 0
    updated_records: int = 0
    skipped_records: int = 0
    errors: int = 0
    current_batch: int = 0
    total_batches: int = 0
    current_batch_size: int = 0
    current_batch_processed: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    message: Optional[str] = None

class SyncStatusResponse(BaseModel):
    is_running: bool
    active_job: Optional[str] = None
    current_sync_id: Optional[int] = None
    is_api_available: bool
    service_window: str
    recent_logs: List[SyncLogResponse]
    backfill: BackfillStatsResponse

class ManualSyncResponse(BaseModel):
    status: str
    message: str

# ============================================================================
# Statistics / Company Schemas
# ============================================================================

class StatisticsResponse(BaseModel):
    total_judgments: int
    by_risk_level: Dict[str, int]
    by_case_type: Dict[str, int]
    recent_syncs: List[SyncLogResponse]
    last_update: Optional[datetime] = None

class CompanyRiskAnalysis(BaseModel):
    risk_level: RiskLevel
    risk_score: int
    details: List[str]
    summary: str
    total_cases: int

class CompanyRiskResponse(BaseModel):
    company_name: str
    judgments: List[JudgmentSummary]
    analysis: CompanyRiskAnalysis

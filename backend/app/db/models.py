"""
SQLAlchemy ORM Models
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    Date,
    Enum as SQLEnum,
    Integer,
    String,
    Text,
    TIMESTAMP,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")

# ============================================================================
# Enums
# ============================================================================

class RiskLevel(str, enum.Enum):
    """Heuristic risk classification of a judgment"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

class CaseType(str, enum.Enum):
    """Case category derived from the case number"""
    civil = "civil"
    criminal = "criminal"
    administrative = "administrative"
    other = "other"

class SyncStatus(str, enum.Enum):
    """Sync run status"""
    running = "running"
    completed = "completed"
    failed = "failed"

class SyncTriggerSource(str, enum.Enum):
    scheduled = "scheduled"
    manual = "manual"
    cli = "cli"


# ============================================================================
# Judgments
# ============================================================================

class Judgment(Base):
    """
    One judgment fetched from the judicial registry, keyed by its JID.
    Rows are created and overwritten by the sync pipeline, never deleted by it.
    """
    __tablename__ = "judgments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jid = Column(String(255), nullable=False, unique=True, index=True)
    case_number = Column(String(255), nullable=True)
    judgment_date = Column(Date, nullable=True, index=True)
    case_type = Column(SQLEnum(CaseType), nullable=True, index=True)
    court_name = Column(String(255), nullable=True)
    full_text = Column(Text, nullable=True)
    parties = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    risk_level = Column(SQLEnum(RiskLevel), nullable=False, default=RiskLevel.MEDIUM, index=True)
    raw_payload = Column(JSONPayload, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_judgments_date_created", "judgment_date", "created_at"),
    )


class JudgmentSyncLog(Base):
    """
    One row per calendar day of regular sync; re-runs on the same day reuse the row.
    """
    __tablename__ = "judgment_sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_date = Column(Date, nullable=False, unique=True, index=True)
    status = Column(SQLEnum(SyncStatus), nullable=False, default=SyncStatus.running, index=True)
    trigger_source = Column(String(30), nullable=False, default=SyncTriggerSource.scheduled.value)
    total_fetched = Column(Integer, nullable=False, default=0)
    new_records = Column(Integer, nullable=False, default=0)
    updated_records = Column(Integer, nullable=False, default=0)
    skipped_records = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)
    started_at = Column(TIMESTAMP, nullable=True)
    heartbeat_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

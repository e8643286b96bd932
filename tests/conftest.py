"""
tests/conftest.py

Shared fixtures for the judgment sync test suite.

Every test gets:
  - a fresh in-memory SQLite database (StaticPool, so all sessions share it)
  - a fake judicial registry behind httpx.MockTransport; nothing leaves the process
  - services wired to both, with sleeps recorded instead of slept

Environment variables are set before any `app` import so the module-level
settings object never needs a real .env.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["JUDGMENT_SYNC_SCHEDULER_ENABLED"] = "false"
os.environ["JUDGMENT_SYNC_ADMIN_TOKEN"] = "test-admin-token"
os.environ["JUDICIAL_ACCOUNT"] = "test-account"
os.environ["JUDICIAL_PASSWORD"] = "test-password"
os.environ["JUDICIAL_DEV_FORCE"] = "false"

from typing import Any, List

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base
from app.db import models  # noqa: F401  (registers tables)
from app.services.judgment_store import JudgmentStore
from app.services.judgment_sync_service import JudgmentSyncService
from app.services.judicial_api_service import JudicialApiService
from app.services.retry_policy import RetryPolicy
from app.services.service_window import ServiceWindow
from app.services.sync_run_tracker import RunLatch, SyncRunTracker
from app.services.token_manager import TokenManager
from helpers import BASE_URL, FakeRegistry


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def http_client(registry):
    client = httpx.Client(transport=httpx.MockTransport(registry))
    yield client
    client.close()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def retry_sleeps() -> List[float]:
    return []


@pytest.fixture
def tokens(http_client) -> TokenManager:
    return TokenManager(
        base_url=BASE_URL,
        account="test-account",
        password="test-password",
        client=http_client,
    )


@pytest.fixture
def api(tokens, http_client, retry_sleeps) -> JudicialApiService:
    return JudicialApiService(
        tokens,
        base_url=BASE_URL,
        client=http_client,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0, sleep=retry_sleeps.append),
        request_delay=0,
        max_list_ids=50,
    )


@pytest.fixture
def window() -> ServiceWindow:
    return ServiceWindow(start_hour=0, end_hour=6, timezone="Asia/Taipei", dev_force=False)


@pytest.fixture
def latch() -> RunLatch:
    return RunLatch()


@pytest.fixture
def launched() -> List[Any]:
    return []


@pytest.fixture
def sync_service(api, tokens, window, latch, session_factory, sleeps, launched) -> JudgmentSyncService:
    return JudgmentSyncService(
        api=api,
        tokens=tokens,
        store=JudgmentStore(),
        tracker=SyncRunTracker(),
        window=window,
        latch=latch,
        session_factory=session_factory,
        batch_size=10,
        batch_delay=2.0,
        sleep=sleeps.append,
        launcher=launched.append,
    )

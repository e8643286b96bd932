from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest

from app.services.token_manager import TokenManager
from app.utils.exceptions import AuthError
from helpers import BASE_URL


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 1, 17, 0))


@pytest.fixture
def manager(http_client, clock):
    return TokenManager(
        base_url=BASE_URL,
        account="test-account",
        password="test-password",
        client=http_client,
        clock=clock,
    )


def test_exchanges_credentials_once_and_caches(manager, registry):
    assert manager.get_token() == "registry-token-1"
    assert manager.get_token() == "registry-token-1"

    auth_calls = registry.endpoint_calls("Auth")
    assert auth_calls == [{"account": "test-account", "password": "test-password"}]
    assert manager.cached.expires_at == datetime(2024, 1, 1, 23, 0)


def test_token_is_refreshed_after_six_hours(manager, registry, clock):
    manager.get_token()
    clock.now += timedelta(hours=5, minutes=59)
    manager.get_token()
    assert len(registry.endpoint_calls("Auth")) == 1

    registry.token = "registry-token-2"
    clock.now += timedelta(minutes=1)
    assert manager.get_token() == "registry-token-2"
    assert len(registry.endpoint_calls("Auth")) == 2


def test_invalidate_forces_new_exchange(manager, registry):
    manager.get_token()
    manager.invalidate()
    assert manager.cached is None
    manager.get_token()
    assert len(registry.endpoint_calls("Auth")) == 2


@pytest.mark.parametrize(
    "response",
    [500, 403, {"error": "帳號或密碼錯誤"}, {"token": ""}, "not-an-object"],
)
def test_failed_exchange_raises_auth_error(manager, registry, response):
    registry.auth_response = response
    with pytest.raises(AuthError):
        manager.get_token()
    assert manager.cached is None


def test_transport_failure_raises_auth_error(manager, registry):
    registry.auth_response = httpx.ConnectError("connection refused")
    with pytest.raises(AuthError):
        manager.get_token()


def test_missing_credentials_fail_without_network(http_client, registry):
    manager = TokenManager(base_url=BASE_URL, account="", password="", client=http_client)
    with pytest.raises(AuthError):
        manager.get_token()
    assert registry.calls == []


def test_capitalized_token_field_is_accepted(manager, registry):
    registry.auth_response = {"Token": "upper-token"}
    assert manager.get_token() == "upper-token"

"""
services/token_manager.py

Owns the registry bearer token for this process.

The token is obtained with POST {base}/Auth {"account", "password"} and cached
for JUDICIAL_TOKEN_TTL_HOURS (6h). A cached token is never handed out past its
expiry. The cache lives on the instance behind a lock so concurrent callers
(scheduler thread, manual trigger thread) share one exchange.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from app.core.config import settings
from app.core.logger import logger
from app.utils.exceptions import AuthError


@dataclass
class AuthToken:
    token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return bool(self.token) and now < self.expires_at


class TokenManager:
    def __init__(
        self,
        base_url: str | None = None,
        account: str | None = None,
        password: str | None = None,
        ttl: timedelta | None = None,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.base_url = (base_url or settings.JUDICIAL_API_BASE_URL).rstrip("/")
        self.account = settings.JUDICIAL_ACCOUNT if account is None else account
        self.password = settings.JUDICIAL_PASSWORD if password is None else password
        self.ttl = ttl or timedelta(hours=settings.JUDICIAL_TOKEN_TTL_HOURS)
        self.clock = clock
        self._client = client
        self._lock = threading.Lock()
        self._cached: Optional[AuthToken] = None

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=settings.JUDICIAL_API_TIMEOUT_SECONDS)
        return self._client

    @property
    def cached(self) -> Optional[AuthToken]:
        return self._cached

    def get_token(self) -> str:
        with self._lock:
            now = self.clock()
            if self._cached and self._cached.is_valid(now):
                return self._cached.token
            self._cached = self._exchange(now)
            return self._cached.token

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def _exchange(self, now: datetime) -> AuthToken:
        if not self.account or not self.password:
            raise AuthError("Judicial registry credentials are not configured")

        try:
            res = self._http().post(
                f"{self.base_url}/Auth",
                json={"account": self.account, "password": self.password},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Token exchange failed: {exc}") from exc

        if not res.is_success:
            raise AuthError(f"Token exchange returned {res.status_code}")

        try:
            body = res.json()
        except ValueError as exc:
            raise AuthError("Token exchange returned a non-JSON body") from exc

        token = ""
        if isinstance(body, dict):
            # registry docs say "token"; production responses have used "Token"
            token = str(body.get("token") or body.get("Token") or "").strip()
        if not token:
            message = body.get("error") if isinstance(body, dict) else None
            raise AuthError(f"Token exchange returned no token{': ' + str(message) if message else ''}")

        logger.info("Judicial registry token acquired, valid for %s", self.ttl)
        return AuthToken(token=token, expires_at=now + self.ttl)


token_manager = TokenManager()

"""
services/judicial_api_service.py

HTTP client for the judicial judgment registry.

Endpoints (all POST, JSON in/out, relative to JUDICIAL_API_BASE_URL):
  Auth     {account, password}        -> {token}            (see token_manager.py)
  JList    {token}                    -> changed JIDs, several shapes (see below)
  JDoc     {token, jid}               -> judgment payload | {"error": "查無資料"}
  JSearch  {token, keyword, top}      -> judgments matching a keyword (company name)

The registry only serves requests inside its nightly window; callers check
service_window before calling anything here. Requests are spaced by
JUDICIAL_REQUEST_DELAY_SECONDS and transient failures go through RetryPolicy.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from app.core.config import settings
from app.core.logger import logger
from app.services.retry_policy import RetryPolicy
from app.services.token_manager import TokenManager, token_manager
from app.utils.exceptions import AuthError, FetchError, ListShapeError, TransientFetchError

NOT_FOUND_MARKERS = ("查無資料", "not found", "no data")
GROUP_ID_KEYS = ("list", "ids", "jids", "JIDs")
SEARCH_ID_KEYS = ("JID", "jid", "案號")


# ============================================================================
# JList response shapes
# ============================================================================
#
#   [{"date": "2024-01-01", "list": ["jid", ...]}, ...]   grouped list
#   {"date": "2024-01-01", "list": ["jid", ...]}          single group
#   ["jid", "jid", ...]                                   bare id list
#   "jid"                                                 single id
#   {"2024-01-01": ["jid", ...], ...}                     date-keyed object
#
# A list may mix bare ids and groups. Anything else is rejected as a whole.

def _is_group(value: Any) -> bool:
    return isinstance(value, dict) and any(k in value for k in GROUP_ID_KEYS)


def _group_ids(group: Dict[str, Any]) -> List[str]:
    for key in GROUP_ID_KEYS:
        if key not in group:
            continue
        ids = group[key]
        if isinstance(ids, str):
            return [ids]
        if isinstance(ids, list) and all(isinstance(i, str) for i in ids):
            return list(ids)
        raise ListShapeError(f"group {group.get('date')!r} has a non-string id array under {key!r}")
    raise ListShapeError("group without an id array")


def _is_date_keyed(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and bool(value)
        and all(isinstance(v, list) and all(isinstance(i, str) for i in v) for v in value.values())
    )


def flatten_jid_list(payload: Any, max_ids: int) -> List[str]:
    """Flatten a JList response into unique JIDs in first-seen order, capped at max_ids."""
    if max_ids < 1:
        raise ValueError("max_ids must be positive")

    if isinstance(payload, str):
        raw: List[str] = [payload]
    elif isinstance(payload, list):
        raw = []
        for item in payload:
            if isinstance(item, str):
                raw.append(item)
            elif _is_group(item):
                raw.extend(_group_ids(item))
            else:
                raise ListShapeError(f"unexpected list element of type {type(item).__name__}")
    elif _is_group(payload):
        raw = _group_ids(payload)
    elif _is_date_keyed(payload):
        raw = [jid for ids in payload.values() for jid in ids]
    else:
        raise ListShapeError(f"unrecognized JList response of type {type(payload).__name__}")

    return _dedupe(raw, max_ids)


def _dedupe(values: Iterable[str], limit: int) -> List[str]:
    out: List[str] = []
    seen = set()
    for value in values:
        jid = (value or "").strip()
        if not jid or jid in seen:
            continue
        seen.add(jid)
        out.append(jid)
        if len(out) >= limit:
            break
    return out


def _is_not_found(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    error = body.get("error")
    if not isinstance(error, str):
        return False
    low = error.lower()
    return any(marker in low for marker in NOT_FOUND_MARKERS)


# ============================================================================
# Client
# ============================================================================

class JudicialApiService:
    def __init__(
        self,
        token_manager: TokenManager,
        base_url: str | None = None,
        client: httpx.Client | None = None,
        retry_policy: RetryPolicy | None = None,
        request_delay: float | None = None,
        max_list_ids: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token_manager = token_manager
        self.base_url = (base_url or settings.JUDICIAL_API_BASE_URL).rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.delay_seconds = max(
            0.0, settings.JUDICIAL_REQUEST_DELAY_SECONDS if request_delay is None else request_delay
        )
        self.max_list_ids = max_list_ids or settings.JUDICIAL_LIST_MAX_IDS
        self.sleep = sleep
        self._client = client
        self._last_call_at = 0.0

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=settings.JUDICIAL_API_TIMEOUT_SECONDS)
        return self._client

    def _throttle(self) -> None:
        if self.delay_seconds <= 0:
            return
        elapsed = time.monotonic() - self._last_call_at
        if elapsed < self.delay_seconds:
            self.sleep(self.delay_seconds - elapsed)

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> httpx.Response:
        self._throttle()
        try:
            res = self._http().post(f"{self.base_url}/{endpoint}", json=payload)
        except httpx.TransportError as exc:
            raise TransientFetchError(f"{endpoint} request failed: {exc}") from exc
        finally:
            self._last_call_at = time.monotonic()

        if res.status_code == 401:
            self.token_manager.invalidate()
            raise AuthError(f"{endpoint} rejected the registry token")
        if res.status_code == 429 or res.status_code >= 500:
            raise TransientFetchError(f"{endpoint} returned {res.status_code}", status_code=res.status_code)
        return res

    def _json(self, endpoint: str, res: httpx.Response) -> Any:
        try:
            return res.json()
        except ValueError as exc:
            raise FetchError(f"{endpoint} returned a non-JSON body", status_code=res.status_code) from exc

    # ------------------------------------------------------------------
    # List fetcher
    # ------------------------------------------------------------------

    def list_changed_ids(self, token: str) -> List[str]:
        def _once() -> Any:
            res = self._post("JList", {"token": token})
            if res.status_code >= 400:
                raise FetchError(f"JList returned {res.status_code}", status_code=res.status_code)
            return self._json("JList", res)

        body = self.retry_policy.call(_once, retry_on=(TransientFetchError,), label="JList")
        if isinstance(body, dict) and isinstance(body.get("error"), str) and not _is_group(body):
            raise FetchError(f"JList error: {body['error']}")

        jids = flatten_jid_list(body, self.max_list_ids)
        logger.info("JList returned %d changed judgment ids", len(jids))
        return jids

    # ------------------------------------------------------------------
    # Detail fetcher
    # ------------------------------------------------------------------

    def fetch_detail(self, jid: str, token: str) -> Optional[Dict[str, Any]]:
        """Full judgment payload, or None when the registry says the JID no longer exists."""

        def _once() -> Optional[Dict[str, Any]]:
            res = self._post("JDoc", {"token": token, "jid": jid})
            if res.status_code == 404:
                return None
            if res.status_code >= 400:
                raise FetchError(f"JDoc {jid} returned {res.status_code}", status_code=res.status_code)
            body = self._json("JDoc", res)
            if _is_not_found(body):
                return None
            if not isinstance(body, dict):
                raise FetchError(f"JDoc {jid} returned {type(body).__name__}, expected an object")
            if isinstance(body.get("error"), str):
                raise FetchError(f"JDoc {jid} error: {body['error']}")
            return body

        return self.retry_policy.call(_once, retry_on=(TransientFetchError,), label=f"JDoc {jid}")

    # ------------------------------------------------------------------
    # Company search (historical import)
    # ------------------------------------------------------------------

    def search_judgment_ids(self, keyword: str, token: str, top: int = 100) -> List[str]:
        def _once() -> Any:
            res = self._post("JSearch", {"token": token, "keyword": keyword, "top": top})
            if res.status_code == 404:
                return []
            if res.status_code >= 400:
                raise FetchError(f"JSearch returned {res.status_code}", status_code=res.status_code)
            return self._json("JSearch", res)

        body = self.retry_policy.call(_once, retry_on=(TransientFetchError,), label="JSearch")
        if _is_not_found(body):
            return []
        if isinstance(body, dict) and isinstance(body.get("data"), list):
            body = body["data"]
        if not isinstance(body, list):
            raise ListShapeError(f"unrecognized JSearch response of type {type(body).__name__}")

        raw: List[str] = []
        for item in body:
            if isinstance(item, str):
                raw.append(item)
            elif isinstance(item, dict):
                jid = next((item[k] for k in SEARCH_ID_KEYS if isinstance(item.get(k), str) and item[k].strip()), None)
                if jid:
                    raw.append(jid)
        jids = _dedupe(raw, max(1, top))
        logger.info("JSearch %r returned %d judgment ids", keyword, len(jids))
        return jids


judicial_api_service = JudicialApiService(token_manager)

"""
tests/helpers.py

Fake judicial registry and payload builders shared by the test modules.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List
from zoneinfo import ZoneInfo

import httpx

BASE_URL = "https://registry.test/jdg/api"
TAIPEI = ZoneInfo("Asia/Taipei")
IN_WINDOW = datetime(2024, 1, 2, 2, 0, tzinfo=TAIPEI)
OUT_OF_WINDOW = datetime(2024, 1, 2, 12, 0, tzinfo=TAIPEI)

SAMPLE_TEXT = (
    "臺灣臺北地方法院民事判決\n"
    "原告 甲股份有限公司\n"
    "被告 乙股份有限公司\n"
    "主文\n"
    "被告應給付原告新臺幣壹佰萬元。\n"
    "事實及理由\n"
    "原告主張被告違約未付貨款，雙方債務糾紛迄未解決。\n"
)


def make_payload(
    jid: str,
    text: str = SAMPLE_TEXT,
    jcase: str = "112年度訴字第1234號民事判決",
    jdate: str = "1130101",
    court: str = "臺灣臺北地方法院",
) -> Dict[str, Any]:
    return {"JID": jid, "JCASE": jcase, "JDATE": jdate, "JCOURT": court, "JFULL": text}


class Sequence(list):
    """Responses handed out one per call; the last one repeats."""


class FakeRegistry:
    """
    httpx.MockTransport handler standing in for the judicial registry.

    Per-endpoint responses may be:
      dict / list / str  -> 200 with that JSON body
      int                -> that status code
      Exception          -> raised from the transport
      Sequence([...])    -> one of the above per call
    """

    def __init__(self) -> None:
        self.token = "registry-token-1"
        self.auth_response: Any = None
        self.list_response: Any = []
        self.search_response: Any = []
        self.docs: Dict[str, Any] = {}
        self.calls: List[tuple[str, Dict[str, Any]]] = []

    def endpoint_calls(self, endpoint: str) -> List[Dict[str, Any]]:
        return [body for name, body in self.calls if name == endpoint]

    def _respond(self, request: httpx.Request, value: Any) -> httpx.Response:
        if isinstance(value, Sequence):
            value = value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, int):
            return httpx.Response(value, json={"error": f"status {value}"}, request=request)
        return httpx.Response(200, json=value, request=request)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.calls.append((endpoint, body))

        if endpoint == "Auth":
            if self.auth_response is not None:
                return self._respond(request, self.auth_response)
            return httpx.Response(200, json={"token": self.token}, request=request)
        if endpoint == "JList":
            return self._respond(request, self.list_response)
        if endpoint == "JSearch":
            return self._respond(request, self.search_response)
        if endpoint == "JDoc":
            return self._respond(request, self.docs.get(body.get("jid"), {"error": "查無資料"}))
        return httpx.Response(404, json={"error": "unknown endpoint"}, request=request)

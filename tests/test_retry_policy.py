from __future__ import annotations

import pytest

from app.services.retry_policy import RetryPolicy
from app.utils.exceptions import FetchError, TransientFetchError


def _flaky(failures: int, exc: Exception):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc
        return "ok"

    return fn, calls


def test_retries_transient_failures_with_backoff():
    slept = []
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0, sleep=slept.append)
    fn, calls = _flaky(2, TransientFetchError("503"))

    assert policy.call(fn, retry_on=(TransientFetchError,)) == "ok"
    assert calls["n"] == 3
    assert slept == [1.0, 2.0]


def test_gives_up_after_max_attempts():
    slept = []
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=slept.append)
    fn, calls = _flaky(10, TransientFetchError("timeout"))

    with pytest.raises(TransientFetchError):
        policy.call(fn, retry_on=(TransientFetchError,))
    assert calls["n"] == 3
    assert len(slept) == 2


def test_other_errors_are_not_retried():
    slept = []
    policy = RetryPolicy(sleep=slept.append)
    fn, calls = _flaky(1, FetchError("400"))

    with pytest.raises(FetchError):
        policy.call(fn, retry_on=(TransientFetchError,))
    assert calls["n"] == 1
    assert slept == []


def test_delay_is_capped():
    policy = RetryPolicy(base_delay=10.0, multiplier=10.0, max_delay=30.0)
    assert policy.delay_for(1) == 10.0
    assert policy.delay_for(3) == 30.0


def test_jitter_adds_bounded_spread():
    slept = []
    policy = RetryPolicy(max_attempts=2, base_delay=1.0, jitter=0.5, sleep=slept.append)
    fn, _ = _flaky(1, TransientFetchError("503"))
    policy.call(fn, retry_on=(TransientFetchError,))
    assert 1.0 <= slept[0] <= 1.5


def test_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(multiplier=0.5)

"""Tests for retry decorators and bounded polling."""

import pytest

from capi_migration.client.exceptions import (
    NotFoundError,
    NotReadyError,
    PodFailedError,
    ServerError,
)
from capi_migration.utils.retry import RetryPolicy, retry_with_backoff, wait_until

FAST = RetryPolicy(interval=0, max_elapsed=1)


class TestRetryWithBackoff:
    """Tests for the transient-error retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_server_errors_until_success(self):
        calls = []

        @retry_with_backoff(max_attempts=3, min_wait=0, max_wait=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ServerError("boom", status_code=503)
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_reraises_after_max_attempts(self):
        calls = []

        @retry_with_backoff(max_attempts=2, min_wait=0, max_wait=0)
        async def always_failing():
            calls.append(1)
            raise ServerError("boom", status_code=500)

        with pytest.raises(ServerError):
            await always_failing()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_other_errors(self):
        calls = []

        @retry_with_backoff(max_attempts=5, min_wait=0, max_wait=0)
        async def missing():
            calls.append(1)
            raise NotFoundError("gone", status_code=404)

        with pytest.raises(NotFoundError):
            await missing()
        assert len(calls) == 1


class TestWaitUntil:
    """Tests for bounded polling."""

    @pytest.mark.asyncio
    async def test_returns_once_check_passes(self):
        observations = iter([NotReadyError("pending"), NotReadyError("pending"), "done"])

        async def check():
            value = next(observations)
            if isinstance(value, Exception):
                raise value
            return value

        assert await wait_until(check, FAST) == "done"

    @pytest.mark.asyncio
    async def test_permanent_failure_stops_immediately(self):
        calls = []

        async def check():
            calls.append(1)
            raise PodFailedError("pod failed")

        with pytest.raises(PodFailedError):
            await wait_until(check, FAST)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_deadline_reraises_not_ready(self):
        async def check():
            raise NotReadyError("still pending")

        with pytest.raises(NotReadyError, match="still pending"):
            await wait_until(check, RetryPolicy(interval=0, max_elapsed=0))

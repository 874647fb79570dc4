"""Unit tests for docsfetcher.retry and the error taxonomy."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from docsfetcher.config import RetrySettings
from docsfetcher.errors import DocsFetcherError, ErrorCode, is_retryable_error
from docsfetcher.retry import NO_RETRY, RetryPolicy, with_retry

FAST = RetryPolicy(max_attempts=3, initial_delay=0.5, max_delay=1.0, jitter=False)


def _network_error() -> DocsFetcherError:
    return DocsFetcherError(code=ErrorCode.NETWORK_ERROR, message="connection reset")


class TestErrors:
    def test_to_dict(self) -> None:
        error = DocsFetcherError(
            code=ErrorCode.PACKAGE_NOT_FOUND,
            message="Package 'x' not found",
            suggestion="Check the name.",
        )
        assert error.to_dict() == {
            "error": {
                "code": "PACKAGE_NOT_FOUND",
                "message": "Package 'x' not found",
                "suggestion": "Check the name.",
                "recoverable": False,
            }
        }
        assert str(error) == "Package 'x' not found"

    @pytest.mark.parametrize(
        ("code", "retryable"),
        [
            (ErrorCode.NETWORK_ERROR, True),
            (ErrorCode.TIMEOUT, True),
            (ErrorCode.RATE_LIMIT, True),
            (ErrorCode.UNKNOWN, True),
            (ErrorCode.PACKAGE_NOT_FOUND, False),
            (ErrorCode.DOCUMENTATION_NOT_FOUND, False),
            (ErrorCode.INVALID_INPUT, False),
            (ErrorCode.CACHE_SIZE_ERROR, False),
        ],
    )
    def test_retryable_codes(self, code: ErrorCode, retryable: bool) -> None:
        assert is_retryable_error(DocsFetcherError(code=code, message="x")) is retryable

    def test_untyped_errors_retryable(self) -> None:
        assert is_retryable_error(RuntimeError("boom")) is True


class TestRetryPolicy:
    def test_from_settings(self) -> None:
        policy = RetryPolicy.from_settings(
            RetrySettings(
                max_attempts=5,
                initial_delay_seconds=0.25,
                max_delay_seconds=4.0,
                backoff_factor=3.0,
                jitter=False,
            )
        )
        assert policy.max_attempts == 5
        assert policy.initial_delay == 0.25
        assert policy.max_delay == 4.0
        assert policy.backoff_factor == 3.0
        assert policy.jitter is False

    def test_backoff_capped(self) -> None:
        policy = RetryPolicy(initial_delay=1.0, max_delay=10.0, backoff_factor=2.0, jitter=False)
        assert policy.next_delay(1.0) == 2.0
        assert policy.next_delay(8.0) == 10.0

    def test_jitter_bounds(self) -> None:
        policy = RetryPolicy(max_delay=10.0, backoff_factor=2.0, jitter=True)
        for _ in range(50):
            assert 1.0 <= policy.next_delay(1.0) <= 3.0


class TestWithRetry:
    async def test_success_first_try(self) -> None:
        operation = AsyncMock(return_value="ok")
        assert await with_retry(operation, FAST) == "ok"
        operation.assert_awaited_once()

    async def test_retries_transient_then_succeeds(self) -> None:
        operation = AsyncMock(side_effect=[_network_error(), _network_error(), "ok"])
        with patch("docsfetcher.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await with_retry(operation, FAST) == "ok"

        assert operation.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 1.0]

    async def test_gives_up_after_max_attempts(self) -> None:
        operation = AsyncMock(side_effect=_network_error())
        with (
            patch("docsfetcher.retry.asyncio.sleep", new=AsyncMock()),
            pytest.raises(DocsFetcherError) as exc_info,
        ):
            await with_retry(operation, FAST)

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert operation.await_count == 3

    async def test_non_retryable_raised_immediately(self) -> None:
        error = DocsFetcherError(code=ErrorCode.DOCUMENTATION_NOT_FOUND, message="404")
        operation = AsyncMock(side_effect=error)
        with pytest.raises(DocsFetcherError) as exc_info:
            await with_retry(operation, FAST)

        assert exc_info.value is error
        operation.assert_awaited_once()

    async def test_no_retry_policy(self) -> None:
        operation = AsyncMock(side_effect=_network_error())
        with pytest.raises(DocsFetcherError):
            await with_retry(operation, NO_RETRY)
        operation.assert_awaited_once()

    async def test_custom_predicate(self) -> None:
        policy = RetryPolicy(
            max_attempts=3, initial_delay=0.0, jitter=False, is_retryable=lambda _exc: False
        )
        operation = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await with_retry(operation, policy)
        operation.assert_awaited_once()

"""
Unit tests for resilient_api.py - retry logic for idempotent calendar reads.

Tests coverage:
- is_retryable_error() - Error classification
- call_with_retry() - Exponential backoff retry logic
- Retry behavior: success, transient failures, permanent failures
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from googleapiclient.errors import HttpError

from shared.resilient_api import call_with_retry, is_retryable_error


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_http_response():
    """Create a mock HTTP response for HttpError testing."""
    def create_response(status: int):
        response = MagicMock()
        response.status = status
        response.reason = "Test error"
        return response
    return create_response


# ============================================================================
# Test is_retryable_error()
# ============================================================================


class TestIsRetryableError:
    """Test error classification logic."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_transient_http_errors_are_retryable(self, mock_http_response, status):
        error = HttpError(resp=mock_http_response(status), content=b"Transient")

        assert is_retryable_error(error) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_client_http_errors_not_retryable(self, mock_http_response, status):
        error = HttpError(resp=mock_http_response(status), content=b"Client error")

        assert is_retryable_error(error) is False

    def test_connection_error_is_retryable(self):
        assert is_retryable_error(ConnectionError("Connection refused")) is True

    def test_timeout_error_is_retryable(self):
        assert is_retryable_error(TimeoutError("Request timeout")) is True

    def test_os_error_is_retryable(self):
        """httplib2 surfaces DNS/socket failures as OSError."""
        assert is_retryable_error(OSError("Network unreachable")) is True

    def test_value_error_not_retryable(self):
        assert is_retryable_error(ValueError("Invalid argument")) is False


# ============================================================================
# Test call_with_retry()
# ============================================================================


class TestCallWithRetry:
    """Test retry scenarios."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        func = AsyncMock(return_value={"items": []})

        result = await call_with_retry(func, "agenda", max_retries=3, initial_delay=0)

        assert result == {"items": []}
        func.assert_awaited_once_with("agenda")

    @pytest.mark.asyncio
    async def test_success_after_transient_failures(self, mock_http_response):
        transient = HttpError(resp=mock_http_response(503), content=b"Unavailable")
        func = AsyncMock(side_effect=[transient, ConnectionError("reset"), {"id": "evt-1"}])

        result = await call_with_retry(func, max_retries=3, initial_delay=0)

        assert result == {"id": "evt-1"}
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        func = AsyncMock(side_effect=TimeoutError("slow"))

        with pytest.raises(TimeoutError):
            await call_with_retry(func, max_retries=2, initial_delay=0)

        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self, mock_http_response):
        not_found = HttpError(resp=mock_http_response(404), content=b"Not found")
        func = AsyncMock(side_effect=not_found)

        with pytest.raises(HttpError):
            await call_with_retry(func, max_retries=3, initial_delay=0)

        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        func = AsyncMock(side_effect=ConnectionError("refused"))

        with pytest.raises(ConnectionError):
            await call_with_retry(func, max_retries=0, initial_delay=0)

        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_kwargs_passed_through(self):
        func = AsyncMock(return_value="ok")

        await call_with_retry(func, "a", max_retries=1, initial_delay=0, page_token="p2")

        func.assert_awaited_once_with("a", page_token="p2")

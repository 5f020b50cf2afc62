"""Unit tests for the retry helper."""

import pytest

from apos_static.utils import retry as retry_module
from apos_static.utils.retry import retry_with_exponential_backoff


class Flaky:
    """Async callable failing a set number of times before succeeding."""

    def __init__(self, failures: int, exc: type[Exception] = ConnectionError) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self, value: str = "ok") -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"failure {self.calls}")
        return value


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record backoff delays instead of sleeping."""
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    return recorded


class TestRetryWithExponentialBackoff:
    """Test suite for retry_with_exponential_backoff."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, sleeps: list[float]) -> None:
        func = Flaky(0)
        assert await retry_with_exponential_backoff(func, "value") == "value"
        assert func.calls == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, sleeps: list[float]) -> None:
        """Test that two failures then success takes three calls."""
        func = Flaky(2)
        result = await retry_with_exponential_backoff(
            func, max_retries=3, initial_delay=0.5, backoff_factor=2.0
        )
        assert result == "ok"
        assert func.calls == 3
        assert sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self, sleeps: list[float]) -> None:
        func = Flaky(10)
        with pytest.raises(ConnectionError, match="failure 3"):
            await retry_with_exponential_backoff(func, max_retries=2, initial_delay=1.0)
        assert func.calls == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_delay_capped(self, sleeps: list[float]) -> None:
        func = Flaky(4)
        await retry_with_exponential_backoff(
            func, max_retries=4, initial_delay=1.0, backoff_factor=3.0, max_delay=5.0
        )
        assert sleeps == [1.0, 3.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_unlisted_exception_not_retried(self, sleeps: list[float]) -> None:
        """Test that non-retryable errors propagate on the first attempt."""
        func = Flaky(1, exc=ValueError)
        with pytest.raises(ValueError):
            await retry_with_exponential_backoff(
                func, max_retries=3, retry_on_exceptions=(ConnectionError,)
            )
        assert func.calls == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_on_retry_hook(self, sleeps: list[float]) -> None:
        seen: list[tuple[int, str]] = []
        func = Flaky(2)
        await retry_with_exponential_backoff(
            func, max_retries=3, initial_delay=0, on_retry=lambda n, e: seen.append((n, str(e)))
        )
        assert seen == [(1, "failure 1"), (2, "failure 2")]

    @pytest.mark.asyncio
    async def test_zero_retries(self, sleeps: list[float]) -> None:
        func = Flaky(1)
        with pytest.raises(ConnectionError):
            await retry_with_exponential_backoff(func, max_retries=0)
        assert func.calls == 1

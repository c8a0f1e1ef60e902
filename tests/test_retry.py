"""Tests for retry strategies and RetryContext."""

import pytest

from rulepool.errors import BackendError, PlacementConflictError, TransientBackendError
from rulepool.retry import ExponentialBackoff, NoRetry, RetryContext, is_retryable


class TestExponentialBackoff:
    """Test delay calculation and retry decisions."""

    def test_delays_grow_and_cap(self):
        """Delays double from the base and stop at the cap."""
        strategy = ExponentialBackoff(base_delay=0.5, max_delay=3.0, jitter=False)

        assert [strategy.next_delay(a) for a in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]

    def test_jitter_stays_in_range(self):
        """Jitter moves the delay by at most jitter_range."""
        strategy = ExponentialBackoff(base_delay=1.0, jitter=True, jitter_range=0.25)

        for _ in range(50):
            assert 0.75 <= strategy.next_delay(0) <= 1.25

    def test_should_retry_respects_limit(self):
        """No retry past max_retries."""
        strategy = ExponentialBackoff(max_retries=2)

        assert strategy.should_retry(1, TransientBackendError("x")) is True
        assert strategy.should_retry(2, TransientBackendError("x")) is True
        assert strategy.should_retry(3, TransientBackendError("x")) is False

    def test_only_retryable_errors(self):
        """Permanent errors are never retried."""
        strategy = ExponentialBackoff()

        assert strategy.should_retry(1, BackendError("denied")) is False
        assert strategy.should_retry(1, ValueError("bug")) is False

    def test_custom_predicate(self):
        """A predicate narrows what is retried."""
        strategy = ExponentialBackoff(retryable=lambda e: isinstance(e, PlacementConflictError))

        assert strategy.should_retry(1, PlacementConflictError("full")) is True
        assert strategy.should_retry(1, TransientBackendError("throttled")) is False

    def test_is_retryable(self):
        """Only pool errors flagged retryable qualify by default."""
        assert is_retryable(TransientBackendError("x")) is True
        assert is_retryable(BackendError("x")) is False
        assert is_retryable(RuntimeError("x")) is False

    def test_no_retry(self):
        """NoRetry never retries."""
        assert NoRetry().should_retry(0, TransientBackendError("x")) is False
        assert NoRetry().next_delay(3) == 0.0


class TestRetryContext:
    """Test running coroutines under a strategy."""

    @pytest.fixture
    def sleeps(self, monkeypatch):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr("rulepool.retry.asyncio.sleep", fake_sleep)
        return delays

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, sleeps):
        """Transient failures are retried until the call succeeds."""
        attempts = []

        async def flaky(value):
            attempts.append(value)
            if len(attempts) < 3:
                raise TransientBackendError("throttled")
            return value * 2

        ctx = RetryContext(ExponentialBackoff(base_delay=1.0, jitter=False))

        assert await ctx.run_async(flaky, 21) == 42
        assert ctx.attempt == 3
        assert len(ctx.errors) == 2
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_failure_raised_at_once(self, sleeps):
        """Non-retryable errors propagate on the first attempt."""
        async def denied():
            raise BackendError("AccessDenied")

        ctx = RetryContext(ExponentialBackoff())

        with pytest.raises(BackendError):
            await ctx.run_async(denied)

        assert ctx.attempt == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, sleeps):
        """The last error surfaces once retries run out."""
        async def throttled():
            raise TransientBackendError("throttled")

        ctx = RetryContext(ExponentialBackoff(max_retries=2, jitter=False))

        with pytest.raises(TransientBackendError):
            await ctx.run_async(throttled)

        assert ctx.attempt == 3
        assert isinstance(ctx.last_error, TransientBackendError)

    @pytest.mark.asyncio
    async def test_retry_after_honoured(self, sleeps):
        """A server-provided retry_after extends the delay."""
        calls = []

        async def throttled():
            calls.append(1)
            if len(calls) == 1:
                raise TransientBackendError("slow down", retry_after=5.0)
            return "ok"

        ctx = RetryContext(ExponentialBackoff(base_delay=0.5, jitter=False))

        assert await ctx.run_async(throttled) == "ok"
        assert sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, sleeps):
        """The callback sees attempt, error and delay."""
        seen = []

        async def once():
            if not seen:
                raise TransientBackendError("x")
            return True

        ctx = RetryContext(
            ExponentialBackoff(base_delay=0.25, jitter=False),
            on_retry=lambda attempt, error, delay: seen.append((attempt, type(error), delay)),
        )

        await ctx.run_async(once)

        assert seen == [(1, TransientBackendError, 0.25)]

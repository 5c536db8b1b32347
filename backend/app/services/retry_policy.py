"""Exponential backoff for job step retries."""

from app.core.errors import NonRetriableError


class RetryPolicy:
    """
    Step retry strategy.

    Example:
        policy = RetryPolicy(max_attempts=3)

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await call_model()
            except Exception as e:
                if not policy.should_retry(e, attempt):
                    raise
                await asyncio.sleep(policy.calculate_delay(attempt))
    """

    INITIAL_DELAY_MS = 1000
    BACKOFF_FACTOR = 2
    MAX_DELAY_MS = 30000
    MAX_ATTEMPTS = 3

    def __init__(
        self,
        initial_delay_ms: int = INITIAL_DELAY_MS,
        backoff_factor: int = BACKOFF_FACTOR,
        max_delay_ms: int = MAX_DELAY_MS,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.initial_delay_ms = initial_delay_ms
        self.backoff_factor = backoff_factor
        self.max_delay_ms = max_delay_ms
        self.max_attempts = max(1, max_attempts)

    def is_retryable(self, error: BaseException) -> bool:
        """Everything is transient unless it says otherwise."""
        return not isinstance(error, NonRetriableError)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Whether attempt number `attempt` (1-based) may be followed by another."""
        return self.is_retryable(error) and attempt < self.max_attempts

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        delay_ms = self.initial_delay_ms * (self.backoff_factor ** max(0, attempt - 1))
        return min(delay_ms, self.max_delay_ms) / 1000

"""
Circuit breaker around AI provider calls.

After ``failure_threshold`` consecutive failures the circuit opens and
calls are short-circuited (fallback, or ServiceUnavailableError) until
``reset_timeout`` seconds pass. The next call then goes through
half-open; ``success_threshold`` successes close the circuit again and a
single failure reopens it.
"""
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from khata.core.config import settings
from khata.utils import messages
from khata.utils.exceptions import ServiceUnavailableError


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.next_attempt = 0.0

    async def call(
        self,
        fn: Callable[[], Awaitable[Any]],
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        if self.state is CircuitState.OPEN:
            if self._clock() < self.next_attempt:
                logger.warning(f"Circuit breaker OPEN for {self.name}, short-circuiting call")
                if fallback is not None:
                    return fallback()
                raise ServiceUnavailableError(messages.SERVICE_UNAVAILABLE)

            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            logger.info(f"Circuit breaker HALF_OPEN for {self.name}")

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            if fallback is not None:
                logger.warning(f"{self.name} failed, using fallback")
                return fallback()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        self.failure_count = 0
        if self.state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = CircuitState.CLOSED
                logger.info(f"Circuit breaker CLOSED for {self.name}")

    def _on_failure(self) -> None:
        self.failure_count += 1
        if self.state is CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            self.next_attempt = self._clock() + self.reset_timeout
            logger.error(
                f"Circuit breaker OPEN for {self.name} after {self.failure_count} failures, "
                f"retrying in {self.reset_timeout:.0f}s"
            )

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        logger.info(f"Circuit breaker manually reset for {self.name}")


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        failure_threshold=settings.circuit_failure_threshold,
        success_threshold=settings.circuit_success_threshold,
        reset_timeout=settings.circuit_reset_seconds,
    )


gemini_circuit_breaker = _breaker("Gemini AI")
openai_circuit_breaker = _breaker("OpenAI")

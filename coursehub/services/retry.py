from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(base: float = 1.0) -> Callable[[int], float]:
    """Delay after failed attempt ``n`` (1-based): base, 2*base, 4*base, ..."""

    def delay(attempt: int) -> float:
        return base * (2 ** (attempt - 1))

    return delay


def no_backoff(attempt: int) -> float:
    return 0.0


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=exponential_backoff)
    sleep: Callable[[float], Any] = time.sleep
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    label: str = "call"

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` until it returns; re-raise the last error once attempts run out."""
        attempts = max(1, self.max_attempts)
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            try:
                logger.info("%s: attempt %d/%d", self.label, attempt, attempts)
                return fn(*args, **kwargs)
            except self.retry_on as exc:
                last_error = exc
                logger.warning("%s: attempt %d failed: %s", self.label, attempt, exc)
                if attempt < attempts:
                    delay = self.backoff(attempt)
                    logger.info("%s: waiting %.1fs before retry", self.label, delay)
                    self.sleep(delay)

        assert last_error is not None
        raise last_error

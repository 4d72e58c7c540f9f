"""Bounded retry with exponential backoff.

The loop moves through ``ATTEMPTING -> BACKING_OFF -> ATTEMPTING ...`` until
an attempt succeeds (``SUCCEEDED``) or the policy says to fall back
(``EXHAUSTED``). ``RetryPolicy.decide`` is pure so it can be tested on its own.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    BACKING_OFF = "backing_off"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class RetryDecision(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"


@dataclass(slots=True)
class RetryOutcome(Generic[T]):
    value: T | None
    state: RetryState
    attempts: int
    errors: list[str] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.state is RetryState.EXHAUSTED


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 2.0

    def decide(self, attempt: int, error: Exception) -> RetryDecision:
        """``attempt`` is the zero-based index of the attempt that just failed."""
        if attempt + 1 < self.max_attempts:
            return RetryDecision.RETRY
        return RetryDecision.FALLBACK

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * (2**attempt)

    def execute(self, operation: Callable[[], T], sleep: Callable[[float], None] = time.sleep) -> RetryOutcome[T]:
        state = RetryState.ATTEMPTING
        errors: list[str] = []
        attempt = 0
        while state is not RetryState.EXHAUSTED:
            if state is RetryState.BACKING_OFF:
                sleep(self.delay_for(attempt - 1))
                state = RetryState.ATTEMPTING
                continue
            try:
                value = operation()
            except Exception as exc:
                errors.append(str(exc))
                decision = self.decide(attempt, exc)
                logger.warning(
                    "retry_attempt_failed",
                    extra={
                        "extra_fields": {
                            "attempt": attempt + 1,
                            "max_attempts": self.max_attempts,
                            "decision": decision.value,
                            "error": str(exc),
                        }
                    },
                )
                attempt += 1
                state = RetryState.BACKING_OFF if decision is RetryDecision.RETRY else RetryState.EXHAUSTED
                continue
            return RetryOutcome(value=value, state=RetryState.SUCCEEDED, attempts=attempt + 1, errors=errors)
        return RetryOutcome(value=None, state=state, attempts=attempt, errors=errors)

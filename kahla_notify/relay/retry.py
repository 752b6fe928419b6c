# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Bounded retry policy with exponential backoff."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait between.

    Attributes:
        attempts: Total attempts per stage, including the first.
        delay_seconds: Wait after the first failure.
        max_delay_seconds: Upper bound for the doubling delay.
    """

    attempts: int = 10
    delay_seconds: float = 0.1
    max_delay_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must not be negative")

    def backoff(self, attempt: int) -> float:
        """Return the wait after failed attempt number ``attempt`` (1-based)."""
        return min(
            self.delay_seconds * (2 ** max(attempt - 1, 0)),
            self.max_delay_seconds,
        )

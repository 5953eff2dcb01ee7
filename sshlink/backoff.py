"""Reconnect backoff schedule.

Delays come from a fixed table indexed by the number of consecutive
failed attempts, clamped at the last entry:

    attempt:  0  1  2  3   4   5   6 ...
    delay:    1  2  4  8  16  30  30 ...
"""

from __future__ import annotations

from dataclasses import dataclass

from tenacity import RetryCallState
from tenacity.wait import wait_base

from sshlink.constants import BACKOFF_TABLE


def backoff_delay(attempt: int, table: tuple[float, ...] = BACKOFF_TABLE) -> float:
    """Delay in seconds before the reconnect attempt with 0-based index ``attempt``."""
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    return table[min(attempt, len(table) - 1)]


@dataclass(slots=True)
class ReconnectPolicy:
    """Backoff table plus the count of failed attempts since the last success."""

    table: tuple[float, ...] = BACKOFF_TABLE
    attempts: int = 0

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.table)

    def next_delay(self) -> float:
        return self.delay(self.attempts)

    def record_failure(self) -> None:
        self.attempts += 1

    def reset(self) -> None:
        self.attempts = 0


class wait_backoff_table(wait_base):  # noqa: N801 - tenacity naming
    """Tenacity wait strategy reading the delay from a ReconnectPolicy."""

    def __init__(self, policy: ReconnectPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.policy.next_delay()

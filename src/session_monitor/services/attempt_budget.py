"""Reconnect attempt budget.

The stored attempt counter only means something while the last attempt
is inside the rolling window. Everything here is derived from timestamps
and an injected ``now``, so overlapping passes agree on the count and no
state is held in memory between passes.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from healthcore.clock import ensure_utc


def effective_attempts(
    count: int | None,
    last_attempt_at: datetime | None,
    now: datetime,
    window: timedelta,
) -> int:
    """Attempts that still count against the budget at ``now``.

    A counter whose last attempt fell outside ``window`` (or that was never
    stamped) is worth zero.
    """
    if not count or count < 0 or last_attempt_at is None:
        return 0
    if ensure_utc(last_attempt_at) < ensure_utc(now) - window:
        return 0
    return count


class AttemptBudget:
    """Maximum automated recovery attempts within a rolling window."""

    def __init__(self, max_attempts: int, window: timedelta):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.window = window

    def effective(self, count: int | None, last_attempt_at: datetime | None, now: datetime) -> int:
        return effective_attempts(count, last_attempt_at, now, self.window)

    def is_exhausted(
        self, count: int | None, last_attempt_at: datetime | None, now: datetime
    ) -> bool:
        return self.effective(count, last_attempt_at, now) >= self.max_attempts

    def reaches_limit(self, attempts: int) -> bool:
        """True once a just-recorded attempt uses up the budget."""
        return attempts >= self.max_attempts

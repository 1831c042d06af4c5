from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, Mapping, Optional, Sequence, TypeVar

from .models import Streak

T = TypeVar("T")


def compute_streak(history: Sequence[Optional[bool]], *, allow_pending_today: bool = False) -> Streak:
    """Current and longest run of goal-met days.

    `history[0]` is today, `history[1]` yesterday, and so on. Both False and
    None (no record) end a run; a missing day is never skipped over.

    With `allow_pending_today`, a missing record for today only (index 0,
    value None) does not reset `current`, since the day is still open. A
    failed day is never treated as pending.
    """
    start = 0
    if allow_pending_today and history and history[0] is None:
        start = 1

    current = 0
    for met in history[start:]:
        if met is not True:
            break
        current += 1

    longest = 0
    run = 0
    for met in history:
        if met is True:
            run += 1
            if run > longest:
                longest = run
        else:
            run = 0

    return Streak(current=current, longest=longest)


def history_from_days(
    by_day: Mapping[date, T],
    today: date,
    days: int,
    predicate: Callable[[T], bool],
) -> list[Optional[bool]]:
    """Build a newest-first goal-met history; days with no record become None."""
    out: list[Optional[bool]] = []
    for i in range(days):
        d = today - timedelta(days=i)
        rec = by_day.get(d)
        out.append(None if rec is None else bool(predicate(rec)))
    return out

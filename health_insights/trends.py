from __future__ import annotations

from typing import Optional, Sequence

TREND_WINDOW_DAYS = 7
TREND_TOLERANCE = 0.05

Value = Optional[float]


def _mean(vals: Sequence[Value]) -> Optional[float]:
    present = [float(v) for v in vals if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def avg_tail(values: Sequence[Value], n: int) -> Optional[float]:
    """Mean of the last n slots, skipping missing days."""
    if not values or n < 1:
        return None
    return _mean(values[-n:])


def avg_prev_tail(values: Sequence[Value], n: int) -> Optional[float]:
    """Mean of the n slots before the last n; None unless 2n slots exist."""
    if n < 1 or len(values) < 2 * n:
        return None
    return _mean(values[-2 * n : -n])


def compare_windows(values: Sequence[Value], window: int = TREND_WINDOW_DAYS) -> tuple[Optional[float], Optional[float]]:
    """Return (recent mean, prior mean), or (None, None) when there is not enough history."""
    window = max(1, int(window))
    if len(values) < 2 * window:
        return None, None
    return avg_tail(values, window), avg_prev_tail(values, window)


def classify_trend(
    values: Sequence[Value],
    window: int = TREND_WINDOW_DAYS,
    tolerance: float = TREND_TOLERANCE,
    *,
    higher_is_better: bool = True,
) -> str:
    """Classify chronologically ordered daily values as improving / declining / stable.

    The last `window` values are compared with the `window` values before them.
    Missing days (None) are skipped inside a window. With fewer than two full
    windows, or a window with no values at all, the trend is "stable".

    The tolerance band is `tolerance` times the midpoint of the two window
    magnitudes, so swapping the windows always flips improving <-> declining.
    """
    recent, prior = compare_windows(values, window)
    if recent is None or prior is None:
        return "stable"

    band = tolerance * (abs(recent) + abs(prior)) / 2.0
    delta = recent - prior
    if delta > band:
        up = True
    elif delta < -band:
        up = False
    else:
        return "stable"

    if not higher_is_better:
        up = not up
    return "improving" if up else "declining"

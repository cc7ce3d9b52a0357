"""Prize schedules: rank position to percentage of the prize pool."""

from __future__ import annotations

from typing import Mapping, Optional

DEFAULT_HEAD_SHARE = 50.0
DECAY_RATIO = 0.7
SUM_TOLERANCE = 0.01


def _auto_schedule(winner_count: int, head_share: float) -> dict[int, float]:
    if winner_count == 1:
        return {1: 100.0}

    schedule = {1: round(head_share, 2)}
    remaining = 100.0 - schedule[1]
    weights = [DECAY_RATIO**step for step in range(winner_count - 1)]
    total_weight = sum(weights)
    for offset, weight in enumerate(weights[:-1]):
        schedule[offset + 2] = round(remaining * weight / total_weight, 2)
    # The last position takes whatever rounding left over.
    schedule[winner_count] = round(100.0 - sum(schedule.values()), 2)
    return schedule


def validate_schedule(schedule: Mapping[int, float], winner_count: int) -> None:
    """Check an explicit schedule against the number of winners.

    Raises
    ------
    ValueError
        If positions are not exactly ``1..winner_count``, a percentage is
        negative, or the percentages do not add up to 100.
    """

    positions = sorted(int(pos) for pos in schedule)
    if positions != list(range(1, winner_count + 1)):
        raise ValueError(
            f"prize schedule must define positions 1..{winner_count}, got {positions}"
        )
    if any(float(pct) < 0 for pct in schedule.values()):
        raise ValueError("prize percentages must not be negative")
    total = sum(float(pct) for pct in schedule.values())
    if abs(total - 100.0) > SUM_TOLERANCE:
        raise ValueError(f"prize schedule must sum to 100, got {total:.2f}")


def prize_schedule(
    winner_count: int,
    schedule: Optional[Mapping[int, float]] = None,
    head_share: float = DEFAULT_HEAD_SHARE,
) -> dict[int, float]:
    """Return the ``{position: percentage}`` split for ``winner_count`` winners.

    Parameters
    ----------
    winner_count : int
        Number of ranked winners; must be at least 1.
    schedule : Optional[Mapping[int, float]], default: None
        Explicit schedule. When omitted an automatic schedule is generated.
    head_share : float, default: 50.0
        Percentage awarded to position 1 by the automatic schedule.

    Returns
    -------
    dict[int, float]
        Percentages keyed by 1-based position, summing to 100 within 0.01.

    Notes
    -----
    The automatic schedule gives position 1 ``head_share``. The rest of the
    pool is split across positions ``2..winner_count`` so that every position
    gets 70% of the one before it. Values are rounded to two decimals and the
    final position absorbs the rounding remainder.
    """

    if winner_count < 1:
        raise ValueError("winner_count must be at least 1")
    if schedule is not None:
        validate_schedule(schedule, winner_count)
        return {int(pos): float(pct) for pos, pct in sorted(schedule.items())}
    if not 0 < head_share <= 100:
        raise ValueError("head_share must be within (0, 100]")
    return _auto_schedule(winner_count, float(head_share))


def truncate_schedule(schedule: Mapping[int, float], winner_count: int) -> dict[int, float]:
    """Rescale the first ``winner_count`` positions of ``schedule`` to 100.

    Used when fewer winners were found than the schedule was written for.
    """

    head = {pos: float(schedule[pos]) for pos in range(1, winner_count + 1)}
    total = sum(head.values())
    if total <= 0:
        return _auto_schedule(winner_count, DEFAULT_HEAD_SHARE)
    scaled = {pos: round(pct * 100.0 / total, 2) for pos, pct in head.items()}
    scaled[winner_count] = round(100.0 - sum(v for p, v in scaled.items() if p != winner_count), 2)
    return scaled


def payouts(pool: float, schedule: Mapping[int, float]) -> dict[int, float]:
    """Return the amount owed to each position: ``pool * pct / 100``."""

    return {pos: round(pool * pct / 100.0, 8) for pos, pct in schedule.items()}


__all__ = ["payouts", "prize_schedule", "truncate_schedule", "validate_schedule"]

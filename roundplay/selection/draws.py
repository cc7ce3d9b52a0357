"""Winner draws over a finished session's claims.

Every draw is deterministic given its random source, so tests can force
outcomes with a seeded or scripted :class:`random.Random`.
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class ClaimEntry:
    """A participant's claimed number as seen by the draw."""

    participant_id: int
    number: int
    claimed_at: datetime


@dataclass(frozen=True)
class QuizStanding:
    """Accumulated quiz result for one participant."""

    participant_id: int
    score: int
    total_response_ms: int
    joined_at: datetime
    answered_count: int = 0


@dataclass
class DrawOutcome:
    """Result of a draw.

    Attributes
    ----------
    winners : list[int]
        Winning participant ids in rank order (position 1 first).
    drawn_numbers : list[int]
        Numbers drawn, in draw order. Empty when no draw was needed.
    eliminations : list[tuple[int, list[int]]]
        Reverse mode only: ``(drawn_number, eliminated participant ids)`` per
        draw, including draws that eliminated nobody.
    """

    winners: list[int] = field(default_factory=list)
    drawn_numbers: list[int] = field(default_factory=list)
    eliminations: list[tuple[int, list[int]]] = field(default_factory=list)

    def eliminated_at(self) -> dict[int, int]:
        """Map participant id to the 1-based draw that eliminated them."""
        result: dict[int, int] = {}
        for draw_index, (_, eliminated) in enumerate(self.eliminations, start=1):
            for participant_id in eliminated:
                result[participant_id] = draw_index
        return result


def _by_claim_time(entries: Iterable[ClaimEntry]) -> list[ClaimEntry]:
    return sorted(entries, key=lambda entry: (entry.claimed_at, entry.participant_id))


def _distinct_participants(entries: Sequence[ClaimEntry]) -> list[ClaimEntry]:
    seen: set[int] = set()
    unique: list[ClaimEntry] = []
    for entry in _by_claim_time(entries):
        if entry.participant_id in seen:
            continue
        seen.add(entry.participant_id)
        unique.append(entry)
    return unique


def direct_draw(
    claims: Sequence[ClaimEntry],
    range_min: int,
    range_max: int,
    winner_count: int,
    rng: random.Random,
) -> DrawOutcome:
    """Draw ``winner_count`` distinct numbers from the whole range.

    Claimants of a drawn number win, earliest claim first. The number of
    winners is capped at ``min(winner_count, claimants)``; when the initial
    draw matches fewer claimants than that, further numbers are drawn one at a
    time from the undrawn part of the range until the cap is reached. When
    there are no more claimants than ``winner_count`` they all win without a
    draw.
    """

    if winner_count < 1:
        raise ValueError("winner_count must be at least 1")
    entries = _distinct_participants(claims)
    if not entries:
        return DrawOutcome()
    if len(entries) <= winner_count:
        return DrawOutcome(winners=[entry.participant_id for entry in entries])

    by_number: dict[int, list[ClaimEntry]] = {}
    for entry in entries:
        by_number.setdefault(entry.number, []).append(entry)

    pool = list(range(range_min, range_max + 1))
    cap = min(winner_count, len(entries))
    drawn = rng.sample(pool, min(winner_count, len(pool)))
    winners: list[int] = []

    def _award(number: int) -> None:
        for entry in by_number.get(number, ()):
            if len(winners) >= cap:
                return
            winners.append(entry.participant_id)

    for number in drawn:
        _award(number)

    if len(winners) < cap:
        drawn_set = set(drawn)
        undrawn = [number for number in pool if number not in drawn_set]
        while len(winners) < cap and undrawn:
            number = rng.choice(undrawn)
            undrawn.remove(number)
            drawn.append(number)
            _award(number)

    return DrawOutcome(winners=winners, drawn_numbers=list(drawn))


def reverse_elimination(
    claims: Sequence[ClaimEntry],
    range_min: int,
    range_max: int,
    winner_count: int,
    rng: random.Random,
) -> DrawOutcome:
    """Eliminate claimants of drawn numbers until ``winner_count`` remain.

    Numbers are drawn uniformly from the full range without replacement. When
    a single draw would eliminate more participants than may still be removed
    (possible only with duplicate claims), the earliest claimants of that
    number survive.
    """

    if winner_count < 1:
        raise ValueError("winner_count must be at least 1")
    remaining = _distinct_participants(claims)
    if len(remaining) <= winner_count:
        return DrawOutcome(winners=[entry.participant_id for entry in remaining])

    undrawn = list(range(range_min, range_max + 1))
    outcome = DrawOutcome()
    while len(remaining) > winner_count and undrawn:
        number = rng.choice(undrawn)
        undrawn.remove(number)
        outcome.drawn_numbers.append(number)

        matches = [entry for entry in remaining if entry.number == number]
        budget = len(remaining) - winner_count
        if len(matches) > budget:
            matches = matches[len(matches) - budget:]
        eliminated = {entry.participant_id for entry in matches}
        remaining = [entry for entry in remaining if entry.participant_id not in eliminated]
        outcome.eliminations.append((number, [entry.participant_id for entry in matches]))

    outcome.winners = [entry.participant_id for entry in remaining]
    return outcome


def seed_random(seed: str) -> random.Random:
    """Return a :class:`random.Random` seeded from the SHA-256 of ``seed``."""

    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return random.Random(int.from_bytes(digest, "big"))


def weighted_draw(
    tickets: Mapping[int, int],
    winner_count: int,
    seed: str,
) -> DrawOutcome:
    """Pick distinct participants weighted by their ticket counts.

    Parameters
    ----------
    tickets : Mapping[int, int]
        Ticket count per participant id. Iteration order defines the virtual
        ticket pool layout, so callers should pass a stable ordering.
    winner_count : int
        Number of winners to select; capped at the number of ticket holders.
    seed : str
        Externally supplied seed value.
    """

    if winner_count < 1:
        raise ValueError("winner_count must be at least 1")
    holders = [(pid, int(count)) for pid, count in tickets.items() if int(count) > 0]
    rng = seed_random(seed)
    winners: list[int] = []
    while holders and len(winners) < winner_count:
        total = sum(count for _, count in holders)
        index = rng.randrange(total)
        for position, (participant_id, count) in enumerate(holders):
            if index < count:
                winners.append(participant_id)
                # Winner's tickets leave the pool.
                del holders[position]
                break
            index -= count
    return DrawOutcome(winners=winners)


def rank_standings(standings: Iterable[QuizStanding]) -> list[QuizStanding]:
    """Order quiz standings by score, then total response time, then join time."""

    return sorted(
        standings,
        key=lambda s: (-s.score, s.total_response_ms, s.joined_at, s.participant_id),
    )


def top_score(standings: Iterable[QuizStanding], winner_count: int) -> DrawOutcome:
    """Winners are the best ``winner_count`` participants who answered anything."""

    ranked = [s for s in rank_standings(standings) if s.answered_count > 0]
    return DrawOutcome(winners=[s.participant_id for s in ranked[:winner_count]])


def derive_seed(rng: random.Random, session_id: str, salt: Optional[str] = None) -> str:
    """Build the seed string for a weighted draw from a session's random source."""

    parts = [session_id, f"{rng.getrandbits(128):032x}"]
    if salt:
        parts.append(salt)
    return ":".join(parts)


__all__ = [
    "ClaimEntry",
    "DrawOutcome",
    "QuizStanding",
    "derive_seed",
    "direct_draw",
    "rank_standings",
    "reverse_elimination",
    "seed_random",
    "top_score",
    "weighted_draw",
]

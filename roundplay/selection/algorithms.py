"""Pluggable registry of winner-selection algorithms."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

from .draws import (
    ClaimEntry,
    DrawOutcome,
    QuizStanding,
    derive_seed,
    direct_draw,
    rank_standings,
    reverse_elimination,
    top_score,
    weighted_draw,
)
from .tickets import DEFAULT_TICKET_TIERS, TicketTiers, allocate_tickets


@dataclass(frozen=True)
class SelectionContext:
    """Everything an algorithm may look at when choosing winners.

    Attributes
    ----------
    session_id : str
        Session being resolved; mixed into weighted-draw seeds.
    winner_count : int
        Requested number of winners.
    rng : random.Random
        Random source obtained from the session's seed provider.
    claims : Sequence[ClaimEntry]
        NumberPick claims. Empty for quiz sessions.
    standings : Sequence[QuizStanding]
        Quiz standings. Empty for NumberPick sessions.
    range_min, range_max : Optional[int]
        NumberPick draw range.
    tiers : TicketTiers
        Ticket allocation used by the weighted draw.
    """

    session_id: str
    winner_count: int
    rng: random.Random
    claims: Sequence[ClaimEntry] = ()
    standings: Sequence[QuizStanding] = ()
    range_min: Optional[int] = None
    range_max: Optional[int] = None
    tiers: TicketTiers = field(default=DEFAULT_TICKET_TIERS)

    def require_range(self) -> tuple[int, int]:
        if self.range_min is None or self.range_max is None:
            raise ValueError("number range is required for this algorithm")
        return self.range_min, self.range_max


@dataclass(frozen=True)
class SelectionAlgorithm:
    """Definition of a selection algorithm.

    Attributes
    ----------
    key : str
        Registry key, stored on the session configuration.
    selector : Callable[[SelectionContext], DrawOutcome]
        Callable returning the winners for a context.
    description : Optional[str]
        Human-readable summary of the algorithm's behaviour.
    """

    key: str
    selector: Callable[[SelectionContext], DrawOutcome]
    description: Optional[str] = None

    def select(self, context: SelectionContext) -> DrawOutcome:
        return self.selector(context)


class AlgorithmRegistry:
    """Mutable registry mapping algorithm keys to definitions."""

    def __init__(self) -> None:
        self._algorithms: Dict[str, SelectionAlgorithm] = {}

    def register(self, algorithm: SelectionAlgorithm, *, replace: bool = False) -> None:
        """Register a selection algorithm under its key.

        Parameters
        ----------
        algorithm : SelectionAlgorithm
            Algorithm to add to the registry.
        replace : bool, default: False
            When ``True`` an existing registration with the same key is
            overwritten. Otherwise a duplicate raises :class:`ValueError`.
        """
        if not replace and algorithm.key in self._algorithms:
            raise ValueError(f"Algorithm '{algorithm.key}' is already registered")
        self._algorithms[algorithm.key] = algorithm

    def get(self, key: str) -> SelectionAlgorithm:
        """Return the algorithm registered under ``key``."""
        try:
            return self._algorithms[key]
        except KeyError as exc:
            raise KeyError(f"Unknown selection algorithm '{key}'") from exc

    def select(self, key: str, context: SelectionContext) -> DrawOutcome:
        """Run the algorithm referenced by ``key`` against ``context``."""
        return self.get(key).select(context)

    def available_algorithms(self) -> Dict[str, SelectionAlgorithm]:
        """Return a copy of the registered algorithms keyed by identifier."""
        return dict(self._algorithms)


def _direct(context: SelectionContext) -> DrawOutcome:
    range_min, range_max = context.require_range()
    return direct_draw(context.claims, range_min, range_max, context.winner_count, context.rng)


def _reverse(context: SelectionContext) -> DrawOutcome:
    range_min, range_max = context.require_range()
    return reverse_elimination(
        context.claims, range_min, range_max, context.winner_count, context.rng
    )


def _weighted(context: SelectionContext) -> DrawOutcome:
    if context.standings:
        ranked = [
            s.participant_id for s in rank_standings(context.standings) if s.answered_count > 0
        ]
    else:
        ordered = sorted(context.claims, key=lambda c: (c.claimed_at, c.participant_id))
        ranked = list(dict.fromkeys(c.participant_id for c in ordered))
    if not ranked:
        return DrawOutcome()
    tickets = allocate_tickets(ranked, context.tiers)
    seed = derive_seed(context.rng, context.session_id)
    return weighted_draw(tickets, context.winner_count, seed)


def _top_score(context: SelectionContext) -> DrawOutcome:
    return top_score(context.standings, context.winner_count)


DEFAULT_SELECTION_REGISTRY = AlgorithmRegistry()
DEFAULT_SELECTION_REGISTRY.register(
    SelectionAlgorithm(
        key="direct",
        selector=_direct,
        description="Draw winner_count numbers from the full range; their claimants win.",
    )
)
DEFAULT_SELECTION_REGISTRY.register(
    SelectionAlgorithm(
        key="reverse",
        selector=_reverse,
        description=(
            "Draw numbers without replacement and eliminate their claimants until "
            "winner_count participants remain."
        ),
    )
)
DEFAULT_SELECTION_REGISTRY.register(
    SelectionAlgorithm(
        key="weighted",
        selector=_weighted,
        description="Rank-tiered raffle tickets drawn from a SHA-256 seeded pool.",
    )
)
DEFAULT_SELECTION_REGISTRY.register(
    SelectionAlgorithm(
        key="top_score",
        selector=_top_score,
        description="Highest quiz score wins; ties go to the faster, then earlier, player.",
    )
)

__all__ = [
    "AlgorithmRegistry",
    "DEFAULT_SELECTION_REGISTRY",
    "SelectionAlgorithm",
    "SelectionContext",
]

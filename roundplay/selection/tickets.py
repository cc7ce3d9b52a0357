"""Raffle ticket allocation from leaderboard rank."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class TicketTiers:
    """Tickets granted per leaderboard tier, capped per participant."""

    rank1: int = 25
    ranks2to5: int = 15
    ranks6to10: int = 10
    remaining: int = 1
    max_per_participant: int = 25

    def tier_for(self, rank: int) -> str:
        if rank < 1:
            raise ValueError("rank must be 1-based")
        if rank == 1:
            return "rank1"
        if rank <= 5:
            return "ranks2to5"
        if rank <= 10:
            return "ranks6to10"
        return "remaining"

    def tickets_for(self, rank: int) -> int:
        base = getattr(self, self.tier_for(rank))
        return min(base, self.max_per_participant)


DEFAULT_TICKET_TIERS = TicketTiers()


def allocate_tickets(
    ranked_participant_ids: Iterable[int],
    tiers: TicketTiers = DEFAULT_TICKET_TIERS,
) -> dict[int, int]:
    """Return ``{participant_id: tickets}`` for participants already in rank order."""

    return {
        participant_id: tiers.tickets_for(rank)
        for rank, participant_id in enumerate(ranked_participant_ids, start=1)
    }


__all__ = ["DEFAULT_TICKET_TIERS", "TicketTiers", "allocate_tickets"]

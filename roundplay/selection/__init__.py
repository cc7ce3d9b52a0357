"""Winner selection and prize distribution."""

from .algorithms import (
    AlgorithmRegistry,
    DEFAULT_SELECTION_REGISTRY,
    SelectionAlgorithm,
    SelectionContext,
)
from .draws import (
    ClaimEntry,
    DrawOutcome,
    QuizStanding,
    direct_draw,
    rank_standings,
    reverse_elimination,
    top_score,
    weighted_draw,
)
from .prizes import payouts, prize_schedule, validate_schedule
from .tickets import DEFAULT_TICKET_TIERS, TicketTiers, allocate_tickets

__all__ = [
    "AlgorithmRegistry",
    "ClaimEntry",
    "DEFAULT_SELECTION_REGISTRY",
    "DEFAULT_TICKET_TIERS",
    "DrawOutcome",
    "QuizStanding",
    "SelectionAlgorithm",
    "SelectionContext",
    "TicketTiers",
    "allocate_tickets",
    "direct_draw",
    "payouts",
    "prize_schedule",
    "rank_standings",
    "reverse_elimination",
    "top_score",
    "validate_schedule",
    "weighted_draw",
]

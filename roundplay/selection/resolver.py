"""Persist the outcome of a session: winners, ranks, prize shares and payouts."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Claim, Enrollment, GameSession
from ..session_config import NumberPickConfig, QuizConfig
from .algorithms import AlgorithmRegistry, DEFAULT_SELECTION_REGISTRY, SelectionContext
from .draws import ClaimEntry, DrawOutcome, QuizStanding
from .prizes import payouts, prize_schedule, truncate_schedule

logger = logging.getLogger(__name__)


@dataclass
class WinnerAward:
    participant_id: int
    position: int
    share: float
    payout: Optional[float]


@dataclass
class Resolution:
    """Value object describing a resolved session.

    Attributes
    ----------
    algorithm_key : str
        Algorithm that produced the winners.
    outcome : DrawOutcome
        Raw draw result (drawn numbers, eliminations).
    awards : list[WinnerAward]
        One entry per winner in rank order. Empty when no winner exists.
    schedule : dict[int, float]
        Percentages applied to the awards.
    submitters : int
        Participants that submitted a claim or at least one answer.
    """

    algorithm_key: str
    outcome: DrawOutcome
    awards: list[WinnerAward] = field(default_factory=list)
    schedule: dict[int, float] = field(default_factory=dict)
    submitters: int = 0

    @property
    def has_winners(self) -> bool:
        return bool(self.awards)


class WinnerResolver:
    """Select winners for a finished session and write them to its enrollments."""

    def __init__(
        self,
        session: Session,
        *,
        registry: Optional[AlgorithmRegistry] = None,
    ) -> None:
        """Create a resolver bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        registry : Optional[AlgorithmRegistry], default: None
            Custom selection registry. When omitted the default registry is used.
        """

        self._session = session
        self._registry = registry or DEFAULT_SELECTION_REGISTRY

    def build_context(self, game: GameSession, rng: random.Random) -> SelectionContext:
        settings = game.settings
        if isinstance(settings, NumberPickConfig):
            claims = [
                ClaimEntry(c.participant_id, c.number, c.claimed_at)
                for c in Claim.for_session(self._session, game.id)
            ]
            return SelectionContext(
                session_id=game.id,
                winner_count=settings.winner_count,
                rng=rng,
                claims=claims,
                range_min=settings.range_min,
                range_max=settings.range_max,
            )
        standings = [
            QuizStanding(
                participant_id=e.participant_id,
                score=e.score,
                total_response_ms=e.total_response_ms,
                joined_at=e.joined_at,
                answered_count=e.answered_count,
            )
            for e in game.enrollments
        ]
        return SelectionContext(
            session_id=game.id,
            winner_count=settings.winner_count,
            rng=rng,
            standings=standings,
        )

    def resolve(self, game: GameSession, rng: random.Random) -> Resolution:
        """Run the configured algorithm for ``game`` and persist the winners.

        Parameters
        ----------
        game : GameSession
            Session in the ``resolving`` phase.
        rng : random.Random
            Random source for the draw.

        Returns
        -------
        Resolution
            The winners with their prize positions. When nobody submitted,
            ``awards`` is empty and nothing is written.

        Notes
        -----
        Winners get ``is_winner``, ``prize_position``, ``prize_share`` and (when
        a prize pool is configured) ``payout`` on their enrollment, and their
        ``sessions_won`` counter is incremented. In reverse mode every
        eliminated enrollment records the draw that removed it.
        """

        settings = game.settings
        key = settings.algorithm_key
        context = self.build_context(game, rng)
        submitters = (
            len({c.participant_id for c in context.claims})
            if isinstance(settings, NumberPickConfig)
            else sum(1 for s in context.standings if s.answered_count > 0)
        )
        if submitters == 0:
            return Resolution(algorithm_key=key, outcome=DrawOutcome(), submitters=0)

        outcome = self._registry.select(key, context)
        resolution = Resolution(algorithm_key=key, outcome=outcome, submitters=submitters)
        if not outcome.winners:
            logger.info(f"Session {game.id}: {key} draw produced no winners")
            return resolution

        resolution.schedule = self._schedule_for(settings, len(outcome.winners))
        prizes = settings.prizes
        amounts = payouts(prizes.pool, resolution.schedule) if prizes else {}

        enrollments = {e.participant_id: e for e in game.enrollments}
        for position, participant_id in enumerate(outcome.winners, start=1):
            enrollment = enrollments.get(participant_id)
            if enrollment is None:
                logger.warning(
                    f"Session {game.id}: winner {participant_id} has no enrollment; skipped"
                )
                continue
            award = WinnerAward(
                participant_id=participant_id,
                position=position,
                share=resolution.schedule[position],
                payout=amounts.get(position),
            )
            self._apply_award(enrollment, award)
            resolution.awards.append(award)

        for participant_id, draw_index in outcome.eliminated_at().items():
            enrollment = enrollments.get(participant_id)
            if enrollment is not None:
                enrollment.eliminated_at_draw = draw_index

        self._session.flush()
        logger.info(
            f"Session {game.id}: {key} selected {len(resolution.awards)} winner(s) "
            f"from {submitters} submitter(s)"
        )
        return resolution

    @staticmethod
    def _schedule_for(settings: NumberPickConfig | QuizConfig, winners: int) -> dict[int, float]:
        prizes = settings.prizes
        if prizes is None:
            return prize_schedule(winners)
        if prizes.schedule is not None and not prizes.auto_calculate:
            if winners == settings.winner_count:
                return prize_schedule(winners, prizes.schedule)
            return truncate_schedule(prizes.schedule, winners)
        return prize_schedule(winners, head_share=prizes.head_share)

    @staticmethod
    def _apply_award(enrollment: Enrollment, award: WinnerAward) -> None:
        enrollment.is_winner = True
        enrollment.prize_position = award.position
        enrollment.prize_share = award.share
        enrollment.payout = award.payout
        participant = enrollment.participant
        if participant is not None:
            participant.sessions_won += 1


__all__ = ["Resolution", "WinnerAward", "WinnerResolver"]

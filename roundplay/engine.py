"""Session state machine and the public game API.

Every mutation of a session happens while holding that session's
:class:`threading.RLock`, inside one repository transaction, and every phase
change is a compare-and-swap ``UPDATE ... WHERE phase = :expected``. A caller
whose swap matches no row arrived late: it gets the post-transition state
back as a :class:`~roundplay.results.TransitionResult` with
``applied=False``. Webhooks are emitted only after the lock is released.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import Settings
from .db.utils import as_utc
from .errors import InvariantViolation, ValidationError
from .models import (
    Enrollment,
    GameSession,
    OutcomeEvent,
    PHASE_TRANSITIONS,
    QuizAnswer,
    QuizQuestion,
    SessionPhase,
)
from .models.utils import generate_session_token
from .providers import (
    AllowAllEligibility,
    EligibilityProvider,
    ParticipantDirectory,
    ParticipantRef,
    QuestionProvider,
    RandomSeedProvider,
    SqlParticipantDirectory,
    SystemRandomSeedProvider,
)
from .registry import AllocationRegistry, ReserveStatus
from .repository import GameRepository, SessionSnapshot
from .results import ActionResult, ActionStatus, TransitionResult
from .selection.algorithms import AlgorithmRegistry
from .selection.draws import QuizStanding, rank_standings
from .selection.resolver import Resolution, WinnerResolver
from .session_config import NUMBER_PICK, QUIZ, QuizConfig, parse_config
from .timers import PhaseScheduler, ThreadingPhaseScheduler
from .webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

# Timers may fire a hair before the stored deadline.
DEADLINE_SLACK = timedelta(milliseconds=250)

BASE_POINTS = 100
MAX_SPEED_BONUS = 50
SPEED_BONUS_STEP_MS = 200

_TERMINAL_EVENTS = ("session.ended", "session.cancelled")

_RESERVE_STATUS = {
    ReserveStatus.OK: ActionStatus.OK,
    ReserveStatus.ALREADY_CLAIMED: ActionStatus.ALREADY_CLAIMED,
    ReserveStatus.OUT_OF_RANGE: ActionStatus.OUT_OF_RANGE,
    ReserveStatus.DUPLICATE_NOT_ALLOWED: ActionStatus.ALREADY_SUBMITTED,
}


def answer_points(correct: bool, response_ms: int) -> int:
    """Points for one answer: 100 plus up to 50 for speed, 0 when wrong."""

    if not correct:
        return 0
    return BASE_POINTS + max(0, MAX_SPEED_BONUS - response_ms // SPEED_BONUS_STEP_MS)


@dataclass
class _Outbox:
    """Webhook events collected under the lock and emitted after it."""

    events: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def add(self, event_type: str, session_id: str, **extra: Any) -> None:
        self.events.append((event_type, session_id, extra))


class GameEngine:
    """Runs NumberPick and Quiz sessions.

    Parameters
    ----------
    repository : GameRepository
        Transactions and cached snapshots.
    dispatcher : Optional[WebhookDispatcher], default: None
        Outcome notifications. Events are dropped when omitted.
    seed_provider : Optional[RandomSeedProvider], default: None
        Randomness for draws. System randomness when omitted.
    scheduler : Optional[PhaseScheduler], default: None
        Deadline timers. One ``threading.Timer`` per session when omitted.
    participants : Optional[ParticipantDirectory], default: None
        Identity resolution. Get-or-create in the game database when omitted.
    eligibility : Optional[EligibilityProvider], default: None
        Join gate for quiz sessions with ``requires_eligibility_check``.
    questions : Optional[QuestionProvider], default: None
        Required to create quiz sessions.
    algorithms : Optional[AlgorithmRegistry], default: None
        Winner-selection algorithms. The default registry when omitted.
    settings : Optional[Settings], default: None
        Game defaults used when parsing configurations.
    clock : Callable[[], datetime], default: now in UTC
    """

    def __init__(
        self,
        repository: GameRepository,
        *,
        dispatcher: Optional[WebhookDispatcher] = None,
        seed_provider: Optional[RandomSeedProvider] = None,
        scheduler: Optional[PhaseScheduler] = None,
        participants: Optional[ParticipantDirectory] = None,
        eligibility: Optional[EligibilityProvider] = None,
        questions: Optional[QuestionProvider] = None,
        algorithms: Optional[AlgorithmRegistry] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.repository = repository
        self.registry = AllocationRegistry(repository)
        self.dispatcher = dispatcher
        self.seed_provider = seed_provider or SystemRandomSeedProvider()
        self.scheduler = scheduler or ThreadingPhaseScheduler()
        self.participants = participants or SqlParticipantDirectory()
        self.eligibility = eligibility or AllowAllEligibility()
        self.questions = questions
        self.algorithms = algorithms
        self.settings = settings or Settings()
        self._clock = clock
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # -------- locking / guards --------
    def _session_lock(self, session_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    def _forget_lock(self, session_id: str) -> None:
        # Terminal sessions reject every action; later calls get a fresh lock.
        with self._locks_guard:
            self._locks.pop(session_id, None)

    def _swap_phase(
        self,
        db: Session,
        game: GameSession,
        expected: SessionPhase,
        new: SessionPhase,
        **values: Any,
    ) -> bool:
        """Move ``game`` from ``expected`` to ``new`` if nobody else did first."""

        if new not in PHASE_TRANSITIONS[expected]:
            raise InvariantViolation(f"Illegal transition {expected.value} -> {new.value}")
        result = db.execute(
            update(GameSession)
            .where(GameSession.id == game.id, GameSession.phase == expected.value)
            .values(phase=new.value, **values)
            .execution_options(synchronize_session=False)
        )
        self.repository.mark_dirty(db, game.id)
        if result.rowcount != 1:
            db.refresh(game)
            logger.debug(
                f"Session {game.id}: {expected.value} -> {new.value} lost, now {game.phase}"
            )
            return False
        db.refresh(game)
        logger.info(f"Session {game.id}: {expected.value} -> {new.value}")
        return True

    def _record(
        self,
        db: Session,
        game: GameSession,
        kind: str,
        *,
        participant_id: Optional[int] = None,
        number: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        db.add(
            OutcomeEvent(
                session_id=game.id,
                kind=kind,
                participant_id=participant_id,
                number=number,
                details=dict(details) if details else None,
                created_at=self._clock(),
            )
        )

    # -------- creation --------
    def create_session(
        self,
        kind: str,
        config: Optional[Mapping[str, Any]],
        scope: str,
        created_by: str,
        title: Optional[str] = None,
    ) -> SessionSnapshot:
        """Validate ``config``, persist a new session and open its lobby.

        Raises
        ------
        ValidationError
            If the configuration is malformed, or a quiz is requested without
            a question provider.
        """

        settings = parse_config(kind, config, self.settings.games)
        if not scope:
            raise ValidationError("scope must not be empty")
        if not created_by:
            raise ValidationError("created_by must not be empty")

        questions = []
        if kind == QUIZ:
            if self.questions is None:
                raise ValidationError("quiz sessions need a question provider")
            questions = self.questions.generate(
                settings.question_count, settings.difficulty, settings.categories
            )
            if len(questions) != settings.question_count:
                raise ValidationError(
                    f"question provider returned {len(questions)} of "
                    f"{settings.question_count} questions"
                )

        now = self._clock()
        with self.repository.transaction() as db:
            game = GameSession(
                id=generate_session_token(db),
                kind=kind,
                phase=SessionPhase.CREATED.value,
                title=title,
                created_by=created_by,
                scope=scope,
                config=settings.to_dict(),
                participant_count=0,
                min_participants=settings.min_participants,
                max_participants=settings.max_participants,
                created_at=now,
            )
            db.add(game)
            for position, question in enumerate(questions):
                db.add(
                    QuizQuestion(
                        session_id=game.id,
                        position=position,
                        prompt=question.prompt,
                        options=list(question.options),
                        correct_index=question.correct_index,
                        category=question.category,
                    )
                )
            self._record(db, game, "created", details={"kind": kind, "created_by": created_by})
            db.flush()
            self._swap_phase(
                db,
                game,
                SessionPhase.CREATED,
                SessionPhase.LOBBY,
                phase_deadline=now + timedelta(seconds=settings.join_phase_seconds),
            )
            session_id = game.id

        self.scheduler.schedule(session_id, settings.join_phase_seconds, self._on_deadline)
        logger.info(f"Created {kind} session {session_id} in scope {scope}")
        outbox = _Outbox()
        outbox.add("session.created", session_id)
        self._flush(outbox)
        return self.repository.get_snapshot(session_id)

    # -------- player actions --------
    def join(self, session_id: str, ref: ParticipantRef) -> ActionResult:
        """Enroll a participant while the session is in its lobby."""

        with self.repository.read() as db:
            game = GameSession.get(db, session_id)
            if game is None:
                return ActionResult(ActionStatus.SESSION_NOT_FOUND, session_id)
            if game.phase != SessionPhase.LOBBY.value:
                return ActionResult(ActionStatus.SESSION_NOT_JOINABLE, session_id)
            settings = game.settings

        # Identity and eligibility are resolved before taking the session lock
        # so a slow balance service never blocks other players.
        with self.repository.transaction() as db:
            participant_id = self.participants.resolve(db, ref).id
        if isinstance(settings, QuizConfig) and settings.requires_eligibility_check:
            try:
                eligible = self.eligibility.is_eligible(participant_id, ref.external_id)
            except Exception as exc:
                logger.warning(
                    f"Eligibility check for participant {participant_id} failed: {exc}"
                )
                eligible = False
            if not eligible:
                return ActionResult(ActionStatus.NOT_ELIGIBLE, session_id, participant_id)

        outbox = _Outbox()
        with self._session_lock(session_id):
            result = self._join_locked(session_id, participant_id, outbox)
            if result.ok:
                outbox.add("player.joined", session_id, participant_id=participant_id)
                if settings.auto_start:
                    self._maybe_auto_start(session_id, outbox)
        self._flush(outbox)
        return result

    def _join_locked(self, session_id: str, participant_id: int, outbox: _Outbox) -> ActionResult:
        with self.repository.transaction() as db:
            game = GameSession.get(db, session_id)
            if game is None:
                return ActionResult(ActionStatus.SESSION_NOT_FOUND, session_id)
            if game.phase != SessionPhase.LOBBY.value:
                return ActionResult(ActionStatus.SESSION_NOT_JOINABLE, session_id, participant_id)
            if Enrollment.get_for(db, session_id, participant_id) is not None:
                return ActionResult(ActionStatus.ALREADY_JOINED, session_id, participant_id)

            bumped = db.execute(
                update(GameSession)
                .where(
                    GameSession.id == session_id,
                    GameSession.phase == SessionPhase.LOBBY.value,
                    GameSession.participant_count < GameSession.max_participants,
                )
                .values(participant_count=GameSession.participant_count + 1)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount != 1:
                return ActionResult(ActionStatus.FULL, session_id, participant_id)
            db.refresh(game)
            if game.participant_count > game.max_participants:
                raise InvariantViolation(f"Session {session_id} exceeded its capacity")

            try:
                with db.begin_nested():
                    enrollment = Enrollment(
                        session_id=session_id,
                        participant_id=participant_id,
                        joined_at=self._clock(),
                    )
                    db.add(enrollment)
                    db.flush()
            except IntegrityError:
                db.rollback()
                return ActionResult(ActionStatus.ALREADY_JOINED, session_id, participant_id)
            db.refresh(enrollment)
            enrollment.participant.sessions_played += 1
            self._record(db, game, "joined", participant_id=participant_id)
            self.repository.mark_dirty(db, session_id)
            logger.info(
                f"Session {session_id}: participant {participant_id} joined "
                f"({game.participant_count}/{game.max_participants})"
            )
        return ActionResult(ActionStatus.OK, session_id, participant_id)

    def _maybe_auto_start(self, session_id: str, outbox: _Outbox) -> None:
        with self.repository.read() as db:
            game = GameSession.get(db, session_id)
            ready = (
                game is not None
                and game.phase == SessionPhase.LOBBY.value
                and game.participant_count >= game.min_participants
            )
        if ready:
            self._start_locked(session_id, outbox, reason="auto")

    def submit_claim(self, session_id: str, participant_id: int, number: int) -> ActionResult:
        """Claim ``number`` in an active NumberPick session."""

        outbox = _Outbox()
        with self._session_lock(session_id):
            with self.repository.transaction() as db:
                game = GameSession.get(db, session_id)
                if game is None:
                    return ActionResult(ActionStatus.SESSION_NOT_FOUND, session_id)
                if game.kind != NUMBER_PICK or game.phase != SessionPhase.ACTIVE.value:
                    return ActionResult(ActionStatus.WRONG_PHASE, session_id, participant_id)
                if Enrollment.get_for(db, session_id, participant_id) is None:
                    return ActionResult(ActionStatus.NOT_ENROLLED, session_id, participant_id)

                reserved = self.registry.reserve(
                    db, game, number, participant_id, now=self._clock()
                )
                status = _RESERVE_STATUS[reserved]
                if status is not ActionStatus.OK:
                    return ActionResult(status, session_id, participant_id, number)
                self._record(db, game, "claimed", participant_id=participant_id, number=number)
                everyone_in = Enrollment.count_without_claim(db, session_id) == 0

            outbox.add("number.claimed", session_id, participant_id=participant_id, number=number)
            if everyone_in:
                self._resolve_locked(session_id, outbox)
        self._flush(outbox)
        return ActionResult(ActionStatus.OK, session_id, participant_id, number)

    def submit_answer(
        self,
        session_id: str,
        participant_id: int,
        question_index: int,
        answer_index: int,
    ) -> ActionResult:
        """Answer the open question of an active quiz.

        Returns ``TOO_LATE`` for a question that is no longer open and
        ``WRONG_PHASE`` for one that has not been asked yet.
        """

        outbox = _Outbox()
        with self._session_lock(session_id):
            with self.repository.transaction() as db:
                game = GameSession.get(db, session_id)
                if game is None:
                    return ActionResult(ActionStatus.SESSION_NOT_FOUND, session_id)
                if game.kind != QUIZ or game.phase != SessionPhase.ACTIVE.value:
                    if game.kind == QUIZ and game.phase_enum in (
                        SessionPhase.RESOLVING,
                        SessionPhase.COMPLETED,
                    ):
                        return ActionResult(ActionStatus.TOO_LATE, session_id, participant_id)
                    return ActionResult(ActionStatus.WRONG_PHASE, session_id, participant_id)
                enrollment = Enrollment.get_for(db, session_id, participant_id)
                if enrollment is None:
                    return ActionResult(ActionStatus.NOT_ENROLLED, session_id, participant_id)

                current = game.current_question
                if current is None or question_index > current:
                    return ActionResult(ActionStatus.WRONG_PHASE, session_id, participant_id)
                if question_index < current:
                    return ActionResult(ActionStatus.TOO_LATE, session_id, participant_id)
                question = QuizQuestion.at_position(db, session_id, current)
                if question is None:
                    raise InvariantViolation(f"Session {session_id} has no question {current}")
                if not 0 <= answer_index < len(question.options):
                    return ActionResult(ActionStatus.INVALID_ANSWER, session_id, participant_id)

                now = self._clock()
                opened = question.opened_at or game.started_at or now
                response_ms = max(0, int((as_utc(now) - as_utc(opened)).total_seconds() * 1000))
                correct = answer_index == question.correct_index
                points = answer_points(correct, response_ms)
                try:
                    with db.begin_nested():
                        db.add(
                            QuizAnswer(
                                session_id=session_id,
                                question_id=question.id,
                                participant_id=participant_id,
                                answer_index=answer_index,
                                is_correct=correct,
                                response_ms=response_ms,
                                points=points,
                                answered_at=now,
                            )
                        )
                        db.flush()
                except IntegrityError:
                    return ActionResult(ActionStatus.ALREADY_ANSWERED, session_id, participant_id)

                enrollment.score += points
                enrollment.answered_count += 1
                enrollment.total_response_ms += response_ms
                enrollment.last_answered_at = now
                if correct:
                    enrollment.correct_answers += 1
                self._record(
                    db,
                    game,
                    "answered",
                    participant_id=participant_id,
                    details={"question": current, "correct": correct, "points": points},
                )
                self.repository.mark_dirty(db, session_id)
                answered = db.scalar(
                    select(func.count(QuizAnswer.id)).where(QuizAnswer.question_id == question.id)
                )
                everyone_in = answered >= game.participant_count
                correct_index = question.correct_index

            if everyone_in:
                self._advance_question_locked(session_id, current, outbox)
        self._flush(outbox)
        return ActionResult(
            ActionStatus.OK,
            session_id,
            participant_id,
            correct=correct,
            correct_index=None if correct else correct_index,
        )

    # -------- admin / timer transitions --------
    def start(self, session_id: str) -> TransitionResult:
        """Leave the lobby now. Needs at least ``min_participants`` enrolled."""

        outbox = _Outbox()
        with self._session_lock(session_id):
            result = self._start_locked(session_id, outbox, reason="admin")
        self._flush(outbox)
        return result

    def _start_locked(self, session_id: str, outbox: _Outbox, *, reason: str) -> TransitionResult:
        now = self._clock()
        with self.repository.transaction() as db:
            game = self._require(db, session_id)
            if game.phase != SessionPhase.LOBBY.value:
                return TransitionResult(session_id, game.phase, False)
            if game.participant_count < game.min_participants:
                logger.info(
                    f"Session {session_id}: start refused with {game.participant_count} of "
                    f"{game.min_participants} participants"
                )
                return TransitionResult(session_id, game.phase, False)

            settings = game.settings
            if game.is_quiz:
                seconds = settings.seconds_per_question
                extra = {"current_question": 0}
            else:
                seconds = settings.selection_phase_seconds
                extra = {}
            applied = self._swap_phase(
                db,
                game,
                SessionPhase.LOBBY,
                SessionPhase.ACTIVE,
                started_at=now,
                phase_deadline=now + timedelta(seconds=seconds),
                **extra,
            )
            if not applied:
                return TransitionResult(session_id, game.phase, False)
            if game.is_quiz:
                first = QuizQuestion.at_position(db, session_id, 0)
                if first is not None:
                    first.opened_at = now
            self._record(
                db,
                game,
                "started",
                details={"reason": reason, "participants": game.participant_count},
            )

        if game.is_number_pick:
            with self.repository.read() as db:
                fresh = GameSession.get(db, session_id)
                if fresh is not None:
                    self.registry.materialize(db, fresh)
        self.scheduler.schedule(session_id, seconds, self._on_deadline)
        outbox.add("session.started", session_id, reason=reason)
        return TransitionResult(session_id, SessionPhase.ACTIVE.value, True)

    def cancel(self, session_id: str, reason: str = "cancelled by admin") -> TransitionResult:
        """Cancel a session from any non-terminal phase."""

        outbox = _Outbox()
        with self._session_lock(session_id):
            result = self._cancel_locked(session_id, reason, outbox)
        self._flush(outbox)
        return result

    def _cancel_locked(self, session_id: str, reason: str, outbox: _Outbox) -> TransitionResult:
        with self.repository.transaction() as db:
            game = self._require(db, session_id)
            current = game.phase_enum
            if current.is_terminal:
                return TransitionResult(session_id, game.phase, False)
            applied = self._swap_phase(
                db,
                game,
                current,
                SessionPhase.CANCELLED,
                cancel_reason=reason,
                resolved_at=self._clock(),
                phase_deadline=None,
            )
            if not applied:
                return TransitionResult(session_id, game.phase, False)
            if game.is_number_pick:
                self.registry.release(db, session_id)
            self._record(db, game, "cancelled", details={"reason": reason})
        self.scheduler.cancel(session_id)
        outbox.add("session.cancelled", session_id, reason=reason)
        return TransitionResult(session_id, SessionPhase.CANCELLED.value, True)

    def handle_deadline(self, session_id: str) -> TransitionResult:
        """Apply whatever the session's elapsed deadline calls for.

        Lobby: start with enough participants, otherwise cancel. Active
        NumberPick: resolve. Active quiz: open the next question or resolve
        after the last one. A deadline that has not passed yet, or a session
        that already moved on, is a no-op.
        """

        outbox = _Outbox()
        with self._session_lock(session_id):
            with self.repository.read() as db:
                game = GameSession.get(db, session_id)
                if game is None:
                    return TransitionResult(session_id, "missing", False)
                phase = game.phase_enum
                due = game.deadline_passed(self._clock(), DEADLINE_SLACK)
                current_question = game.current_question
                enough = game.participant_count >= game.min_participants
                is_quiz = game.is_quiz

            if not due:
                return TransitionResult(session_id, phase.value, False)

            if phase is SessionPhase.LOBBY:
                if enough:
                    result = self._start_locked(session_id, outbox, reason="join_timeout")
                else:
                    result = self._cancel_locked(
                        session_id, "not enough participants joined", outbox
                    )
            elif phase is SessionPhase.ACTIVE and is_quiz:
                result = self._advance_question_locked(session_id, current_question, outbox)
            elif phase is SessionPhase.ACTIVE:
                result = self._resolve_locked(session_id, outbox)
            else:
                result = TransitionResult(session_id, phase.value, False)
        self._flush(outbox)
        return result

    def _on_deadline(self, session_id: str) -> TransitionResult:
        return self.handle_deadline(session_id)

    def _advance_question_locked(
        self, session_id: str, expected_index: Optional[int], outbox: _Outbox
    ) -> TransitionResult:
        now = self._clock()
        with self.repository.transaction() as db:
            game = self._require(db, session_id)
            if game.phase != SessionPhase.ACTIVE.value or game.current_question != expected_index:
                return TransitionResult(session_id, game.phase, False)
            next_index = expected_index + 1
            if next_index >= len(game.questions):
                last = True
            else:
                last = False
                seconds = game.settings.seconds_per_question
                moved = db.execute(
                    update(GameSession)
                    .where(
                        GameSession.id == session_id,
                        GameSession.phase == SessionPhase.ACTIVE.value,
                        GameSession.current_question == expected_index,
                    )
                    .values(
                        current_question=next_index,
                        phase_deadline=now + timedelta(seconds=seconds),
                    )
                    .execution_options(synchronize_session=False)
                )
                if moved.rowcount != 1:
                    return TransitionResult(session_id, game.phase, False)
                question = QuizQuestion.at_position(db, session_id, next_index)
                if question is not None:
                    question.opened_at = now
                self._record(db, game, "question_advanced", details={"question": next_index})
                self.repository.mark_dirty(db, session_id)

        if last:
            return self._resolve_locked(session_id, outbox)
        self.scheduler.schedule(session_id, seconds, self._on_deadline)
        logger.info(f"Session {session_id}: question {next_index + 1} opened")
        return TransitionResult(session_id, SessionPhase.ACTIVE.value, True)

    def _resolve_locked(self, session_id: str, outbox: _Outbox) -> TransitionResult:
        with self.repository.transaction() as db:
            game = self._require(db, session_id)
            applied = self._swap_phase(
                db, game, SessionPhase.ACTIVE, SessionPhase.RESOLVING, phase_deadline=None
            )
            if not applied:
                return TransitionResult(session_id, game.phase, False)
        self.scheduler.cancel(session_id)
        return self._finish_resolution_locked(session_id, outbox)

    def _finish_resolution_locked(self, session_id: str, outbox: _Outbox) -> TransitionResult:
        """Select winners for a session already in ``resolving``."""

        try:
            resolution = self._select_winners(session_id)
        except Exception as exc:
            logger.exception(f"Session {session_id}: winner selection failed")
            self._finish_cancelled(session_id, f"resolution failed: {exc}", outbox)
            self._forget_lock(session_id)
            raise

        if not resolution.has_winners:
            reason = (
                "no participant submitted"
                if resolution.submitters == 0
                else "no winners could be determined"
            )
            self._finish_cancelled(session_id, reason, outbox)
            return TransitionResult(session_id, SessionPhase.CANCELLED.value, True)

        winners = [
            {
                "participant_id": award.participant_id,
                "position": award.position,
                "prize_share": award.share,
                "payout": award.payout,
            }
            for award in resolution.awards
        ]
        outbox.add(
            "winner.selected",
            session_id,
            algorithm=resolution.algorithm_key,
            drawn_numbers=list(resolution.outcome.drawn_numbers),
        )
        outbox.add("session.ended", session_id, awards=winners)
        return TransitionResult(session_id, SessionPhase.COMPLETED.value, True)

    def _select_winners(self, session_id: str) -> Resolution:
        rng = self.seed_provider.next()
        with self.repository.transaction() as db:
            game = self._require(db, session_id)
            resolution = WinnerResolver(db, registry=self.algorithms).resolve(game, rng)
            if not resolution.has_winners:
                return resolution
            self._swap_phase(
                db,
                game,
                SessionPhase.RESOLVING,
                SessionPhase.COMPLETED,
                resolved_at=self._clock(),
            )
            self._record(
                db,
                game,
                "resolved",
                details={
                    "algorithm": resolution.algorithm_key,
                    "winners": [a.participant_id for a in resolution.awards],
                    "drawn_numbers": list(resolution.outcome.drawn_numbers),
                },
            )
        return resolution

    def _finish_cancelled(self, session_id: str, reason: str, outbox: _Outbox) -> None:
        with self.repository.transaction() as db:
            game = self._require(db, session_id)
            if not self._swap_phase(
                db,
                game,
                SessionPhase.RESOLVING,
                SessionPhase.CANCELLED,
                cancel_reason=reason,
                resolved_at=self._clock(),
            ):
                return
            if game.is_number_pick:
                self.registry.release(db, session_id)
            self._record(db, game, "cancelled", details={"reason": reason})
        logger.info(f"Session {session_id}: cancelled during resolution ({reason})")
        outbox.add("session.cancelled", session_id, reason=reason)

    # -------- queries --------
    def get_session_state(self, session_id: str) -> Optional[SessionSnapshot]:
        return self.repository.get_snapshot(session_id)

    def available_numbers(self, session_id: str) -> Optional[frozenset[int]]:
        return self.registry.available_numbers(session_id)

    def leaderboard(self, session_id: str) -> Optional[list[dict[str, Any]]]:
        """Quiz ranking by score, response time and join time.

        Returns ``None`` for unknown sessions and an empty list for
        NumberPick sessions.
        """

        with self.repository.read() as db:
            game = GameSession.get(db, session_id)
            if game is None:
                return None
            if not game.is_quiz:
                return []
            enrollments = {e.participant_id: e for e in game.enrollments}
            standings = rank_standings(
                QuizStanding(
                    participant_id=e.participant_id,
                    score=e.score,
                    total_response_ms=e.total_response_ms,
                    joined_at=e.joined_at,
                    answered_count=e.answered_count,
                )
                for e in enrollments.values()
            )
            return [
                {
                    "rank": rank,
                    "participant_id": s.participant_id,
                    "display_name": enrollments[s.participant_id].participant.display_name,
                    "score": s.score,
                    "correct_answers": enrollments[s.participant_id].correct_answers,
                    "total_response_ms": s.total_response_ms,
                }
                for rank, s in enumerate(standings, start=1)
            ]

    def resume_resolutions(self) -> list[TransitionResult]:
        """Finish sessions a previous process left in ``resolving``.

        Winners are selected again from the stored claims or scores. A
        session whose selection fails is cancelled, as during a live round.
        """

        with self.repository.read() as db:
            stuck = db.scalars(
                select(GameSession.id).where(GameSession.phase == SessionPhase.RESOLVING.value)
            ).all()
        results = []
        for session_id in stuck:
            outbox = _Outbox()
            with self._session_lock(session_id):
                if self._current_phase(session_id) != SessionPhase.RESOLVING.value:
                    continue
                logger.warning(f"Session {session_id}: resuming interrupted resolution")
                try:
                    result = self._finish_resolution_locked(session_id, outbox)
                except Exception:
                    logger.error(f"Session {session_id}: interrupted resolution failed again")
                    result = TransitionResult(session_id, self._current_phase(session_id), False)
            self._flush(outbox)
            results.append(result)
        return results

    def resume_timers(self) -> int:
        """Re-arm deadline timers for every lobby or active session.

        Call once at process start; sessions whose deadline passed while the
        process was down fire immediately. Sessions left in ``resolving`` are
        finished first through :meth:`resume_resolutions`.
        """

        self.resume_resolutions()

        now = as_utc(self._clock())
        with self.repository.read() as db:
            rows = db.execute(
                select(GameSession.id, GameSession.phase_deadline).where(
                    GameSession.phase.in_(
                        (SessionPhase.LOBBY.value, SessionPhase.ACTIVE.value)
                    ),
                    GameSession.phase_deadline.isnot(None),
                )
            ).all()
        for session_id, deadline in rows:
            delay = max(0.0, (as_utc(deadline) - now).total_seconds())
            self.scheduler.schedule(session_id, delay, self._on_deadline)
        if rows:
            logger.info(f"Re-armed {len(rows)} session timer(s)")
        return len(rows)

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        if self.dispatcher is not None:
            self.dispatcher.shutdown()

    # -------- helpers --------
    @staticmethod
    def _require(db: Session, session_id: str) -> GameSession:
        game = GameSession.get(db, session_id)
        if game is None:
            raise InvariantViolation(f"Session {session_id} disappeared mid-operation")
        return game

    def _current_phase(self, session_id: str) -> str:
        with self.repository.read() as db:
            game = GameSession.get(db, session_id)
            return game.phase if game is not None else "missing"

    def _flush(self, outbox: _Outbox) -> None:
        for event_type, session_id, _ in outbox.events:
            if event_type in _TERMINAL_EVENTS:
                self._forget_lock(session_id)
        if self.dispatcher is None or not outbox.events:
            return
        for event_type, session_id, extra in outbox.events:
            snapshot = self.repository.get_snapshot(session_id)
            if snapshot is None:
                continue
            data: dict[str, Any] = {
                "session": snapshot.session,
                "participants": list(snapshot.participants),
            }
            if event_type in ("winner.selected", "session.ended"):
                data["winners"] = list(snapshot.winners)
            data.update(extra)
            self.dispatcher.emit(event_type, data, session_id=session_id)


__all__ = ["GameEngine", "answer_points"]

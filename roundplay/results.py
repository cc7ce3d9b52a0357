"""Typed results returned by player and admin actions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActionStatus(str, Enum):
    OK = "ok"
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_NOT_JOINABLE = "session_not_joinable"
    FULL = "full"
    ALREADY_JOINED = "already_joined"
    NOT_ELIGIBLE = "not_eligible"
    NOT_ENROLLED = "not_enrolled"
    WRONG_PHASE = "wrong_phase"
    ALREADY_CLAIMED = "already_claimed"
    OUT_OF_RANGE = "out_of_range"
    ALREADY_SUBMITTED = "already_submitted"
    TOO_LATE = "too_late"
    ALREADY_ANSWERED = "already_answered"
    INVALID_ANSWER = "invalid_answer"


_MESSAGES = {
    ActionStatus.OK: "Done.",
    ActionStatus.SESSION_NOT_FOUND: "Game not found.",
    ActionStatus.SESSION_NOT_JOINABLE: "Game is not accepting new players.",
    ActionStatus.FULL: "Game is full.",
    ActionStatus.ALREADY_JOINED: "You have already joined this game.",
    ActionStatus.NOT_ELIGIBLE: "You are not eligible to join this game.",
    ActionStatus.NOT_ENROLLED: "You are not participating in this game.",
    ActionStatus.WRONG_PHASE: "This action is not available right now.",
    ActionStatus.ALREADY_CLAIMED: "This number has already been selected.",
    ActionStatus.OUT_OF_RANGE: "Number is outside the allowed range.",
    ActionStatus.ALREADY_SUBMITTED: "You have already selected a number.",
    ActionStatus.TOO_LATE: "Time is up for this question.",
    ActionStatus.ALREADY_ANSWERED: "You have already answered this question.",
    ActionStatus.INVALID_ANSWER: "That answer option does not exist.",
}


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a join, claim or answer.

    Attributes
    ----------
    status : ActionStatus
        ``ActionStatus.OK`` on success, otherwise the specific rejection reason.
    session_id : Optional[str]
        Session the action targeted.
    participant_id : Optional[int]
        Participant the action was performed for, when known.
    number : Optional[int]
        Claimed number (NumberPick claims).
    correct : Optional[bool]
        Whether a quiz answer was correct.
    correct_index : Optional[int]
        The correct option, revealed after a wrong answer.
    """

    status: ActionStatus
    session_id: Optional[str] = None
    participant_id: Optional[int] = None
    number: Optional[int] = None
    correct: Optional[bool] = None
    correct_index: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.OK

    @property
    def message(self) -> str:
        return _MESSAGES[self.status]


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a phase transition request.

    ``applied`` is ``False`` for late arrivals: another caller already moved
    the session, and ``phase`` reports where it is now.
    """

    session_id: str
    phase: str
    applied: bool


__all__ = ["ActionResult", "ActionStatus", "TransitionResult"]

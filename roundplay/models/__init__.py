from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .participant import Participant  # noqa: F401
from .session import GameSession, SessionPhase, PHASE_TRANSITIONS  # noqa: F401
from .enrollment import Enrollment  # noqa: F401
from .claim import Claim  # noqa: F401
from .quiz import QuizQuestion, QuizAnswer  # noqa: F401
from .event import OutcomeEvent  # noqa: F401
from .webhook import DeliveryStatus, WebhookDelivery, WebhookAttempt  # noqa: F401

__all__ = [
    "Base",
    "Participant",
    "GameSession",
    "SessionPhase",
    "PHASE_TRANSITIONS",
    "Enrollment",
    "Claim",
    "QuizQuestion",
    "QuizAnswer",
    "OutcomeEvent",
    "DeliveryStatus",
    "WebhookDelivery",
    "WebhookAttempt",
]

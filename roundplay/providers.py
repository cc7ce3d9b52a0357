"""Collaborators the engine consumes: identities, eligibility, questions, randomness."""

from __future__ import annotations

import itertools
import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence
from urllib.parse import urljoin

import requests
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import Participant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipantRef:
    """How a front-end identifies a player: chat-platform id plus display name."""

    external_id: str
    display_name: Optional[str] = None


# -------- participants --------


class ParticipantDirectory(Protocol):
    def resolve(self, db: Session, ref: ParticipantRef) -> Participant:
        ...


class SqlParticipantDirectory:
    """Get-or-create participants in the game database.

    Two first-time joins by the same player may race; the loser's insert hits
    the unique ``external_id`` and the existing row is returned instead.
    """

    def resolve(self, db: Session, ref: ParticipantRef) -> Participant:
        participant = Participant.get_by_external_id(db, ref.external_id)
        if participant is not None:
            if ref.display_name and participant.display_name != ref.display_name:
                participant.display_name = ref.display_name
            return participant

        participant = Participant(external_id=ref.external_id, display_name=ref.display_name)
        try:
            with db.begin_nested():
                db.add(participant)
                db.flush()
        except IntegrityError:
            existing = Participant.get_by_external_id(db, ref.external_id)
            if existing is None:
                raise
            return existing
        logger.info(f"Created participant {participant.id} for external id {ref.external_id}")
        return participant


# -------- eligibility --------


class EligibilityProvider(Protocol):
    def is_eligible(self, participant_id: int, external_id: Optional[str] = None) -> bool:
        ...


class AllowAllEligibility:
    def is_eligible(self, participant_id: int, external_id: Optional[str] = None) -> bool:
        return True


class StaticEligibilityProvider:
    """Eligible when the participant id or external id is in a fixed allow-list."""

    def __init__(self, allowed: Iterable[Any]) -> None:
        self._allowed = {str(item) for item in allowed}

    def is_eligible(self, participant_id: int, external_id: Optional[str] = None) -> bool:
        return str(participant_id) in self._allowed or (
            external_id is not None and external_id in self._allowed
        )


class HttpEligibilityProvider:
    """Ask a wallet/balance service whether a participant holds enough tokens.

    ``GET {base_url}/{path}`` must answer ``{"balance": <number>}``. Any
    transport error, non-2xx status or malformed body means *not eligible*.

    Parameters
    ----------
    base_url : str
        Root URL of the balance service.
    min_balance : float
        Balance required to join.
    path_template : str, default: "/api/v1/balances/{external_id}"
        Formatted with ``participant_id`` and ``external_id``.
    api_key : Optional[str], default: None
        Sent as a bearer token when provided.
    timeout : float, default: 10.0
        Request timeout in seconds.
    session : Optional[requests.Session], default: None
        Injected HTTP session, mostly for tests.
    """

    def __init__(
        self,
        base_url: str,
        min_balance: float,
        *,
        path_template: str = "/api/v1/balances/{external_id}",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url must not be empty")
        self.base_url = base_url.rstrip("/")
        self.min_balance = float(min_balance)
        self.path_template = path_template
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def headers(self) -> Mapping[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def balance_of(self, participant_id: int, external_id: Optional[str] = None) -> float:
        path = self.path_template.format(
            participant_id=participant_id, external_id=external_id or participant_id
        )
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(method="GET", url=url, headers=self.headers, timeout=self.timeout)
        r.raise_for_status()
        return float(r.json()["balance"])

    def is_eligible(self, participant_id: int, external_id: Optional[str] = None) -> bool:
        try:
            balance = self.balance_of(participant_id, external_id)
        except (requests.RequestException, KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Eligibility check failed for participant {participant_id}: {exc}")
            return False
        return balance >= self.min_balance


# -------- questions --------


@dataclass(frozen=True)
class QuestionSpec:
    prompt: str
    options: tuple[str, ...]
    correct_index: int
    category: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.prompt:
            raise ValidationError("question prompt must not be empty")
        if len(self.options) != 4:
            raise ValidationError("a question needs exactly 4 options")
        if not 0 <= self.correct_index < len(self.options):
            raise ValidationError("correct_index must point at one of the options")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "QuestionSpec":
        return cls(
            prompt=str(raw["prompt"]),
            options=tuple(str(o) for o in raw["options"]),
            correct_index=int(raw["correct_index"]),
            category=raw.get("category"),
        )


class QuestionProvider(Protocol):
    def generate(
        self, count: int, difficulty: str, categories: Sequence[str]
    ) -> list[QuestionSpec]:
        ...


class StaticQuestionProvider:
    """Serve questions from a fixed bank, preferring the requested categories."""

    def __init__(self, questions: Iterable[QuestionSpec | Mapping[str, Any]]) -> None:
        self._bank = [
            q if isinstance(q, QuestionSpec) else QuestionSpec.from_mapping(q) for q in questions
        ]

    def generate(
        self, count: int, difficulty: str, categories: Sequence[str]
    ) -> list[QuestionSpec]:
        pool = self._bank
        if categories:
            wanted = set(categories)
            matching = [q for q in self._bank if q.category in wanted]
            if len(matching) >= count:
                pool = matching
        if len(pool) < count:
            raise ValidationError(
                f"question bank holds {len(pool)} question(s), {count} requested"
            )
        return list(pool[:count])


# -------- randomness --------


class RandomSeedProvider(Protocol):
    """Source of the random generator used for one draw.

    A verifiable random function would plug in here by returning a
    :class:`random.Random` seeded from its proof output.
    """

    def next(self) -> random.Random:
        ...


class SystemRandomSeedProvider:
    def next(self) -> random.Random:
        return random.SystemRandom()


class SeededRandomProvider:
    """Deterministic generators: the n-th call is seeded with ``f"{seed}:{n}"``."""

    def __init__(self, seed: Any) -> None:
        self.seed = seed
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def next(self) -> random.Random:
        with self._lock:
            n = next(self._counter)
        return random.Random(f"{self.seed}:{n}")


__all__ = [
    "AllowAllEligibility",
    "EligibilityProvider",
    "HttpEligibilityProvider",
    "ParticipantDirectory",
    "ParticipantRef",
    "QuestionProvider",
    "QuestionSpec",
    "RandomSeedProvider",
    "SeededRandomProvider",
    "SqlParticipantDirectory",
    "StaticEligibilityProvider",
    "StaticQuestionProvider",
    "SystemRandomSeedProvider",
]

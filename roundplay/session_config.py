"""Kind-specific session configuration and its validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional

from .config import GameDefaults
from .errors import ValidationError
from .selection.prizes import validate_schedule

NUMBER_PICK = "number_pick"
QUIZ = "quiz"
SESSION_KINDS = (NUMBER_PICK, QUIZ)

QUIZ_DIFFICULTIES = ("easy", "medium", "hard")
QUIZ_SELECTION_MODES = ("top_score", "weighted")


@dataclass(frozen=True)
class PrizeConfig:
    """Optional prize pool attached to a session.

    Either ``schedule`` (explicit ``{position: percentage}``) or
    ``auto_calculate`` must describe how the pool is split.
    """

    pool: float = 0.0
    currency: str = "MWOR"
    schedule: Optional[dict[int, float]] = None
    auto_calculate: bool = True
    head_share: float = 50.0

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]], defaults: GameDefaults) -> Optional["PrizeConfig"]:
        if not raw:
            return None
        schedule = raw.get("schedule")
        if schedule is not None:
            schedule = {int(pos): float(pct) for pos, pct in dict(schedule).items()}
        pool = float(raw.get("pool", 0.0))
        if pool < 0:
            raise ValidationError("prize pool must not be negative")
        head_share = float(raw.get("head_share", defaults.prize_head_share))
        if not 0 < head_share <= 100:
            raise ValidationError("head_share must be within (0, 100]")
        return cls(
            pool=pool,
            currency=str(raw.get("currency", "MWOR")),
            schedule=schedule,
            auto_calculate=bool(raw.get("auto_calculate", schedule is None)),
            head_share=head_share,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.schedule is not None:
            data["schedule"] = {str(pos): pct for pos, pct in self.schedule.items()}
        return data


@dataclass(frozen=True)
class NumberPickConfig:
    range_min: int = 1
    range_max: int = 100
    allow_duplicate_claims: bool = False
    winner_count: int = 1
    reverse_mode: bool = False
    selection_phase_seconds: int = 300
    join_phase_seconds: int = 60
    min_participants: int = 2
    max_participants: int = 100
    auto_start: bool = True
    reserved_numbers: tuple[int, ...] = ()
    prizes: Optional[PrizeConfig] = None

    @property
    def algorithm_key(self) -> str:
        return "reverse" if self.reverse_mode else "direct"

    def in_range(self, number: int) -> bool:
        return self.range_min <= number <= self.range_max

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reserved_numbers"] = list(self.reserved_numbers)
        data["prizes"] = self.prizes.to_dict() if self.prizes else None
        return data


@dataclass(frozen=True)
class QuizConfig:
    question_count: int = 20
    seconds_per_question: int = 15
    difficulty: str = "medium"
    categories: tuple[str, ...] = ()
    requires_eligibility_check: bool = False
    winner_count: int = 3
    selection_mode: str = "top_score"
    join_phase_seconds: int = 60
    min_participants: int = 2
    max_participants: int = 50
    auto_start: bool = True
    prizes: Optional[PrizeConfig] = None

    @property
    def algorithm_key(self) -> str:
        return "weighted" if self.selection_mode == "weighted" else "top_score"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["categories"] = list(self.categories)
        data["prizes"] = self.prizes.to_dict() if self.prizes else None
        return data


def _positive_int(raw: Mapping[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer") from exc
    if number < 1:
        raise ValidationError(f"{key} must be at least 1")
    return number


def _capacity(raw: Mapping[str, Any], default_min: int, default_max: int) -> tuple[int, int]:
    min_participants = _positive_int(raw, "min_participants", default_min)
    max_participants = _positive_int(raw, "max_participants", default_max)
    if min_participants > max_participants:
        raise ValidationError("min_participants must not exceed max_participants")
    return min_participants, max_participants


def _check_prizes(prizes: Optional[PrizeConfig], winner_count: int) -> None:
    if prizes is not None and prizes.schedule is not None:
        try:
            validate_schedule(prizes.schedule, winner_count)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc


def parse_number_pick_config(
    raw: Optional[Mapping[str, Any]], defaults: GameDefaults
) -> NumberPickConfig:
    """Validate a raw NumberPick configuration and fill in defaults.

    Raises
    ------
    ValidationError
        If the range, capacity, winner count or prize schedule is malformed.
    """

    raw = dict(raw or {})
    number_range = raw.get("range") or {}
    range_min = int(number_range.get("min", raw.get("range_min", 1)))
    range_max = int(
        number_range.get("max", raw.get("range_max", defaults.pick_number_range_max))
    )
    if range_min > range_max:
        raise ValidationError("range.min must not exceed range.max")

    min_participants, max_participants = _capacity(
        raw, defaults.pick_number_min_players, defaults.pick_number_max_players
    )
    winner_count = _positive_int(raw, "winner_count", 1)
    allow_duplicates = bool(raw.get("allow_duplicate_claims", False))

    reserved = tuple(sorted({int(n) for n in raw.get("reserved_numbers", ())}))
    for number in reserved:
        if not range_min <= number <= range_max:
            raise ValidationError(f"reserved number {number} is outside the range")

    prizes = PrizeConfig.from_mapping(raw.get("prizes"), defaults)
    _check_prizes(prizes, winner_count)

    return NumberPickConfig(
        range_min=range_min,
        range_max=range_max,
        allow_duplicate_claims=allow_duplicates,
        winner_count=winner_count,
        reverse_mode=bool(raw.get("reverse_mode", False)),
        selection_phase_seconds=_positive_int(
            raw, "selection_phase_seconds", defaults.pick_number_selection_seconds
        ),
        join_phase_seconds=_positive_int(
            raw, "join_phase_seconds", defaults.pick_number_join_seconds
        ),
        min_participants=min_participants,
        max_participants=max_participants,
        auto_start=bool(raw.get("auto_start", True)),
        reserved_numbers=reserved,
        prizes=prizes,
    )


def parse_quiz_config(raw: Optional[Mapping[str, Any]], defaults: GameDefaults) -> QuizConfig:
    """Validate a raw Quiz configuration and fill in defaults."""

    raw = dict(raw or {})
    difficulty = str(raw.get("difficulty", defaults.quiz_difficulty))
    if difficulty not in QUIZ_DIFFICULTIES:
        raise ValidationError(f"difficulty must be one of {', '.join(QUIZ_DIFFICULTIES)}")
    selection_mode = str(raw.get("selection_mode", "top_score"))
    if selection_mode not in QUIZ_SELECTION_MODES:
        raise ValidationError(
            f"selection_mode must be one of {', '.join(QUIZ_SELECTION_MODES)}"
        )

    min_participants, max_participants = _capacity(
        raw, defaults.quiz_min_players, defaults.quiz_max_players
    )
    winner_count = _positive_int(raw, "winner_count", defaults.quiz_winner_count)
    prizes = PrizeConfig.from_mapping(raw.get("prizes"), defaults)
    _check_prizes(prizes, winner_count)

    return QuizConfig(
        question_count=_positive_int(raw, "question_count", defaults.quiz_question_count),
        seconds_per_question=_positive_int(
            raw, "seconds_per_question", defaults.quiz_seconds_per_question
        ),
        difficulty=difficulty,
        categories=tuple(str(c) for c in raw.get("categories", ())),
        requires_eligibility_check=bool(raw.get("requires_eligibility_check", False)),
        winner_count=winner_count,
        selection_mode=selection_mode,
        join_phase_seconds=_positive_int(raw, "join_phase_seconds", defaults.quiz_join_seconds),
        min_participants=min_participants,
        max_participants=max_participants,
        auto_start=bool(raw.get("auto_start", True)),
        prizes=prizes,
    )


def parse_config(kind: str, raw: Optional[Mapping[str, Any]], defaults: Optional[GameDefaults] = None):
    """Dispatch to the parser for ``kind``."""

    defaults = defaults or GameDefaults()
    if kind == NUMBER_PICK:
        return parse_number_pick_config(raw, defaults)
    if kind == QUIZ:
        return parse_quiz_config(raw, defaults)
    raise ValidationError(f"Unknown session kind '{kind}'")


def config_from_stored(kind: str, stored: Mapping[str, Any]):
    """Rebuild the typed configuration from the JSON persisted on a session."""

    data = dict(stored)
    prizes_raw = data.pop("prizes", None)
    prizes = None
    if prizes_raw:
        schedule = prizes_raw.get("schedule")
        prizes = PrizeConfig(
            pool=float(prizes_raw.get("pool", 0.0)),
            currency=str(prizes_raw.get("currency", "MWOR")),
            schedule=(
                {int(pos): float(pct) for pos, pct in schedule.items()}
                if schedule is not None
                else None
            ),
            auto_calculate=bool(prizes_raw.get("auto_calculate", True)),
            head_share=float(prizes_raw.get("head_share", 50.0)),
        )
    if kind == NUMBER_PICK:
        data["reserved_numbers"] = tuple(data.get("reserved_numbers", ()))
        return NumberPickConfig(prizes=prizes, **data)
    if kind == QUIZ:
        data["categories"] = tuple(data.get("categories", ()))
        return QuizConfig(prizes=prizes, **data)
    raise ValidationError(f"Unknown session kind '{kind}'")


__all__ = [
    "NUMBER_PICK",
    "NumberPickConfig",
    "PrizeConfig",
    "QUIZ",
    "QuizConfig",
    "SESSION_KINDS",
    "config_from_stored",
    "parse_config",
    "parse_number_pick_config",
    "parse_quiz_config",
]

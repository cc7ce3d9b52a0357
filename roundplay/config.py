"""Environment-driven settings for the game engine.

Values are read from the process environment after loading a ``.env`` file,
the same way the database URL is resolved in :mod:`roundplay.db.engine`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from .db.engine import DEFAULT_SQLITE_URL, ROOT_DIR
from .db.utils import resolve_sqlite_url

# Webhook event names that may have a dedicated endpoint override, e.g.
# ``WEBHOOK_URL_SESSION_ENDED=https://hooks.example.com/ended``.
WEBHOOK_EVENT_TYPES = (
    "session.created",
    "session.started",
    "player.joined",
    "number.claimed",
    "winner.selected",
    "session.ended",
    "session.cancelled",
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be a number") from exc


@dataclass(frozen=True)
class CacheSettings:
    """TTL cache sizing for session snapshots and available-number sets."""

    ttl_seconds: float = 5.0
    max_entries: int = 1024


@dataclass(frozen=True)
class WebhookSettings:
    """Outbound notification settings.

    Attributes
    ----------
    enabled : bool
        When ``False`` events are logged and dropped.
    secret : str
        Shared secret for the ``X-Webhook-Signature`` HMAC.
    default_url : Optional[str]
        Endpoint used for every event without a dedicated override.
    endpoints : Mapping[str, str]
        Per-event endpoint overrides keyed by event type.
    timeout : float
        Seconds before a POST is abandoned.
    max_attempts : int
        Attempts made by a single dispatch before the record is marked failed.
    retry_delay : float
        Base delay in seconds; attempt ``n`` waits ``retry_delay * n``.
    sweep_max_attempts : int
        Lifetime attempt budget; failed records below it are re-sent by the sweep.
    retention_days : int
        Records older than this are purged.
    stale_after_seconds : float
        A ``pending`` or ``retrying`` record untouched for this long was
        abandoned mid-dispatch and is picked up again by the sweep.
    async_delivery : bool
        Deliver on a background thread pool instead of the caller's thread.
    """

    enabled: bool = False
    secret: str = "default-webhook-secret"
    default_url: Optional[str] = None
    endpoints: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 10.0
    max_attempts: int = 3
    retry_delay: float = 1.0
    sweep_max_attempts: int = 6
    retention_days: int = 7
    stale_after_seconds: float = 600.0
    async_delivery: bool = False

    def url_for(self, event_type: str) -> Optional[str]:
        return self.endpoints.get(event_type) or self.default_url


@dataclass(frozen=True)
class GameDefaults:
    """Fallback values applied to session configurations."""

    pick_number_selection_seconds: int = 300
    pick_number_join_seconds: int = 60
    pick_number_min_players: int = 2
    pick_number_max_players: int = 100
    pick_number_range_max: int = 100
    quiz_question_count: int = 20
    quiz_seconds_per_question: int = 15
    quiz_join_seconds: int = 60
    quiz_min_players: int = 2
    quiz_max_players: int = 50
    quiz_difficulty: str = "medium"
    quiz_winner_count: int = 3
    prize_head_share: float = 50.0


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_SQLITE_URL
    log_level: str = "INFO"
    cache: CacheSettings = field(default_factory=CacheSettings)
    webhooks: WebhookSettings = field(default_factory=WebhookSettings)
    games: GameDefaults = field(default_factory=GameDefaults)


def _webhook_endpoints() -> dict[str, str]:
    endpoints: dict[str, str] = {}
    for event_type in WEBHOOK_EVENT_TYPES:
        env_name = "WEBHOOK_URL_" + event_type.replace(".", "_").upper()
        url = os.getenv(env_name)
        if url:
            endpoints[event_type] = url
    return endpoints


def load_settings() -> Settings:
    """Build :class:`Settings` from the environment (and ``.env`` if present)."""

    load_dotenv()
    return Settings(
        database_url=resolve_sqlite_url(
            os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cache=CacheSettings(
            ttl_seconds=_env_float("CACHE_TTL_SECONDS", 5.0),
            max_entries=_env_int("CACHE_MAX_ENTRIES", 1024),
        ),
        webhooks=WebhookSettings(
            enabled=_env_bool("WEBHOOKS_ENABLED", False),
            secret=os.getenv("WEBHOOK_SECRET", "default-webhook-secret"),
            default_url=os.getenv("WEBHOOK_URL") or None,
            endpoints=_webhook_endpoints(),
            timeout=_env_float("WEBHOOK_TIMEOUT", 10.0),
            max_attempts=_env_int("WEBHOOK_MAX_ATTEMPTS", 3),
            retry_delay=_env_float("WEBHOOK_RETRY_DELAY", 1.0),
            sweep_max_attempts=_env_int("WEBHOOK_SWEEP_MAX_ATTEMPTS", 6),
            retention_days=_env_int("WEBHOOK_RETENTION_DAYS", 7),
            stale_after_seconds=_env_float("WEBHOOK_STALE_SECONDS", 600.0),
            async_delivery=_env_bool("WEBHOOK_ASYNC", False),
        ),
        games=GameDefaults(
            pick_number_selection_seconds=_env_int("PICK_NUMBER_TIME_LIMIT", 300),
            pick_number_join_seconds=_env_int("PICK_NUMBER_JOIN_TIME", 60),
            pick_number_min_players=_env_int("PICK_NUMBER_MIN_PLAYERS", 2),
            pick_number_max_players=_env_int("PICK_NUMBER_MAX_PLAYERS", 100),
            pick_number_range_max=_env_int("PICK_NUMBER_RANGE_MAX", 100),
            quiz_question_count=_env_int("QUIZ_DEFAULT_QUESTIONS", 20),
            quiz_seconds_per_question=_env_int("QUIZ_TIME_PER_QUESTION", 15),
            quiz_join_seconds=_env_int("QUIZ_JOIN_TIME", 60),
            quiz_min_players=_env_int("QUIZ_MIN_PLAYERS", 2),
            quiz_max_players=_env_int("QUIZ_MAX_PLAYERS", 50),
            quiz_difficulty=os.getenv("QUIZ_DEFAULT_DIFFICULTY", "medium"),
            quiz_winner_count=_env_int("QUIZ_WINNER_COUNT", 3),
            prize_head_share=_env_float("PRIZE_HEAD_SHARE", 50.0),
        ),
    )


__all__ = [
    "CacheSettings",
    "GameDefaults",
    "Settings",
    "WEBHOOK_EVENT_TYPES",
    "WebhookSettings",
    "load_settings",
]

"""Wire the engine and its collaborators from :class:`~roundplay.config.Settings`."""

from __future__ import annotations

import logging
from typing import Optional

from .cache import SessionCache
from .config import Settings, load_settings
from .db.engine import get_sessionmaker, make_engine
from .engine import GameEngine
from .models import Base
from .providers import QuestionProvider
from .repository import GameRepository
from .webhooks.dispatcher import WebhookDispatcher

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_repository(settings: Settings, *, create_tables: bool = False) -> GameRepository:
    engine = make_engine(settings.database_url)
    if create_tables:
        Base.metadata.create_all(engine)
    return GameRepository(get_sessionmaker(engine), SessionCache.from_settings(settings.cache))


def build_dispatcher(repository: GameRepository, settings: Settings) -> WebhookDispatcher:
    return WebhookDispatcher(repository, settings.webhooks)


def build_engine(
    settings: Optional[Settings] = None,
    *,
    questions: Optional[QuestionProvider] = None,
    create_tables: bool = False,
) -> GameEngine:
    """Return a ready :class:`GameEngine` using real timers and system randomness."""

    settings = settings or load_settings()
    repository = build_repository(settings, create_tables=create_tables)
    return GameEngine(
        repository,
        dispatcher=build_dispatcher(repository, settings),
        questions=questions,
        settings=settings,
    )


__all__ = ["build_dispatcher", "build_engine", "build_repository", "configure_logging"]

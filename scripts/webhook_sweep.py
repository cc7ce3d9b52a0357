"""Retry failed webhook deliveries and purge expired records.

Meant to be run periodically (cron, systemd timer):
``python scripts/webhook_sweep.py [--no-purge]``
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from roundplay.bootstrap import build_dispatcher, build_repository, configure_logging
from roundplay.config import load_settings

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.webhooks.enabled:
        logger.info("Webhooks are disabled; nothing to sweep")
        return 0

    dispatcher = build_dispatcher(build_repository(settings), settings)
    report = dispatcher.retry_failed()
    purged = 0 if "--no-purge" in args else dispatcher.purge_expired()
    stats = dispatcher.stats()
    print(
        f"retried={report.retried} delivered={report.succeeded} "
        f"exhausted={report.exhausted} purged={purged} "
        + " ".join(f"{status}={count}" for status, count in sorted(stats.items()))
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

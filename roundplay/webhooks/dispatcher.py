"""Outcome notification: persisted, signed, retried webhook deliveries.

Every emitted event becomes a :class:`~roundplay.models.WebhookDelivery`
row before the first POST. A dispatch makes up to ``max_attempts`` attempts
with linear backoff (``retry_delay * attempt``) and leaves the record
``success`` or ``failed``. :meth:`WebhookDispatcher.retry_failed` is the
periodic sweep that gives failed records more attempts until their lifetime
count reaches ``sweep_max_attempts``, and picks up records a crashed
dispatch left ``pending`` or ``retrying``.
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from sqlalchemy import and_, delete, func, or_, select, update

from ..config import WebhookSettings
from ..models import DeliveryStatus, WebhookAttempt, WebhookDelivery
from .client import AttemptResult, WebhookClient
from .signing import build_envelope

if TYPE_CHECKING:
    from ..repository import GameRepository

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 100


@dataclass(frozen=True)
class SweepReport:
    retried: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0


class WebhookDispatcher:
    """Deliver outcome events to external endpoints.

    Parameters
    ----------
    repository : GameRepository
        Provides the transactions used for delivery records.
    settings : WebhookSettings
        Endpoints, secret and retry budget.
    client : Optional[WebhookClient], default: None
        HTTP transport. Built from ``settings.timeout`` when omitted.
    sleep : Callable[[float], None], default: time.sleep
        Backoff sleeper; tests pass a recorder.
    clock : Callable[[], datetime], default: now in UTC
        Time source for timestamps, the sweep and retention.
    executor : Optional[ThreadPoolExecutor], default: None
        Pool for asynchronous delivery. Created on demand when
        ``settings.async_delivery`` is on.
    """

    def __init__(
        self,
        repository: "GameRepository",
        settings: WebhookSettings,
        *,
        client: Optional[WebhookClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._repository = repository
        self.settings = settings
        self.client = client or WebhookClient(timeout=settings.timeout)
        self._sleep = sleep
        self._clock = clock
        self._executor = executor
        if self._executor is None and settings.async_delivery:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="webhook")

    # -------- emission --------
    def emit(
        self,
        event_type: str,
        data: Mapping[str, Any],
        *,
        session_id: Optional[str] = None,
    ) -> Optional[str]:
        """Record and deliver an event. Never raises.

        Returns
        -------
        Optional[str]
            The event id, or ``None`` when webhooks are disabled, no endpoint
            is configured for ``event_type``, or the record could not be
            created.
        """

        if not self.settings.enabled:
            logger.debug(f"Webhooks disabled, skipping {event_type} event")
            return None
        url = self.settings.url_for(event_type)
        if not url:
            logger.debug(f"No webhook URL configured for {event_type} event")
            return None

        try:
            delivery_id, event_id = self._create_record(event_type, data, url, session_id)
        except Exception:
            logger.exception(f"Could not record {event_type} webhook for session {session_id}")
            return None

        if self._executor is not None:
            future = self._executor.submit(self._deliver_quietly, delivery_id)
            future.add_done_callback(_log_future_error)
        else:
            self._deliver_quietly(delivery_id)
        return event_id

    def _create_record(
        self,
        event_type: str,
        data: Mapping[str, Any],
        url: str,
        session_id: Optional[str],
    ) -> tuple[int, str]:
        event_id = str(uuid.uuid4())
        body = {"event_type": event_type, **dict(data)}
        envelope = build_envelope(event_id, body, self.settings.secret, self._clock())
        with self._repository.transaction() as db:
            record = WebhookDelivery(
                event_id=event_id,
                event_type=event_type,
                session_id=session_id,
                payload=envelope,
                target_url=url,
                status=DeliveryStatus.PENDING.value,
                attempts=0,
                created_at=self._clock(),
            )
            db.add(record)
            db.flush()
            return record.id, event_id

    def _deliver_quietly(self, delivery_id: int, budget: Optional[int] = None) -> bool:
        try:
            return self.deliver(delivery_id, max_attempts=budget)
        except Exception:
            logger.exception(f"Webhook delivery {delivery_id} aborted")
            return False

    # -------- delivery --------
    def deliver(self, delivery_id: int, max_attempts: Optional[int] = None) -> bool:
        """Attempt delivery up to ``max_attempts`` times.

        Returns ``True`` once an attempt gets a 2xx. No database transaction
        is open while a request is in flight.
        """

        budget = max_attempts if max_attempts is not None else self.settings.max_attempts
        with self._repository.read() as db:
            record = db.get(WebhookDelivery, delivery_id)
            if record is None:
                logger.warning(f"Webhook delivery {delivery_id} no longer exists")
                return False
            url, envelope, event_type = record.target_url, dict(record.payload), record.event_type

        for attempt in range(1, budget + 1):
            result = self.client.post(url, envelope)
            final = result.ok or attempt == budget
            self._record_attempt(delivery_id, result, final=final)
            if result.ok:
                logger.info(f"Webhook {event_type} delivered to {url} on attempt {attempt}")
                return True
            logger.warning(
                f"Webhook {event_type} attempt {attempt}/{budget} to {url} failed: {result.error}"
            )
            if not final:
                self._sleep(self.settings.retry_delay * attempt)
        return False

    def _record_attempt(self, delivery_id: int, result: AttemptResult, *, final: bool) -> None:
        now = self._clock()
        with self._repository.transaction() as db:
            record = db.get(WebhookDelivery, delivery_id)
            if record is None:
                return
            record.attempts += 1
            record.last_attempt_at = now
            record.response_status = result.status_code
            record.response_body = result.body
            if result.ok:
                record.status = DeliveryStatus.SUCCESS.value
                record.error_message = None
            elif final:
                record.status = DeliveryStatus.FAILED.value
                record.error_message = result.error
            else:
                record.status = DeliveryStatus.RETRYING.value
                record.error_message = result.error
            db.add(
                WebhookAttempt(
                    delivery_id=delivery_id,
                    attempt_number=record.attempts,
                    attempted_at=now,
                    response_status=result.status_code,
                    error_message=result.error,
                    duration_ms=result.duration_ms,
                )
            )

    # -------- maintenance --------
    def retry_failed(self) -> SweepReport:
        """Re-dispatch failed records that still have lifetime attempts left.

        Records at or above ``sweep_max_attempts`` are exhausted and left
        alone. Each retried record gets at most ``max_attempts`` attempts in
        this sweep, never more than its remaining lifetime budget. Records
        left ``pending`` or ``retrying`` for longer than
        ``stale_after_seconds`` are swept too.
        """

        limit = self.settings.sweep_max_attempts
        stale_before = self._clock() - timedelta(seconds=self.settings.stale_after_seconds)
        with self._repository.transaction() as db:
            # Abandoned records that already spent their budget end as failed.
            db.execute(
                update(WebhookDelivery)
                .where(_abandoned(stale_before), WebhookDelivery.attempts >= limit)
                .values(status=DeliveryStatus.FAILED.value)
                .execution_options(synchronize_session=False)
            )
            batch = db.scalars(
                select(WebhookDelivery)
                .where(_sweepable(limit, stale_before))
                .order_by(WebhookDelivery.created_at.asc(), WebhookDelivery.id.asc())
                .limit(SWEEP_BATCH_SIZE)
            ).all()
            exhausted = db.scalar(
                select(func.count(WebhookDelivery.id)).where(
                    WebhookDelivery.status == DeliveryStatus.FAILED.value,
                    WebhookDelivery.attempts >= limit,
                )
            )
            eligible: list[tuple[int, int]] = []
            for record in batch:
                record.status = DeliveryStatus.RETRYING.value
                # Claimed: other sweeps skip it until it goes stale again.
                record.last_attempt_at = self._clock()
                remaining = limit - record.attempts
                eligible.append((record.id, min(self.settings.max_attempts, remaining)))

        succeeded = 0
        for delivery_id, budget in eligible:
            logger.info(f"Retrying webhook delivery {delivery_id} ({budget} attempt(s))")
            if self._deliver_quietly(delivery_id, budget):
                succeeded += 1
        report = SweepReport(
            retried=len(eligible),
            succeeded=succeeded,
            failed=len(eligible) - succeeded,
            exhausted=exhausted,
        )
        logger.info(
            f"Webhook sweep: {report.retried} retried, {report.succeeded} delivered, "
            f"{report.exhausted} exhausted"
        )
        return report

    def purge_expired(self) -> int:
        """Delete delivery records (and their attempts) older than the retention window."""

        days = self.settings.retention_days
        if days <= 0:
            raise ValueError("retention_days must be a positive number")
        cutoff = self._clock() - timedelta(days=days)
        with self._repository.transaction() as db:
            expired = select(WebhookDelivery.id).where(WebhookDelivery.created_at < cutoff)
            db.execute(delete(WebhookAttempt).where(WebhookAttempt.delivery_id.in_(expired)))
            result = db.execute(
                delete(WebhookDelivery).where(WebhookDelivery.created_at < cutoff)
            )
            purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} webhook record(s) older than {days} day(s)")
        return purged

    def stats(self) -> dict[str, int]:
        """Counts of delivery records by status, plus ``total``."""

        with self._repository.read() as db:
            counts = WebhookDelivery.count_by_status(db)
        counts["total"] = sum(counts.values())
        return counts

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def _abandoned(stale_before: datetime) -> Any:
    """Pending or retrying records nobody has touched since ``stale_before``."""
    return and_(
        WebhookDelivery.status.in_(
            (DeliveryStatus.PENDING.value, DeliveryStatus.RETRYING.value)
        ),
        func.coalesce(WebhookDelivery.last_attempt_at, WebhookDelivery.created_at)
        < stale_before,
    )


def _sweepable(limit: int, stale_before: datetime) -> Any:
    return and_(
        or_(WebhookDelivery.status == DeliveryStatus.FAILED.value, _abandoned(stale_before)),
        WebhookDelivery.attempts < limit,
    )


def _log_future_error(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error(f"Webhook worker failed: {exc}")


__all__ = ["SweepReport", "WebhookDispatcher"]

"""HTTP transport for webhook envelopes."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import requests

from .signing import EVENT_HEADER, SIGNATURE_HEADER, canonical_json

logger = logging.getLogger(__name__)

USER_AGENT = "Roundplay-Webhook/1.0"
MAX_STORED_BODY = 2000


@dataclass(frozen=True)
class AttemptResult:
    """What one POST produced.

    ``status_code`` is ``None`` when no response arrived (timeout, DNS,
    connection refused); ``error`` then carries the exception text.
    """

    ok: bool
    status_code: Optional[int] = None
    body: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0


class WebhookClient:
    def __init__(
        self,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        user_agent: str = USER_AGENT,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.user_agent = user_agent

    def headers_for(self, envelope: Mapping[str, Any]) -> Mapping[str, str]:
        data = envelope.get("data") or {}
        return {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: envelope["signature"],
            EVENT_HEADER: str(data.get("event_type", "unknown")),
            "User-Agent": self.user_agent,
        }

    def post(self, url: str, envelope: Mapping[str, Any]) -> AttemptResult:
        """POST ``envelope`` to ``url``; any 2xx counts as delivered. Never raises."""

        started = time.monotonic()
        try:
            r = self.session.request(
                method="POST",
                url=url,
                headers=self.headers_for(envelope),
                data=canonical_json(envelope).encode("utf-8"),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            elapsed = int((time.monotonic() - started) * 1000)
            return AttemptResult(ok=False, error=f"{type(exc).__name__}: {exc}", duration_ms=elapsed)

        elapsed = int((time.monotonic() - started) * 1000)
        body = (r.text or "")[:MAX_STORED_BODY]
        if 200 <= r.status_code < 300:
            return AttemptResult(ok=True, status_code=r.status_code, body=body, duration_ms=elapsed)
        return AttemptResult(
            ok=False,
            status_code=r.status_code,
            body=body,
            error=f"HTTP {r.status_code}",
            duration_ms=elapsed,
        )


__all__ = ["AttemptResult", "USER_AGENT", "WebhookClient"]

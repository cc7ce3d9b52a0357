"""HMAC signing of webhook payloads."""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"


def canonical_json(data: Any) -> str:
    """Serialize ``data`` deterministically: sorted keys, no whitespace."""

    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sign(data: Any, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``canonical_json(data)`` keyed with ``secret``."""

    return hmac.new(
        secret.encode("utf-8"), canonical_json(data).encode("utf-8"), hashlib.sha256
    ).hexdigest()


def verify(data: Any, secret: str, signature: str) -> bool:
    """Constant-time check of a received signature; for receivers and tests."""

    return hmac.compare_digest(sign(data, secret), signature or "")


def build_envelope(
    event_id: str,
    data: Mapping[str, Any],
    secret: str,
    timestamp: Optional[datetime] = None,
) -> dict[str, Any]:
    """Wrap ``data`` in the wire envelope ``{event_id, timestamp, signature, data}``."""

    ts = timestamp or datetime.now(timezone.utc)
    payload = json.loads(canonical_json(dict(data)))
    return {
        "event_id": event_id,
        "timestamp": ts.isoformat(),
        "signature": sign(payload, secret),
        "data": payload,
    }


__all__ = [
    "EVENT_HEADER",
    "SIGNATURE_HEADER",
    "build_envelope",
    "canonical_json",
    "sign",
    "verify",
]

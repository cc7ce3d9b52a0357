"""Signed, retried outbound notifications."""

from .client import AttemptResult, WebhookClient
from .dispatcher import SweepReport, WebhookDispatcher
from .signing import build_envelope, canonical_json, sign, verify

__all__ = [
    "AttemptResult",
    "SweepReport",
    "WebhookClient",
    "WebhookDispatcher",
    "build_envelope",
    "canonical_json",
    "sign",
    "verify",
]

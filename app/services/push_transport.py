"""Web Push transport: deliver one payload to one subscription and classify the outcome."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger
from pywebpush import WebPushException, webpush

from app.config import Settings, settings as default_settings
from app.utils.exceptions import PushTransportError


EXPIRED_STATUS_CODES = frozenset({404, 410})
RATE_LIMITED_STATUS_CODE = 429

EXPIRED_MESSAGE = "Subscription expired"
RATE_LIMITED_MESSAGE = "Rate limited"


class PushStatus(str, Enum):
    """Classified result of a single delivery attempt."""

    SENT = "sent"
    EXPIRED = "expired"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class SubscriptionTarget:
    """The parts of a subscription the transport needs."""

    endpoint: str
    p256dh: str
    auth: str

    def as_subscription_info(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


@dataclass
class PushPayload:
    """Human-readable notification content plus routing data for the client."""

    title: str
    body: str
    url: str | None = None
    icon: str | None = None
    badge: str | None = None
    image: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PushResult:
    status: PushStatus
    error: str | None = None
    status_code: int | None = None

    @property
    def success(self) -> bool:
        return self.status is PushStatus.SENT

    @property
    def expired(self) -> bool:
        return self.status is PushStatus.EXPIRED


def build_envelope(payload: PushPayload, config: Settings | None = None) -> str:
    """Serialize a payload to the canonical JSON envelope the service worker reads.

    Keys are sorted and separators compact so identical payloads always encrypt
    from identical plaintext. Optional media fields are omitted when unset; the
    icon and badge fall back to the configured defaults.
    """

    config = config or default_settings
    envelope: dict[str, Any] = {
        "title": payload.title,
        "body": payload.body,
        "icon": payload.icon or config.PUSH_DEFAULT_ICON,
        "badge": payload.badge or config.PUSH_DEFAULT_BADGE,
        "data": dict(payload.data or {}),
    }
    if payload.image:
        envelope["image"] = payload.image
    if payload.url:
        envelope["url"] = payload.url
        envelope["data"].setdefault("url", payload.url)
    return json.dumps(envelope, sort_keys=True, separators=(",", ":"), default=str)


def classify_status_code(status_code: int | None, message: str) -> PushResult:
    if status_code in EXPIRED_STATUS_CODES:
        return PushResult(PushStatus.EXPIRED, EXPIRED_MESSAGE, status_code)
    if status_code == RATE_LIMITED_STATUS_CODE:
        return PushResult(PushStatus.RATE_LIMITED, RATE_LIMITED_MESSAGE, status_code)
    return PushResult(PushStatus.FAILED, message, status_code)


class PushTransport:
    """Sends VAPID-signed, encrypted Web Push messages via ``pywebpush``.

    The transport makes exactly one attempt per call; retry policy belongs to
    the caller. ``send`` is blocking and safe to run from worker threads.
    """

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    @property
    def is_configured(self) -> bool:
        return bool(self.config.VAPID_PRIVATE_KEY and self.config.VAPID_SUBJECT)

    def _vapid_claims(self) -> dict[str, str]:
        # pywebpush mutates the claims dict (adds aud/exp), so build one per call
        return {"sub": str(self.config.VAPID_SUBJECT)}

    def send(self, target: SubscriptionTarget, payload: PushPayload) -> PushResult:
        """Attempt one delivery and return the classified outcome."""

        if not self.is_configured:
            raise PushTransportError("VAPID keys not configured")

        data = build_envelope(payload, self.config)
        try:
            webpush(
                subscription_info=target.as_subscription_info(),
                data=data,
                vapid_private_key=self.config.VAPID_PRIVATE_KEY,
                vapid_claims=self._vapid_claims(),
                ttl=self.config.PUSH_TTL_SECONDS,
                timeout=self.config.PUSH_TIMEOUT_SECONDS,
            )
        except WebPushException as exc:
            response = getattr(exc, "response", None)
            status_code = getattr(response, "status_code", None)
            result = classify_status_code(status_code, str(exc))
            logger.debug(
                "Push delivery rejected",
                endpoint=target.endpoint[:60],
                status_code=status_code,
                outcome=result.status.value,
            )
            return result
        except Exception as exc:
            # Network errors, timeouts, malformed keys: transient from the caller's view
            logger.debug("Push delivery error", endpoint=target.endpoint[:60], error=str(exc))
            return PushResult(PushStatus.FAILED, str(exc) or exc.__class__.__name__)

        return PushResult(PushStatus.SENT)


_transport_singleton: PushTransport | None = None


def get_push_transport() -> PushTransport:
    """Return the process-wide transport built from settings."""

    global _transport_singleton
    if _transport_singleton is None:
        _transport_singleton = PushTransport()
    return _transport_singleton

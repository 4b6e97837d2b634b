"""Billing webhook ingestion.

The billing provider posts ``{"data": {"id", "attributes": {...}}}``; each
event becomes a partial update of one stored subscription. Re-delivering an
event that changes nothing is reported as ``no-changes`` rather than failing.
"""

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from typing import Protocol

from renewals.schemas import IngestResult, SubscriptionUpdate


logger = logging.getLogger(__name__)


class EventValidationError(ValueError):
    pass


class SubscriptionWriter(Protocol):
    def apply_update(self, collection_name: str, change: SubscriptionUpdate) -> str: ...


@dataclass(frozen=True)
class SubscriptionEvent:
    subject_id: str
    subscription_id: str
    status: str | None = None
    plan: str | None = None
    started_at: str | None = None
    expires_at: str | None = None
    cancelled: bool | None = None
    ends_at: str | None = None

    @classmethod
    def from_payload(cls, payload: object) -> "SubscriptionEvent":
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, Mapping):
            raise EventValidationError("payload must contain a 'data' object")

        attributes = data.get("attributes")
        if not isinstance(attributes, Mapping):
            attributes = {}

        email = str(attributes.get("user_email") or "").strip().lower()
        subscription_id = data.get("id")
        if not email or subscription_id in (None, ""):
            raise EventValidationError("user_email and subscription id are required")

        cancelled = attributes.get("cancelled")
        return cls(
            subject_id=email,
            subscription_id=str(subscription_id),
            status=_optional_str(attributes.get("status")),
            plan=_optional_str(attributes.get("variant_name")),
            started_at=_optional_str(attributes.get("created_at")),
            expires_at=_optional_str(attributes.get("renews_at")),
            cancelled=None if cancelled is None else bool(cancelled),
            ends_at=_optional_str(attributes.get("ends_at")),
        )

    def to_update(self) -> SubscriptionUpdate:
        return SubscriptionUpdate(
            subject_id=self.subject_id,
            subscription_id=self.subscription_id,
            values={
                "status": self.status,
                "plan": self.plan,
                "started_at": self.started_at,
                "expires_at": self.expires_at,
                "cancelled": self.cancelled,
                "ends_at": self.ends_at,
            },
        )


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def ingest_event(writer: SubscriptionWriter, collection_name: str, payload: object) -> IngestResult:
    event = SubscriptionEvent.from_payload(payload)
    operation = writer.apply_update(collection_name, event.to_update())
    logger.info(
        "subscription event applied",
        extra={"subscription_id": event.subscription_id, "status": event.status, "operation": operation},
    )
    return IngestResult(
        operation=operation,
        subscription_id=event.subscription_id,
        status=event.status,
        next_billing_date=event.expires_at,
    )

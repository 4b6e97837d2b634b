from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
import logging

from renewals.schemas import SubscriptionRecord


logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"
REQUIRED_FIELDS = ("subject_id", "subscription_id", "expires_at")


class StoreQueryError(RuntimeError):
    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


@dataclass(frozen=True)
class Page:
    items: list[Mapping[str, object]]
    next_token: object | None = None


def format_threshold(instant: datetime) -> str:
    """Render an instant the way expirations are stored: ISO-8601 UTC, millis, ``Z``."""
    return instant.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_item(item: Mapping[str, object]) -> SubscriptionRecord | None:
    # Items without the identifying fields are dropped without being counted.
    if not all(item.get(name) for name in REQUIRED_FIELDS):
        return None
    return SubscriptionRecord(
        subject_id=str(item["subject_id"]),
        subscription_id=str(item["subscription_id"]),
        expires_at=str(item["expires_at"]),
    )


class RecordStore:
    """Paginated reads of active subscriptions expiring on or before a threshold.

    Backends implement ``_fetch_page``; raw items use the logical field names
    ``subject_id``, ``subscription_id``, ``expires_at`` and ``status``.
    """

    def query(self, threshold: datetime, collection_name: str) -> list[SubscriptionRecord]:
        return list(self.iter_records(threshold, collection_name))

    def iter_records(self, threshold: datetime, collection_name: str) -> Iterator[SubscriptionRecord]:
        threshold_iso = format_threshold(threshold)
        records: list[SubscriptionRecord] = []
        token: object | None = None
        page_number = 0

        # Collect every page before yielding so a failure never leaks a partial result.
        while True:
            page_number += 1
            try:
                page = self._fetch_page(threshold_iso, collection_name, token)
            except Exception as exc:
                logger.error(
                    "subscription query failed",
                    extra={"collection": collection_name, "page": page_number, "error": str(exc)},
                )
                raise StoreQueryError(f"query of '{collection_name}' failed on page {page_number}: {exc}", exc) from exc

            valid = [record for record in map(normalize_item, page.items) if record is not None]
            records.extend(valid)
            logger.debug(
                "subscription page fetched",
                extra={"collection": collection_name, "page": page_number, "items": len(page.items), "valid": len(valid)},
            )

            token = page.next_token
            if not token:
                break

        yield from records

    def _fetch_page(self, threshold_iso: str, collection_name: str, token: object | None) -> Page:
        raise NotImplementedError

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
import logging

from renewals.dispatcher import BatchDispatcher
from renewals.record_store import RecordStore, format_threshold
from renewals.schemas import ScanResult


logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = timedelta(days=3)


def utc_now() -> datetime:
    return datetime.now(UTC)


class ScanPipeline:
    def __init__(
        self,
        store: RecordStore,
        dispatcher: BatchDispatcher,
        collection_name: str,
        *,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.collection_name = collection_name
        self.lookahead = lookahead
        self.clock = clock

    def threshold(self) -> datetime:
        return self.clock() + self.lookahead

    def run(self) -> ScanResult:
        threshold = self.threshold()
        logger.info(
            "querying subscriptions close to expiry",
            extra={"collection": self.collection_name, "threshold": format_threshold(threshold)},
        )

        # StoreQueryError propagates: nothing is sent when the query fails.
        records = self.store.query(threshold, self.collection_name)
        logger.info("expiring subscriptions found", extra={"count": len(records)})
        if not records:
            return ScanResult(scanned=0, report=None)

        report = self.dispatcher.dispatch_all(records)
        logger.info(
            "renewal reminders dispatched",
            extra={"total": report.total, "succeeded": report.succeeded, "failed": report.failed},
        )
        return ScanResult(scanned=len(records), report=report)

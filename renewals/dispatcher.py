from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
import logging
import time

from renewals.notifier import Notifier, NotifyError
from renewals.schemas import DispatchOutcome, DispatchReport, SubscriptionRecord


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
DEFAULT_BATCH_DELAY_SECONDS = 0.2


def iter_batches(records: Sequence[SubscriptionRecord], batch_size: int) -> Iterator[Sequence[SubscriptionRecord]]:
    for start in range(0, len(records), batch_size):
        yield records[start : start + batch_size]


class BatchDispatcher:
    """Send one notification per record, a fixed-size batch at a time.

    Sends inside a batch run concurrently and never cancel each other; batches
    run strictly one after another with a fixed pause in between.
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.notifier = notifier
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep

    def dispatch_all(self, records: Sequence[SubscriptionRecord]) -> DispatchReport:
        report = DispatchReport(total=len(records))
        batches = list(iter_batches(records, self.batch_size))

        for index, batch in enumerate(batches, start=1):
            # Outcomes are merged here, on the calling thread, once the whole batch is done.
            for outcome in self._dispatch_batch(batch):
                report.record(outcome)

            logger.info(
                "notification batch completed",
                extra={"batch": index, "batches": len(batches), "size": len(batch), "failed": report.failed},
            )
            if index < len(batches):
                self._sleep(self.batch_delay_seconds)

        return report

    def _dispatch_batch(self, batch: Sequence[SubscriptionRecord]) -> list[DispatchOutcome]:
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="notify") as pool:
            futures = [pool.submit(self._send_one, record) for record in batch]
            return [future.result() for future in as_completed(futures)]

    def _send_one(self, record: SubscriptionRecord) -> DispatchOutcome:
        try:
            self.notifier.send(record)
        except NotifyError as exc:
            logger.warning(
                "renewal reminder failed",
                extra={"subscription_id": record.subscription_id, "error": str(exc)},
            )
            return DispatchOutcome(record=record, error=str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("unexpected notifier error", extra={"subscription_id": record.subscription_id})
            return DispatchOutcome(record=record, error=str(exc) or type(exc).__name__)
        return DispatchOutcome(record=record)

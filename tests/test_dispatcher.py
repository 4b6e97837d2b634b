from collections import Counter
import math
import threading

import pytest

from conftest import RecordingNotifier
from renewals.dispatcher import BatchDispatcher, iter_batches
from renewals.schemas import DispatchFailure, SubscriptionRecord


def make_records(count: int) -> list[SubscriptionRecord]:
    return [
        SubscriptionRecord(
            subject_id=f"user{index}@example.com",
            subscription_id=f"sub-{index}",
            expires_at="2026-10-20T10:00:00.000Z",
        )
        for index in range(count)
    ]


class PhaseCounter:
    """Counts sends between inter-batch pauses."""

    def __init__(self) -> None:
        self.sleeps: list[float] = []
        self.sent_per_phase: list[int] = [0]
        self._lock = threading.Lock()

    def send(self, record: SubscriptionRecord) -> None:
        with self._lock:
            self.sent_per_phase[-1] += 1

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.sent_per_phase.append(0)


def test_iter_batches_keeps_order_and_sizes() -> None:
    records = make_records(7)

    batches = list(iter_batches(records, 3))

    assert [len(batch) for batch in batches] == [3, 3, 1]
    assert [record for batch in batches for record in batch] == records


@pytest.mark.parametrize("count", [1, 25, 26, 30, 51])
def test_dispatch_runs_one_phase_per_batch(count: int) -> None:
    counter = PhaseCounter()
    dispatcher = BatchDispatcher(counter, batch_size=25, batch_delay_seconds=0.2, sleep=counter.sleep)

    report = dispatcher.dispatch_all(make_records(count))

    phases = math.ceil(count / 25)
    assert len(counter.sent_per_phase) == phases
    assert all(size <= 25 for size in counter.sent_per_phase)
    assert sum(counter.sent_per_phase) == count
    assert counter.sleeps == [0.2] * (phases - 1)
    assert report.total == count == report.succeeded + report.failed


def test_thirty_records_all_succeed_in_two_batches() -> None:
    notifier = RecordingNotifier()
    sleeps: list[float] = []
    dispatcher = BatchDispatcher(notifier, batch_size=25, sleep=sleeps.append)
    records = make_records(30)

    report = dispatcher.dispatch_all(records)

    assert report.to_dict() == {"total": 30, "succeeded": 30, "failed": 0, "failures": []}
    assert len(sleeps) == 1
    assert Counter(notifier.sent) == Counter(records)


def test_failures_are_isolated_and_recorded() -> None:
    records = make_records(5)
    notifier = RecordingNotifier(failing={"user1@example.com", "user3@example.com"})
    dispatcher = BatchDispatcher(notifier, batch_size=25, sleep=lambda _: None)

    report = dispatcher.dispatch_all(records)

    assert (report.total, report.succeeded, report.failed) == (5, 3, 2)
    assert len(notifier.sent) == 5
    failed_keys = {(failure.subject_id, failure.subscription_id) for failure in report.failures}
    assert failed_keys == {("user1@example.com", "sub-1"), ("user3@example.com", "sub-3")}
    assert all(failure.reason.startswith("address rejected") for failure in report.failures)


def test_unexpected_notifier_error_still_counts_as_failure() -> None:
    class BrokenNotifier:
        def send(self, record: SubscriptionRecord) -> None:
            raise KeyError("boom")

    report = BatchDispatcher(BrokenNotifier(), batch_size=2, sleep=lambda _: None).dispatch_all(make_records(3))

    assert (report.total, report.succeeded, report.failed) == (3, 0, 3)
    assert isinstance(report.failures[0], DispatchFailure)


def test_empty_input_produces_empty_report() -> None:
    sleeps: list[float] = []
    report = BatchDispatcher(RecordingNotifier(), sleep=sleeps.append).dispatch_all([])

    assert report.to_dict() == {"total": 0, "succeeded": 0, "failed": 0, "failures": []}
    assert sleeps == []


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BatchDispatcher(RecordingNotifier(), batch_size=0)


class BarrierNotifier:
    """Every send waits until a full batch of sends is in flight."""

    def __init__(self, parties: int) -> None:
        self.barrier = threading.Barrier(parties, timeout=5)
        self.in_flight = 0
        self.peak = 0
        self._lock = threading.Lock()

    def send(self, record: SubscriptionRecord) -> None:
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            self.barrier.wait()
        finally:
            with self._lock:
                self.in_flight -= 1


def test_sends_within_a_batch_run_concurrently() -> None:
    notifier = BarrierNotifier(parties=25)
    dispatcher = BatchDispatcher(notifier, batch_size=25, sleep=lambda _: None)

    report = dispatcher.dispatch_all(make_records(50))

    assert (report.succeeded, report.failed) == (50, 0)
    assert notifier.peak == 25


def test_in_flight_sends_never_exceed_batch_size() -> None:
    notifier = BarrierNotifier(parties=5)
    dispatcher = BatchDispatcher(notifier, batch_size=5, sleep=lambda _: None)

    report = dispatcher.dispatch_all(make_records(20))

    assert report.succeeded == 20
    assert notifier.peak == 5

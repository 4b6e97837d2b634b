from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class SubscriptionRecord:
    subject_id: str
    subscription_id: str
    expires_at: str


@dataclass(frozen=True)
class DispatchFailure:
    subject_id: str
    subscription_id: str
    reason: str


@dataclass(frozen=True)
class DispatchOutcome:
    record: SubscriptionRecord
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class DispatchReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[DispatchFailure] = field(default_factory=list)

    def record(self, outcome: DispatchOutcome) -> None:
        if outcome.succeeded:
            self.succeeded += 1
            return
        self.failed += 1
        self.failures.append(
            DispatchFailure(
                subject_id=outcome.record.subject_id,
                subscription_id=outcome.record.subscription_id,
                reason=outcome.error or "unknown error",
            )
        )

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ScanResult:
    scanned: int
    report: DispatchReport | None


@dataclass(frozen=True)
class SubscriptionUpdate:
    """Partial update keyed by subscriber and subscription; ``None`` values are left untouched."""

    subject_id: str
    subscription_id: str
    values: dict[str, object | None]

    def present(self) -> dict[str, object]:
        return {name: value for name, value in self.values.items() if value is not None}


@dataclass(frozen=True)
class IngestResult:
    operation: str
    subscription_id: str
    status: str | None
    next_billing_date: str | None

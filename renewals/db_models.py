from datetime import UTC, datetime
from functools import lru_cache

from sqlalchemy import Boolean, Column, DateTime, Index, MetaData, String, Table


metadata = MetaData()


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


@lru_cache(maxsize=None)
def subscriptions_table(name: str) -> Table:
    """Table for one subscription collection, keyed by (subject_id, subscription_id)."""
    return Table(
        name,
        metadata,
        Column("subject_id", String(320), primary_key=True),
        Column("subscription_id", String(128), primary_key=True),
        Column("status", String(32), nullable=True),
        Column("plan", String(128), nullable=True),
        Column("started_at", String(64), nullable=True),
        Column("expires_at", String(64), nullable=True),
        Column("cancelled", Boolean, nullable=True),
        Column("ends_at", String(64), nullable=True),
        Column("updated_at", DateTime, default=utc_now, onupdate=utc_now),
        Index(f"ix_{name}_status_expires_at", "status", "expires_at"),
    )

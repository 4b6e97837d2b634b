from sqlalchemy import Table, and_, select, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from renewals.db_models import subscriptions_table, utc_now
from renewals.record_store import ACTIVE_STATUS, Page, RecordStore
from renewals.schemas import SubscriptionUpdate


DEFAULT_PAGE_SIZE = 100


class SqlRecordStore(RecordStore):
    """Subscription collections kept as SQL tables, one table per collection name."""

    def __init__(self, session_factory: sessionmaker[Session], *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.session_factory = session_factory
        self.page_size = page_size or DEFAULT_PAGE_SIZE

    def _table(self, db: Session, collection_name: str) -> Table:
        table = subscriptions_table(collection_name)
        table.create(db.get_bind(), checkfirst=True)
        return table

    def _fetch_page(self, threshold_iso: str, collection_name: str, token: object | None) -> Page:
        with self.session_factory() as db:
            table = self._table(db, collection_name)
            sort_key = (table.c.expires_at, table.c.subject_id, table.c.subscription_id)
            stmt = (
                select(table.c.subject_id, table.c.subscription_id, table.c.expires_at, table.c.status)
                .where(table.c.status == ACTIVE_STATUS, table.c.expires_at <= threshold_iso)
                .order_by(*sort_key)
                .limit(self.page_size + 1)
            )
            if token:
                stmt = stmt.where(tuple_(*sort_key) > tuple_(*token))
            rows = db.execute(stmt).mappings().all()

        items = [dict(row) for row in rows[: self.page_size]]
        next_token = None
        if len(rows) > self.page_size:
            last = items[-1]
            next_token = (last["expires_at"], last["subject_id"], last["subscription_id"])
        return Page(items=items, next_token=next_token)

    def apply_update(self, collection_name: str, change: SubscriptionUpdate) -> str:
        values = change.present()
        with self.session_factory() as db:
            table = self._table(db, collection_name)
            key = and_(
                table.c.subject_id == change.subject_id,
                table.c.subscription_id == change.subscription_id,
            )
            existing = db.execute(select(table).where(key)).mappings().one_or_none()
            if existing is None:
                try:
                    db.execute(
                        table.insert().values(
                            subject_id=change.subject_id,
                            subscription_id=change.subscription_id,
                            updated_at=utc_now(),
                            **values,
                        )
                    )
                    db.commit()
                    return "created"
                except IntegrityError:
                    # A concurrent writer created the row first; continue as an update.
                    db.rollback()
                    existing = db.execute(select(table).where(key)).mappings().one()

            if all(existing[name] == value for name, value in values.items()):
                return "no-changes"

            db.execute(table.update().where(key).values(updated_at=utc_now(), **values))
            db.commit()
            return "updated"

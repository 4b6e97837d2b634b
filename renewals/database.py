from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from renewals.db_models import metadata, subscriptions_table


def build_session_factory(database_url: str, collections: tuple[str, ...] = ()) -> sessionmaker[Session]:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, future=True, connect_args=connect_args)
    for name in collections:
        subscriptions_table(name)
    metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

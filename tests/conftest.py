from collections.abc import Generator
from pathlib import Path
import threading

import boto3
from moto import mock_aws
import pytest
from sqlalchemy.orm import Session, sessionmaker

from renewals.config import Settings
from renewals.database import build_session_factory
from renewals.notifier import NotifyError
from renewals.schemas import SubscriptionRecord
from renewals.sql_store import SqlRecordStore


COLLECTION = "subscriptions"
REGION = "us-east-1"


class RecordingNotifier:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[SubscriptionRecord] = []
        self._lock = threading.Lock()

    def send(self, record: SubscriptionRecord) -> None:
        with self._lock:
            self.sent.append(record)
        if record.subject_id in self.failing:
            raise NotifyError(f"address rejected: {record.subject_id}")


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        app_name="renewals",
        log_level="INFO",
        collection_name=COLLECTION,
        sender_email="noreply@example.com",
        store_backend="sql",
        index_name="status-endDate-index",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        aws_region=REGION,
        page_size=0,
        lookahead_days=3,
        batch_size=25,
        batch_delay_seconds=0,
        locale="es-ES",
        renew_url="https://example.com/renew",
        schedule_hour_utc=8,
        schedule_minute_utc=0,
    )


@pytest.fixture()
def session_factory(test_settings: Settings) -> sessionmaker[Session]:
    return build_session_factory(test_settings.database_url, (COLLECTION,))


@pytest.fixture()
def sql_store(session_factory: sessionmaker[Session]) -> SqlRecordStore:
    return SqlRecordStore(session_factory, page_size=2)


@pytest.fixture()
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture()
def dynamodb(aws_credentials) -> Generator[object, None, None]:
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name=REGION)
        resource.create_table(
            TableName=COLLECTION,
            KeySchema=[
                {"AttributeName": "userId", "KeyType": "HASH"},
                {"AttributeName": "subscriptionId", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "userId", "AttributeType": "S"},
                {"AttributeName": "subscriptionId", "AttributeType": "S"},
                {"AttributeName": "status", "AttributeType": "S"},
                {"AttributeName": "endDate", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "status-endDate-index",
                    "KeySchema": [
                        {"AttributeName": "status", "KeyType": "HASH"},
                        {"AttributeName": "endDate", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield resource


@pytest.fixture()
def ses(aws_credentials) -> Generator[object, None, None]:
    with mock_aws():
        client = boto3.client("ses", region_name=REGION)
        client.verify_email_identity(EmailAddress="noreply@example.com")
        yield client

"""Entry points returning ``{"statusCode", "body"}`` results.

``scan_handler`` and ``ingest_handler`` accept serverless-style
``(event, context)`` arguments; the CLI and the scheduler call ``run_scan``
and ``run_ingest`` directly.
"""

from datetime import UTC, datetime, timedelta
import json
import logging
import uuid

from renewals.aws_clients import get_dynamodb, get_ses
from renewals.config import Settings, get_settings, log_missing_settings, require_settings
from renewals.database import build_session_factory
from renewals.dispatcher import BatchDispatcher
from renewals.dynamo_store import DynamoRecordStore
from renewals.ingestion import EventValidationError, ingest_event
from renewals.notifier import Notifier, SesNotifier
from renewals.pipeline import ScanPipeline
from renewals.record_store import RecordStore
from renewals.sql_store import SqlRecordStore


logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _response(status_code: int, body: dict[str, object]) -> dict[str, object]:
    return {"statusCode": status_code, "body": json.dumps(body, ensure_ascii=False)}


def bad_request(message: str) -> dict[str, object]:
    return _response(400, {"error": message})


def correlation_token(request_id: str | None = None) -> str:
    return request_id or uuid.uuid4().hex[:8]


def build_store(settings: Settings):
    if settings.store_backend == "sql":
        session_factory = build_session_factory(settings.database_url, (settings.collection_name,))
        return SqlRecordStore(session_factory, page_size=settings.page_size)
    if settings.store_backend == "dynamodb":
        return DynamoRecordStore(
            get_dynamodb(settings.aws_region),
            index_name=settings.index_name,
            page_size=settings.page_size,
        )
    raise ValueError(f"unknown store backend: {settings.store_backend}")


def build_notifier(settings: Settings) -> SesNotifier:
    return SesNotifier(
        get_ses(settings.aws_region),
        settings.sender_email,
        locale=settings.locale,
        renew_url=settings.renew_url,
    )


def build_pipeline(
    settings: Settings,
    *,
    store: RecordStore | None = None,
    notifier: Notifier | None = None,
) -> ScanPipeline:
    dispatcher = BatchDispatcher(
        notifier or build_notifier(settings),
        batch_size=settings.batch_size,
        batch_delay_seconds=settings.batch_delay_seconds,
    )
    return ScanPipeline(
        store or build_store(settings),
        dispatcher,
        settings.collection_name,
        lookahead=timedelta(days=settings.lookahead_days),
    )


def run_scan(
    settings: Settings,
    *,
    request_id: str | None = None,
    store: RecordStore | None = None,
    notifier: Notifier | None = None,
) -> dict[str, object]:
    logger.info("renewal reminder scan started", extra={"request_id": request_id, "timestamp": _timestamp()})
    try:
        require_settings(settings)
        result = build_pipeline(settings, store=store, notifier=notifier).run()
    except Exception as exc:
        reference = correlation_token(request_id)
        logger.exception("renewal reminder scan failed", extra={"request_id": request_id, "reference": reference})
        return _response(
            500,
            {
                "error": "renewal notification service failed",
                "message": str(exc),
                "reference": reference,
                "timestamp": _timestamp(),
            },
        )

    if result.report is None:
        return _response(
            200,
            {"message": "no subscriptions close to expiry were found", "timestamp": _timestamp()},
        )

    report = result.report
    return _response(
        200,
        {
            "message": f"completed: {report.succeeded} of {report.total} notifications sent",
            "results": report.to_dict(),
        },
    )


def run_ingest(settings: Settings, payload: object, *, writer=None) -> dict[str, object]:
    try:
        require_settings(settings)
        result = ingest_event(writer or build_store(settings), settings.collection_name, payload)
    except EventValidationError as exc:
        logger.warning("subscription event rejected", extra={"error": str(exc)})
        return bad_request(str(exc))
    except Exception:
        logger.exception("subscription event could not be applied")
        return _response(500, {"error": "internal server error"})

    if result.operation == "no-changes":
        return _response(200, {"status": "no-changes", "message": "subscription is already up to date"})
    return _response(
        200,
        {
            "operation": result.operation,
            "metadata": {
                "subscriptionId": result.subscription_id,
                "status": result.status,
                "nextBillingDate": result.next_billing_date,
            },
        },
    )


def _parse_event_payload(event: object) -> object:
    # HTTP-style events carry the webhook document as a JSON string body.
    if isinstance(event, dict) and isinstance(event.get("body"), str):
        try:
            return json.loads(event["body"])
        except json.JSONDecodeError as exc:
            raise EventValidationError(f"body is not valid JSON: {exc.msg}") from exc
    return event


def scan_handler(event, context):
    settings = get_settings()
    log_missing_settings(settings)
    return run_scan(settings, request_id=getattr(context, "aws_request_id", None))


def ingest_handler(event, context):
    settings = get_settings()
    try:
        payload = _parse_event_payload(event)
    except EventValidationError as exc:
        return bad_request(str(exc))
    return run_ingest(settings, payload)

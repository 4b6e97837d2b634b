import argparse
import json
import logging
import sys

from renewals.config import get_settings, log_missing_settings
from renewals.handlers import bad_request, run_ingest, run_scan
from renewals.ingestion import EventValidationError
from renewals.scheduler import start_scheduler


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send renewal reminders and ingest billing events")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("scan", help="scan once for expiring subscriptions and notify subscribers")

    ingest_parser = subparsers.add_parser("ingest", help="apply one billing webhook payload")
    ingest_parser.add_argument("--payload", required=True, help="Path to a JSON payload, or - for stdin")

    schedule_parser = subparsers.add_parser("schedule", help="start daily scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also scan once immediately")

    return parser.parse_args()


def _read_payload(source: str) -> object:
    try:
        if source == "-":
            return json.load(sys.stdin)
        with open(source, "r", encoding="utf-8") as infile:
            return json.load(infile)
    except json.JSONDecodeError as exc:
        raise EventValidationError(f"payload is not valid JSON: {exc.msg}") from exc
    except OSError as exc:
        raise EventValidationError(f"payload could not be read: {exc}") from exc


def main() -> None:
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    log_missing_settings(settings)

    if args.command == "schedule":
        start_scheduler(settings, run_now=args.run_now)
        return

    if args.command == "ingest":
        try:
            response = run_ingest(settings, _read_payload(args.payload))
        except EventValidationError as exc:
            response = bad_request(str(exc))
    else:
        response = run_scan(settings)

    print("status_code={status} body={body}".format(status=response["statusCode"], body=response["body"]))
    if response["statusCode"] >= 400:
        raise SystemExit(1)


if __name__ == "__main__":
    main()

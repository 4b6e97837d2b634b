import logging

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from renewals.record_store import ACTIVE_STATUS, Page, RecordStore
from renewals.schemas import SubscriptionUpdate


logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "status-endDate-index"

# Logical field name -> item attribute name.
ATTRIBUTES = {
    "subject_id": "userId",
    "subscription_id": "subscriptionId",
    "status": "status",
    "plan": "plan",
    "started_at": "startDate",
    "expires_at": "endDate",
    "cancelled": "cancelled",
    "ends_at": "endsAt",
}


class DynamoRecordStore(RecordStore):
    """Subscriptions in DynamoDB tables, scanned through the status/endDate secondary index."""

    def __init__(self, dynamodb, *, index_name: str = DEFAULT_INDEX_NAME, page_size: int = 0) -> None:
        self.dynamodb = dynamodb
        self.index_name = index_name
        self.page_size = page_size

    def _fetch_page(self, threshold_iso: str, collection_name: str, token: object | None) -> Page:
        params: dict[str, object] = {
            "IndexName": self.index_name,
            "KeyConditionExpression": Key(ATTRIBUTES["status"]).eq(ACTIVE_STATUS)
            & Key(ATTRIBUTES["expires_at"]).lte(threshold_iso),
        }
        if self.page_size:
            params["Limit"] = self.page_size
        if token:
            params["ExclusiveStartKey"] = token

        response = self.dynamodb.Table(collection_name).query(**params)
        items = [
            {field: item.get(attribute) for field, attribute in ATTRIBUTES.items()}
            for item in response.get("Items", [])
        ]
        return Page(items=items, next_token=response.get("LastEvaluatedKey"))

    def apply_update(self, collection_name: str, change: SubscriptionUpdate) -> str:
        """Upsert the present fields; a write that would change nothing is reported as ``no-changes``."""
        values = change.present()
        names: dict[str, str] = {}
        expression_values: dict[str, object] = {}
        assignments: list[str] = []
        differs: list[str] = []

        for field, value in values.items():
            attribute = ATTRIBUTES[field]
            names[f"#{attribute}"] = attribute
            expression_values[f":{attribute}"] = value
            assignments.append(f"#{attribute} = :{attribute}")
            differs.append(f"attribute_not_exists(#{attribute}) OR #{attribute} <> :{attribute}")

        names["#subscriptionId"] = ATTRIBUTES["subscription_id"]
        condition = " OR ".join(["attribute_not_exists(#subscriptionId)", *differs])
        params: dict[str, object] = {
            "Key": {
                ATTRIBUTES["subject_id"]: change.subject_id,
                ATTRIBUTES["subscription_id"]: change.subscription_id,
            },
            "ConditionExpression": condition,
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_OLD",
        }
        if assignments:
            params["UpdateExpression"] = "SET " + ", ".join(assignments)
            params["ExpressionAttributeValues"] = expression_values

        try:
            response = self.dynamodb.Table(collection_name).update_item(**params)
        except ClientError as exc:
            if exc.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return "no-changes"
            raise

        return "updated" if response.get("Attributes") else "created"

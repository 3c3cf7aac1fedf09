"""DynamoDB-backed credential store.

The whole pool lives in a single item keyed by `pool_id`, so every save
is one atomic put.
"""

import asyncio
import json

from vocab_gateway.credentials.models import PoolSnapshot
from vocab_gateway.credentials.store import CredentialStore
from vocab_gateway.logging.audit import get_audit_logger


class DynamoDBCredentialStore(CredentialStore):

    def __init__(self, table_name: str, region: str = "us-east-1", pool_id: str = "default"):
        self._table_name = table_name
        self._region = region
        self._pool_id = pool_id
        self._table = None

    def _get_table(self):
        """Lazy-init boto3 Table resource."""
        if self._table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._table = dynamodb.Table(self._table_name)
        return self._table

    async def load(self) -> PoolSnapshot | None:
        return await asyncio.to_thread(self._get_item)

    async def save(self, snapshot: PoolSnapshot) -> None:
        await asyncio.to_thread(self._put_item, snapshot.to_document())

    def _get_item(self) -> PoolSnapshot | None:
        resp = self._get_table().get_item(Key={"pool_id": self._pool_id})
        item = resp.get("Item")
        if not item:
            return None
        # Stored as a JSON string: DynamoDB rejects floats and empty strings in maps
        try:
            document = json.loads(item.get("document", "{}"))
        except (json.JSONDecodeError, TypeError) as e:
            get_audit_logger().warning(
                "Stored credential pool document is unreadable, starting with an empty pool",
                extra={"audit_data": {"pool_id": self._pool_id, "error": type(e).__name__}},
            )
            return None
        return PoolSnapshot.from_document(document)

    def _put_item(self, document: dict) -> None:
        self._get_table().put_item(Item={
            "pool_id": self._pool_id,
            "document": json.dumps(document, ensure_ascii=False),
        })

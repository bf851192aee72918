"""DynamoDB-backed account store (key-value backend).

Implements the ``AccountStore`` protocol against a table whose partition
key is ``name``. Used for AWS sandbox accounts.

boto3 is synchronous, so every call runs in the default executor and is
bounded by ``timeout_seconds``. Retries of throttled calls are left to
botocore (see ``create_dynamodb_client``).
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, Dict, List, Mapping, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sandbox_api.app.accounts.model import (
    ACCOUNT_ATTRIBUTES,
    Account,
    AccountKind,
    account_from_record,
)

from .faults import store_fault

BACKEND = "dynamodb"
DEFAULT_TABLE = "accounts"

_deserializer = TypeDeserializer()
_serializer = TypeSerializer()


def _serialize(value: Any) -> Dict[str, Any]:
    return _serializer.serialize(value)


def _deserialize(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _deserializer.deserialize(v) for k, v in raw.items()}


def create_dynamodb_client(
    *,
    region_name: str,
    endpoint_url: Optional[str] = None,
    timeout_seconds: float = 10.0,
):
    """Low-level DynamoDB client with standard retries and socket timeouts."""
    return boto3.client(
        "dynamodb",
        region_name=region_name,
        endpoint_url=endpoint_url or None,
        config=Config(
            retries={"max_attempts": 5, "mode": "standard"},
            connect_timeout=timeout_seconds,
            read_timeout=timeout_seconds,
        ),
    )


def _projection() -> tuple[str, Dict[str, str]]:
    # Every attribute goes through a placeholder: "name" is a reserved word
    # and "aws:rep:updatetime" is not a valid bare token.
    names = {f"#p{i}": attr for i, attr in enumerate(ACCOUNT_ATTRIBUTES)}
    return ", ".join(names), names


def _is_conditional_check_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoDBAccountStore:
    """Account reads and the cleanup mark over a DynamoDB table."""

    def __init__(
        self,
        client,
        *,
        table_name: str = DEFAULT_TABLE,
        kind: AccountKind = AccountKind.AWS,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client
        self._table = table_name
        self._kind = kind
        self._timeout = timeout_seconds

    async def _call(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(fn, **kwargs)),
            timeout=self._timeout,
        )

    async def scan(self, filters: Mapping[str, Any] | None = None) -> List[Account]:
        """Scan the whole table, following pagination, with optional
        equality filters ANDed together."""
        projection, names = _projection()
        kwargs: Dict[str, Any] = {
            "TableName": self._table,
            "ProjectionExpression": projection,
            "ExpressionAttributeNames": names,
        }
        if filters:
            clauses = []
            values: Dict[str, Any] = {}
            for i, (attr, value) in enumerate(filters.items()):
                names[f"#f{i}"] = attr
                values[f":f{i}"] = _serialize(value)
                clauses.append(f"#f{i} = :f{i}")
            kwargs["FilterExpression"] = " AND ".join(clauses)
            kwargs["ExpressionAttributeValues"] = values

        accounts: List[Account] = []
        last_evaluated_key = None
        try:
            while True:
                if last_evaluated_key:
                    kwargs["ExclusiveStartKey"] = last_evaluated_key
                resp = await self._call(self._client.scan, **kwargs)
                for raw in resp.get("Items", []):
                    accounts.append(account_from_record(_deserialize(raw), self._kind))
                last_evaluated_key = resp.get("LastEvaluatedKey")
                if not last_evaluated_key:
                    break
        except (BotoCoreError, ClientError, asyncio.TimeoutError) as exc:
            raise store_fault(BACKEND, "scan", exc) from exc
        return accounts

    async def get(self, name: str) -> Optional[Account]:
        try:
            item = await self._get_item(name)
        except (BotoCoreError, ClientError, asyncio.TimeoutError) as exc:
            raise store_fault(BACKEND, "get_account", exc) from exc
        if not item:
            return None
        return account_from_record(_deserialize(item), self._kind)

    async def mark_for_cleanup(self, name: str) -> bool:
        try:
            await self._call(
                self._client.update_item,
                TableName=self._table,
                Key={"name": _serialize(name)},
                UpdateExpression="SET #tc = :true",
                # Already-marked items fail the condition, so a repeated mark
                # writes nothing and leaves aws:rep:updatetime alone.
                ConditionExpression=(
                    "attribute_exists(#name) AND "
                    "(attribute_not_exists(#tc) OR #tc = :false)"
                ),
                ExpressionAttributeNames={"#name": "name", "#tc": "to_cleanup"},
                ExpressionAttributeValues={
                    ":true": _serialize(True),
                    ":false": _serialize(False),
                },
            )
            return True
        except ClientError as exc:
            if not _is_conditional_check_failure(exc):
                raise store_fault(BACKEND, "mark_for_cleanup", exc) from exc
        except (BotoCoreError, asyncio.TimeoutError) as exc:
            raise store_fault(BACKEND, "mark_for_cleanup", exc) from exc

        # Condition failed: either the item is missing or already marked.
        try:
            item = await self._get_item(name, projection="#n", names={"#n": "name"})
        except (BotoCoreError, ClientError, asyncio.TimeoutError) as exc:
            raise store_fault(BACKEND, "mark_for_cleanup", exc) from exc
        return bool(item)

    async def _get_item(
        self,
        name: str,
        *,
        projection: Optional[str] = None,
        names: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if projection is None:
            projection, names = _projection()
        resp = await self._call(
            self._client.get_item,
            TableName=self._table,
            Key={"name": _serialize(name)},
            ProjectionExpression=projection,
            ExpressionAttributeNames=names,
            ConsistentRead=True,
        )
        return resp.get("Item") or {}

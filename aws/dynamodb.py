from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from aws.config import get_boto3_session_kwargs
from core.errors import StorageUnavailable

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"


def get_table(table_name: str):
    dynamodb = boto3.resource("dynamodb", **get_boto3_session_kwargs())
    return dynamodb.Table(table_name)


def is_conditional_failure(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code")
    if code == TRANSACTION_CANCELED:
        reasons = exc.response.get("CancellationReasons", [])
        return any(reason.get("Code") == "ConditionalCheckFailed" for reason in reasons)
    return code == CONDITIONAL_CHECK_FAILED


def put_all(table, puts: List[Dict]) -> None:
    """
    Write several items of ``table`` in one transaction. Each entry holds the
    ``Item`` plus optional ``ConditionExpression`` and expression attributes.
    """
    table.meta.client.transact_write_items(
        TransactItems=[{"Put": {"TableName": table.name, **put}} for put in puts]
    )


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """
    Translate boto errors into StorageUnavailable.
    Conditional-check failures are re-raised untouched for the caller to handle.
    """
    try:
        yield
    except ClientError as exc:
        if is_conditional_failure(exc):
            raise
        logger.warning("DynamoDB %s failed: %s", operation, exc)
        raise StorageUnavailable(f"Failed to {operation}: {exc}") from exc
    except BotoCoreError as exc:
        logger.warning("DynamoDB %s failed: %s", operation, exc)
        raise StorageUnavailable(f"Failed to {operation}: {exc}") from exc


def scan_all(table, **kwargs) -> Iterator[Dict]:
    """Yield every item of a table, following LastEvaluatedKey pagination."""
    response = table.scan(**kwargs)
    yield from response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
        yield from response.get("Items", [])


def query_all(table, **kwargs) -> Iterator[Dict]:
    response = table.query(**kwargs)
    yield from response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
        yield from response.get("Items", [])


def to_decimal(value: float) -> Decimal:
    return Decimal(str(float(value)))


def to_decimal_matrix(vectors) -> List[List[Decimal]]:
    return [[to_decimal(value) for value in vector] for vector in vectors]


def from_decimal_matrix(rows: Optional[List[List]]) -> List[List[float]]:
    return [[float(value) for value in row] for row in rows or []]

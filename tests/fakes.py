from __future__ import annotations

import copy
from types import SimpleNamespace
from typing import Dict, Optional

import numpy as np
from botocore.exceptions import ClientError

from core.errors import ExtractionError, ExtractionFailure


class FakeExtractor:
    """Maps image bytes to canned embeddings or extraction failures."""

    def __init__(self, faces: Dict[bytes, object]):
        self.faces = faces
        self.calls = 0

    def extract(self, image: bytes) -> np.ndarray:
        self.calls += 1
        outcome = self.faces.get(image, ExtractionFailure.NO_FACE_DETECTED)
        if isinstance(outcome, ExtractionFailure):
            raise ExtractionError(outcome)
        return np.asarray(outcome, dtype=np.float64)


def client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeTable:
    """
    The subset of a boto3 DynamoDB Table the stores use: conditional put,
    transactional put through ``meta.client``, consistent get, paginated scan
    and key-equality query.
    """

    def __init__(self, key_names, page_size: Optional[int] = None, name: str = "FakeTable"):
        self.key_names = tuple(key_names)
        self.page_size = page_size
        self.name = name
        self.meta = SimpleNamespace(client=self)
        self.items: Dict[tuple, dict] = {}
        self.failing_puts = 0
        self.puts = 0

    def _key(self, item) -> tuple:
        return tuple(item[name] for name in self.key_names)

    def _condition_holds(self, item, condition, names=None, values=None) -> bool:
        existing = self.items.get(self._key(item))
        if not condition:
            return True
        if condition.startswith("attribute_not_exists"):
            return existing is None
        attribute, placeholder = (part.strip() for part in condition.split("="))
        attribute = (names or {}).get(attribute, attribute)
        return existing is not None and existing.get(attribute) == values[placeholder]

    def put_item(self, Item, ConditionExpression=None, ExpressionAttributeValues=None):
        self.puts += 1
        if self.failing_puts:
            self.failing_puts -= 1
            raise client_error("ProvisionedThroughputExceededException")
        if not self._condition_holds(Item, ConditionExpression, values=ExpressionAttributeValues):
            raise client_error("ConditionalCheckFailedException")
        self.items[self._key(Item)] = copy.deepcopy(Item)
        return {}

    def transact_write_items(self, TransactItems):
        puts = [entry["Put"] for entry in TransactItems]
        reasons = [
            {
                "Code": "None"
                if self._condition_holds(
                    put["Item"],
                    put.get("ConditionExpression"),
                    put.get("ExpressionAttributeNames"),
                    put.get("ExpressionAttributeValues"),
                )
                else "ConditionalCheckFailed"
            }
            for put in puts
        ]
        if any(reason["Code"] != "None" for reason in reasons):
            error = client_error("TransactionCanceledException", "TransactWriteItems")
            error.response["CancellationReasons"] = reasons
            raise error
        for put in puts:
            self.items[self._key(put["Item"])] = copy.deepcopy(put["Item"])
        return {}

    def get_item(self, Key, ConsistentRead=False):
        item = self.items.get(self._key(Key))
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    def scan(self, ExclusiveStartKey=None):
        return self._page(list(self.items.values()), ExclusiveStartKey)

    def query(self, KeyConditionExpression, ExclusiveStartKey=None):
        wanted = _key_equalities(KeyConditionExpression)
        rows = [
            item
            for item in self.items.values()
            if all(item.get(name) == value for name, value in wanted.items())
        ]
        return self._page(rows, ExclusiveStartKey)

    def _page(self, rows, start_key):
        start = start_key["offset"] if start_key else 0
        end = len(rows) if self.page_size is None else start + self.page_size
        response = {"Items": copy.deepcopy(rows[start:end])}
        if end < len(rows):
            response["LastEvaluatedKey"] = {"offset": end}
        return response


def _key_equalities(condition) -> dict:
    expression = condition.get_expression()
    if expression["operator"] == "AND":
        left, right = expression["values"]
        return {**_key_equalities(left), **_key_equalities(right)}
    key, value = expression["values"]
    return {key.name: value}

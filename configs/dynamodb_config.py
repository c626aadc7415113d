"""
DynamoDB configuration and utilities for the Face Attendance service.

This module creates, inspects and deletes the two tables the service uses:
the faces table (one item per enrolled student) and the attendance table
(one item per student per day).
"""

from __future__ import annotations

import boto3
from botocore.exceptions import ClientError

from aws.config import get_boto3_session_kwargs

FACES_KEY_SCHEMA = {
    "KeySchema": [{"AttributeName": "student_id", "KeyType": "HASH"}],
    "AttributeDefinitions": [{"AttributeName": "student_id", "AttributeType": "S"}],
}

ATTENDANCE_KEY_SCHEMA = {
    "KeySchema": [
        {"AttributeName": "session_id", "KeyType": "HASH"},
        {"AttributeName": "student_id", "KeyType": "RANGE"},
    ],
    "AttributeDefinitions": [
        {"AttributeName": "session_id", "AttributeType": "S"},
        {"AttributeName": "student_id", "AttributeType": "S"},
    ],
}


def _resource():
    return boto3.resource("dynamodb", **get_boto3_session_kwargs())


def create_table(table_name: str, key_schema: dict) -> dict:
    """
    Create a DynamoDB table if it doesn't exist.

    Args:
        table_name: Name of the table to create
        key_schema: KeySchema and AttributeDefinitions for the table

    Returns:
        Dictionary with table creation status
    """
    dynamodb = _resource()

    try:
        table = dynamodb.Table(table_name)
        table.load()
        return {
            "status": "exists",
            "message": f"Table '{table_name}' already exists",
            "table_name": table_name,
        }
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceNotFoundException":
            return {"status": "error", "message": str(e), "table_name": table_name}

    try:
        table = dynamodb.create_table(
            TableName=table_name,
            BillingMode="PAY_PER_REQUEST",
            Tags=[{"Key": "Application", "Value": "FaceAttendance"}],
            **key_schema,
        )
        # Wait for table to be created
        table.wait_until_exists()
    except ClientError as create_error:
        return {"status": "error", "message": str(create_error), "table_name": table_name}
    return {
        "status": "created",
        "message": f"Table '{table_name}' created successfully",
        "table_name": table_name,
    }


def create_faces_table(table_name: str) -> dict:
    return create_table(table_name, FACES_KEY_SCHEMA)


def create_attendance_table(table_name: str) -> dict:
    return create_table(table_name, ATTENDANCE_KEY_SCHEMA)


def get_table_info(table_name: str) -> dict:
    """
    Get information about a DynamoDB table.

    Args:
        table_name: Name of the table

    Returns:
        Dictionary with table information
    """
    try:
        table = _resource().Table(table_name)
        table.load()
        return {
            "status": "success",
            "table_name": table.name,
            "item_count": table.item_count,
            "table_status": table.table_status,
            "table_size_bytes": table.table_size_bytes,
            "arn": table.table_arn,
        }
    except ClientError as e:
        return {"status": "error", "message": str(e), "table_name": table_name}

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

AWS_REGION = os.getenv("AWS_REGION", "eu-north-1")
FACES_TABLE = os.getenv("FACES_TABLE", "FacesTable")
ATTENDANCE_TABLE = os.getenv("ATTENDANCE_TABLE", "Attendance")
DYNAMODB_ENDPOINT = os.getenv("DYNAMODB_ENDPOINT")


def get_boto3_session_kwargs() -> dict:
    """
    Provide common keyword arguments when instantiating boto3 clients/resources.
    DYNAMODB_ENDPOINT points the resource at DynamoDB Local when set.
    """
    kwargs = {"region_name": AWS_REGION}
    if DYNAMODB_ENDPOINT:
        kwargs["endpoint_url"] = DYNAMODB_ENDPOINT
    return kwargs

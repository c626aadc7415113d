#!/usr/bin/env python3
"""
Setup script to initialize DynamoDB for the Face Attendance service.

Usage:
    python scripts/setup_dynamodb.py
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from aws.config import AWS_REGION  # noqa: E402
from configs.dynamodb_config import (  # noqa: E402
    create_attendance_table,
    create_faces_table,
    get_table_info,
)
from configs.settings import Settings  # noqa: E402


def _report(result: dict) -> None:
    if result["status"] == "created":
        print(f"✅ {result['message']}")
    elif result["status"] == "exists":
        print(f"ℹ️  {result['message']}")
    else:
        print(f"❌ Error: {result['message']}")
        sys.exit(1)

    info = get_table_info(result["table_name"])
    if info["status"] != "success":
        print(f"❌ Error getting table info: {info['message']}")
        sys.exit(1)
    print(f"   Status: {info['table_status']}, items: {info['item_count']}, ARN: {info['arn']}")


def main():
    """Set up DynamoDB for the Face Attendance service."""
    settings = Settings.from_env()

    print("🚀 Setting up DynamoDB for Face Attendance")
    print(f"   Region: {AWS_REGION}")
    print(f"   Tables: {settings.faces_table}, {settings.attendance_table}")
    print()

    _report(create_faces_table(settings.faces_table))
    _report(create_attendance_table(settings.attendance_table))

    print()
    print("✅ DynamoDB setup complete!")


if __name__ == "__main__":
    main()

"""
Runtime settings for the Face Attendance service.

Values come from the environment (optionally seeded from a ``.env`` file) so
the same code runs against local files or DynamoDB.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from typing import Optional

from dotenv import load_dotenv

from aws.config import ATTENDANCE_TABLE, FACES_TABLE


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return None
    return int(value)


def parse_time_of_day(value: Optional[str], name: str = "LATE_AFTER") -> Optional[time]:
    """Parse ``HH:MM`` into a ``datetime.time``; empty values mean unset."""
    if not value:
        return None
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise ValueError(f"{name} must be HH:MM, got {value!r}") from exc


@dataclass(frozen=True)
class Settings:
    storage_type: str = "local"
    students_file: str = "data/students.json"
    attendance_file: str = "data/attendance.csv"
    faces_table: str = FACES_TABLE
    attendance_table: str = ATTENDANCE_TABLE

    embedding_dimension: Optional[int] = None
    match_metric: str = "euclidean"
    match_threshold: float = 0.5
    match_normalize: bool = False
    match_tie_epsilon: float = 1e-6
    match_max_distance: float = 2.0

    timezone: str = "UTC"
    late_after: Optional[time] = None

    record_retries: int = 3
    record_retry_backoff: float = 0.2

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path)
        return cls(
            storage_type=os.getenv("STORAGE_TYPE", "local"),
            students_file=os.getenv("STUDENTS_FILE", "data/students.json"),
            attendance_file=os.getenv("ATTENDANCE_FILE", "data/attendance.csv"),
            faces_table=os.getenv("FACES_TABLE", FACES_TABLE),
            attendance_table=os.getenv("ATTENDANCE_TABLE", ATTENDANCE_TABLE),
            embedding_dimension=_env_optional_int("EMBEDDING_DIMENSION"),
            match_metric=os.getenv("MATCH_METRIC", "euclidean"),
            match_threshold=float(os.getenv("MATCH_THRESHOLD", "0.5")),
            match_normalize=_env_bool("MATCH_NORMALIZE", False),
            match_tie_epsilon=float(os.getenv("MATCH_TIE_EPSILON", "1e-6")),
            match_max_distance=float(os.getenv("MATCH_MAX_DISTANCE", "2.0")),
            timezone=os.getenv("ATTENDANCE_TIMEZONE", "UTC"),
            late_after=parse_time_of_day(os.getenv("LATE_AFTER")),
            record_retries=int(os.getenv("RECORD_RETRIES", "3")),
            record_retry_backoff=float(os.getenv("RECORD_RETRY_BACKOFF", "0.2")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
        )

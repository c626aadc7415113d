"""
Identify the student in an image without marking attendance.

Usage:
    python scripts/recognize.py <image_path>
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from api.context import build_context  # noqa: E402
from configs.settings import Settings  # noqa: E402
from core.errors import AttendanceError  # noqa: E402
from recognition.matcher import require_match  # noqa: E402


def main(image_path: str) -> None:
    ctx = build_context(Settings.from_env())
    try:
        probe = ctx.attendance.extractor.extract(Path(image_path).read_bytes())
        matched = require_match(ctx.attendance.identify(probe))
        student = ctx.enrollment.get(matched.student_id)
        print(
            f"{student.name} ({student.class_name}, roll {student.roll_number}) "
            f"distance={matched.distance:.3f} confidence={matched.confidence:.3f}"
        )
    except AttendanceError as exc:
        print(f"Not recognized: {exc}")
        raise SystemExit(2)
    finally:
        ctx.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/recognize.py <image_path>")
        raise SystemExit(1)
    main(sys.argv[1])

"""
Bulk-enroll students from a directory of face images.

Layout: <users_dir>/<roll_number>_<name>/*.jpg, one folder per student.
Every readable image becomes a reference embedding of that student.

Usage:
    python scripts/enroll_directory.py <users_dir> <class_name>
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from api.context import build_stores  # noqa: E402
from configs.logging_config import setup_logging  # noqa: E402
from configs.settings import Settings  # noqa: E402
from core.errors import AttendanceError  # noqa: E402
from core.models import StudentProfile  # noqa: E402
from recognition.extractor import EmbeddingExtractor  # noqa: E402

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png"}


def enroll_directory(users_dir: Path, class_name: str, extractor: EmbeddingExtractor, store) -> int:
    enrolled = 0
    for user_dir in sorted(p for p in users_dir.iterdir() if p.is_dir()):
        roll_number, _, name = user_dir.name.partition("_")
        profile = StudentProfile(name=name.replace("_", " ") or roll_number, roll_number=roll_number, class_name=class_name)
        student_id = None
        for image_path in sorted(user_dir.iterdir()):
            if image_path.suffix.lower() not in IMAGE_SUFFIXES:
                continue
            try:
                embedding = extractor.extract(image_path.read_bytes())
                student_id = store.enroll(profile, embedding, student_id=student_id)
                enrolled += 1
            except AttendanceError as exc:
                print(f"[WARNING] Skipped {image_path}: {exc}")
        if student_id:
            print(f"{profile.name} ({roll_number}) -> {student_id}")
    return enrolled


def main(users_dir: str, class_name: str) -> None:
    from recognition.face_recognizer import FaceRecognizer

    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    store, ledger = build_stores(settings)
    try:
        count = enroll_directory(Path(users_dir), class_name, FaceRecognizer(), store)
    finally:
        store.close()
        ledger.close()
    print(f"Enrolled {count} reference embeddings.")


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python scripts/enroll_directory.py <users_dir> <class_name>")
        raise SystemExit(1)
    main(sys.argv[1], sys.argv[2])

from __future__ import annotations

import logging
from typing import List, Tuple

import face_recognition
import numpy as np

from core.errors import ExtractionError, ExtractionFailure
from recognition.extractor import decode_image

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSION = 128


class FaceRecognizer:
    """
    Embedding extractor backed by ``face_recognition`` (dlib, 128-d encodings).

    The image must contain exactly one detectable face.
    """

    dimension = EMBEDDING_DIMENSION

    def __init__(self, model: str = "hog", num_jitters: int = 1) -> None:
        self.model = model
        self.num_jitters = num_jitters

    def detect_faces(self, image: np.ndarray) -> List[Tuple[int, int, int, int]]:
        return face_recognition.face_locations(image, model=self.model)

    def extract(self, image: bytes) -> np.ndarray:
        rgb = decode_image(image)
        locations = self.detect_faces(rgb)
        if not locations:
            raise ExtractionError(ExtractionFailure.NO_FACE_DETECTED)
        if len(locations) > 1:
            logger.info("Rejected image with %d faces", len(locations))
            raise ExtractionError(ExtractionFailure.MULTIPLE_FACES_DETECTED)
        encodings = face_recognition.face_encodings(rgb, locations, num_jitters=self.num_jitters)
        if not encodings:
            raise ExtractionError(ExtractionFailure.NO_FACE_DETECTED, "Unable to encode face")
        return np.asarray(encodings[0], dtype=np.float64)

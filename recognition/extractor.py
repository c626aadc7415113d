from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np

from core.errors import ExtractionError, ExtractionFailure


class EmbeddingExtractor(Protocol):
    """
    Turns an encoded image into a single face embedding.

    Implementations raise ExtractionError when the image holds no face or more
    than one face, and always return vectors of the same dimension.
    """

    def extract(self, image: bytes) -> np.ndarray:
        ...


def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG bytes into an RGB array."""
    array = np.frombuffer(data, dtype=np.uint8)
    bgr = cv2.imdecode(array, cv2.IMREAD_COLOR) if array.size else None
    if bgr is None:
        raise ExtractionError(ExtractionFailure.INVALID_IMAGE, "Unable to decode image data")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)

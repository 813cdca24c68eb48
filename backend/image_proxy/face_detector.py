"""
Face Detector

Finds the largest frontal face in raw image bytes. Detection is a
best-effort hint for cropping: every failure is reported as NO_FACE.

Backends implement the ``FaceDetector`` protocol:
- HaarCascadeFaceDetector: OpenCV's pretrained frontal face cascade
- NullFaceDetector: never finds a face
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional, Protocol

import cv2
import numpy as np

logger = logging.getLogger(__name__)

CASCADE_FILE = "haarcascade_frontalface_default.xml"


@dataclass(frozen=True)
class FaceBox:
    """Face rectangle in source-image pixel coordinates."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @classmethod
    def from_xywh(cls, x: int, y: int, w: int, h: int) -> FaceBox:
        return cls(int(x), int(y), int(x + w), int(y + h))


# "Detection ran, nothing found". Distinct from None (not yet computed).
NO_FACE = FaceBox(0, 0, 0, 0)


class FaceDetector(Protocol):
    def detect_largest_face(self, data: bytes) -> FaceBox:
        ...


class NullFaceDetector:
    """Detector for environments without a face model."""

    def detect_largest_face(self, data: bytes) -> FaceBox:
        return NO_FACE

    def close(self) -> None:
        pass


class HaarCascadeFaceDetector:
    """
    OpenCV Haar cascade face detector.

    The cascade is loaded once and shared; calls are serialized with a
    lock because CascadeClassifier instances are not thread-safe.

    Usage:
        with HaarCascadeFaceDetector() as detector:
            face = detector.detect_largest_face(image_bytes)
    """

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 3,
    ):
        self.cascade_path = cascade_path or cv2.data.haarcascades + CASCADE_FILE
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors

        self._classifier = cv2.CascadeClassifier(self.cascade_path)
        if self._classifier.empty():
            raise RuntimeError(f"Failed to load face cascade: {self.cascade_path}")
        self._lock = Lock()
        logger.info(f"[FaceDetector] Loaded cascade: {self.cascade_path}")

    def __enter__(self) -> HaarCascadeFaceDetector:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the classifier."""
        with self._lock:
            self._classifier = None

    def detect_largest_face(self, data: bytes) -> FaceBox:
        """
        Detect the largest face by area.

        Ties keep the first box in the detector's output order.
        Returns NO_FACE when nothing is found or anything fails.
        """
        try:
            image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
            if image is None:
                logger.warning("[FaceDetector] Could not decode image")
                return NO_FACE

            with self._lock:
                if self._classifier is None:
                    logger.warning("[FaceDetector] Detector already closed")
                    return NO_FACE
                faces = self._classifier.detectMultiScale(
                    image,
                    scaleFactor=self.scale_factor,
                    minNeighbors=self.min_neighbors,
                )
        except Exception:
            logger.exception("[FaceDetector] Face detection failed")
            return NO_FACE

        if len(faces) == 0:
            return NO_FACE

        boxes = [FaceBox.from_xywh(*face) for face in faces]
        largest = max(boxes, key=lambda box: box.area)
        logger.debug(f"[FaceDetector] {len(boxes)} faces, largest: {largest}")
        return largest

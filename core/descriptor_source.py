"""
Face Descriptor Source

Turns one video frame into at most one 128-dimensional face descriptor using
the dlib ResNet model shipped with the face_recognition package. This is the
same descriptor family face-api.js produces in the browser, so descriptors
from either side can be matched against each other with Euclidean distance.

Multi-face policy: when a frame contains several faces, the largest face box
is used and the frame is NOT rejected. The library gives no per-face
detection score, so box area stands in for "best-scoring face".

Usage:
    from core.descriptor_source import FaceRecognitionSource

    source = FaceRecognitionSource(config)
    source.load_model()
    embedding = source.describe(frame_bgr)  # (128,) or None
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from core.errors import CaptureError, InvalidEmbeddingError

logger = logging.getLogger(__name__)

# (top, right, bottom, left), the face_recognition box convention
FaceLocation = Tuple[int, int, int, int]


def face_area(location: FaceLocation) -> int:
    top, right, bottom, left = location
    return max(0, bottom - top) * max(0, right - left)


def select_best_face(locations: Sequence[FaceLocation]) -> Optional[FaceLocation]:
    """
    Pick the face to describe from all detections in a frame.

    Largest box wins; on equal area the first detection is kept.

    Returns:
        The selected location, or None if there were no detections.
    """
    if not locations:
        return None
    return max(locations, key=face_area)


class DescriptorSource(ABC):
    """
    Produces a face descriptor from a frame.

    Implementations return None when no face is found and never return a
    descriptor whose length differs from embedding_dim.
    """

    embedding_dim: int = 128

    @abstractmethod
    def describe(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Extract one descriptor from a BGR frame.

        Args:
            frame: (H, W, 3) uint8 image in OpenCV BGR order.

        Returns:
            float32 descriptor of shape (embedding_dim,), or None if the
            frame holds no face.

        Raises:
            CaptureError: If the frame is not a 3-channel image.
            InvalidEmbeddingError: If the model output has the wrong shape.
        """
        pass


class FaceRecognitionSource(DescriptorSource):
    """
    Descriptor source backed by face_recognition (dlib).

    Args:
        config: Dictionary with keys:
            - model: Landmark model for alignment, "large" (68 points) or
                     "small" (5 points). Default "large".
            - num_jitters: Re-sampling passes per encoding (default 1)
            - upsample: Upsampling passes when detecting faces (default 1)
            - embedding_dim: Expected descriptor length (default 128)
    """

    def __init__(self, config: Optional[dict] = None):
        if config is None:
            config = {}

        self.model_name = config.get("model", "large")
        self.num_jitters = int(config.get("num_jitters", 1))
        self.upsample = int(config.get("upsample", 1))
        self.embedding_dim = int(config.get("embedding_dim", 128))

        self._lib = None
        self.is_loaded = False

    def load_model(self) -> None:
        """Import face_recognition (loads the dlib models). Call before describe."""
        if self.is_loaded:
            return

        import face_recognition

        self._lib = face_recognition
        self.is_loaded = True
        logger.info(f"Descriptor source loaded (face_recognition, model={self.model_name})")

    def detect(self, rgb: np.ndarray) -> List[FaceLocation]:
        """All face boxes in an RGB frame."""
        return self._lib.face_locations(rgb, number_of_times_to_upsample=self.upsample)

    def describe(self, frame: np.ndarray) -> Optional[np.ndarray]:
        if not self.is_loaded:
            self.load_model()

        if frame is None or frame.ndim != 3 or frame.shape[2] != 3:
            raise CaptureError(f"Expected a (H, W, 3) BGR frame, got {getattr(frame, 'shape', None)}")

        # face_recognition expects RGB input
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        locations = self.detect(rgb)
        best = select_best_face(locations)

        if best is None:
            logger.info("No face detected in frame")
            return None

        if len(locations) > 1:
            logger.info(f"{len(locations)} faces detected, using the largest")

        encodings = self._lib.face_encodings(
            rgb,
            known_face_locations=[best],
            num_jitters=self.num_jitters,
            model=self.model_name,
        )

        if not encodings:
            logger.warning("Face detected but no descriptor could be computed")
            return None

        embedding = np.asarray(encodings[0], dtype=np.float32)
        if embedding.shape != (self.embedding_dim,):
            raise InvalidEmbeddingError(
                f"Descriptor model returned shape {embedding.shape}, "
                f"expected ({self.embedding_dim},)"
            )
        return embedding

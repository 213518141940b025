"""
Webcam capture for the Face Access client.

Opens the camera with OpenCV and hands out the most recent frame on demand.
The driver keeps a small internal queue of frames; stale ones are drained
before each capture so enroll/verify never describe a frame taken before the
user pressed the button.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from core.errors import CameraUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CaptureConfig:
    """Configuration for webcam capture."""
    width: int = 640
    height: int = 480
    device_id: int = 0
    # Frames grabbed and discarded before the one that is returned
    flush_frames: int = 4

    @classmethod
    def from_dict(cls, config: dict) -> "CaptureConfig":
        return cls(
            width=int(config.get("width", 640)),
            height=int(config.get("height", 480)),
            device_id=int(config.get("device_id", 0)),
            flush_frames=int(config.get("flush_frames", 4)),
        )


class WebcamCapture:
    """
    Manages webcam access for the capture client.

    This component handles:
    - Opening/closing the webcam device
    - Returning the latest frame in BGR order

    Usable as a context manager, and as the frame provider of
    ClientOrchestrator (calling the instance returns the latest frame).
    """

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or CaptureConfig()
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> None:
        """
        Open the webcam device.

        Raises:
            CameraUnavailableError: If the device cannot be opened.
        """
        if self._cap is not None:
            self.close()

        cap = cv2.VideoCapture(self.config.device_id)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailableError(f"Failed to open camera {self.config.device_id}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)

        self._cap = cap
        logger.info(f"Opened camera {self.config.device_id} at "
                    f"{self.config.width}x{self.config.height}")

    def close(self) -> None:
        """Release the webcam device."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera closed")

    def read_latest(self) -> np.ndarray:
        """
        Return the most recent frame.

        Returns:
            BGR uint8 array of shape (H, W, 3).

        Raises:
            CameraUnavailableError: If the camera is closed or yields no frame.
        """
        if not self.is_open:
            raise CameraUnavailableError("Camera is not open")

        for _ in range(self.config.flush_frames):
            self._cap.grab()

        ret, frame = self._cap.read()
        if not ret or frame is None:
            raise CameraUnavailableError("Camera returned no frame")

        return frame

    def __call__(self) -> np.ndarray:
        return self.read_latest()

    def __enter__(self) -> "WebcamCapture":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        self.close()

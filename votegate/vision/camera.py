from __future__ import annotations

import logging
import threading

import cv2
import numpy as np

from votegate.exceptions import CameraUnavailable

from .camera_capture import open_camera_capture

logger = logging.getLogger(__name__)


class CameraStream:
    """User-facing capture device; ``close`` stops the stream and is safe to repeat.

    ``read`` and ``close`` may run on different threads, so both hold the
    device lock; a close issued mid-read waits for that frame to finish.
    """

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480, fps: int = 30):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.fps = fps
        self.cap = None
        self.backend_name: str | None = None
        self._lock = threading.Lock()

    def __enter__(self) -> "CameraStream":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.cap is not None

    def open(self) -> None:
        with self._lock:
            if self.cap is not None:
                return
            cap, backend_name = open_camera_capture(self.camera_index)
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            cap.set(cv2.CAP_PROP_FPS, self.fps)
            self.cap, self.backend_name = cap, backend_name
        logger.info("Camera %d opened via %s", self.camera_index, self.backend_name)

    def read(self) -> np.ndarray:
        with self._lock:
            cap = self.cap
            if cap is None:
                raise CameraUnavailable("Camera stream is not initialized.")
            success, frame = cap.read()
        if not success or frame is None:
            raise CameraUnavailable("Failed to read frame from camera.")
        return frame

    def close(self) -> None:
        with self._lock:
            cap, self.cap = self.cap, None
        if cap is not None:
            cap.release()
            logger.info("Camera %d released", self.camera_index)

from __future__ import annotations

from typing import Optional, Sequence

import cv2
import numpy as np

from votegate.exceptions import FaceEngineError

from .types import FaceLandmarks, Point

try:
    import mediapipe as mp
except Exception:  # pragma: no cover - runtime dependency guard
    mp = None


# FaceMesh indices arranged in the six-point eye convention:
# corner, upper, upper, corner, lower, lower.
LEFT_EYE = (362, 385, 387, 263, 373, 380)
RIGHT_EYE = (33, 160, 158, 133, 153, 144)

# Twelve outer-lip points then eight inner-lip points, starting at the left corner.
OUTER_LIP = (61, 40, 37, 0, 267, 270, 291, 321, 314, 17, 84, 91)
INNER_LIP = (78, 81, 13, 311, 308, 402, 14, 178)
MOUTH = OUTER_LIP + INNER_LIP

NOSE_TIP = 1
LEFT_FACE_EDGE = 234
RIGHT_FACE_EDGE = 454


def _points(landmarks, indices: Sequence[int], width: int, height: int) -> tuple[Point, ...]:
    return tuple((landmarks[i].x * width, landmarks[i].y * height) for i in indices)


class MediaPipeLandmarkDetector:
    """Maps MediaPipe FaceMesh output onto the contours used by the liveness geometry."""

    def __init__(self, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5):
        if mp is None:
            raise FaceEngineError("mediapipe is required for landmark detection.")
        try:
            self.face_mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=1,
                refine_landmarks=True,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
        except Exception as exc:
            raise FaceEngineError(f"Failed to initialize FaceMesh: {exc}") from exc

    def close(self) -> None:
        self.face_mesh.close()

    def detect(self, frame: np.ndarray) -> Optional[FaceLandmarks]:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        result = self.face_mesh.process(rgb)
        if not result.multi_face_landmarks:
            return None

        h, w = frame.shape[:2]
        points = result.multi_face_landmarks[0].landmark
        return FaceLandmarks(
            left_eye=_points(points, LEFT_EYE, w, h),
            right_eye=_points(points, RIGHT_EYE, w, h),
            mouth=_points(points, MOUTH, w, h),
            nose_tip=_points(points, (NOSE_TIP,), w, h)[0],
            left_edge=_points(points, (LEFT_FACE_EDGE,), w, h)[0],
            right_edge=_points(points, (RIGHT_FACE_EDGE,), w, h)[0],
        )

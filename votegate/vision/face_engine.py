from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np
import torch
import torch.nn.functional as f
import torchvision.models as models
from torchvision.models import ResNet18_Weights

from votegate.exceptions import FaceEngineError

try:
    import mediapipe as mp
except Exception:  # pragma: no cover - runtime dependency guard
    mp = None

logger = logging.getLogger(__name__)

DESCRIPTOR_SIZE = 512


class FaceEngine:
    """Single-face descriptor extractor: MediaPipe detection plus a ResNet18 embedding.

    Returns ``None`` when the frame holds no face, more than one face, or a face
    smaller than ``min_face_size``. Descriptors are L2-normalised.
    """

    def __init__(
        self,
        device: Optional[str] = None,
        detection_threshold: float = 0.80,
        min_face_size: int = 80,
    ):
        if mp is None:
            raise FaceEngineError("mediapipe is required for face detection.")

        self.device = torch.device(device or ("cuda" if torch.cuda.is_available() else "cpu"))
        self.detection_threshold = detection_threshold
        self.min_face_size = min_face_size

        try:
            self.detector = mp.solutions.face_detection.FaceDetection(
                model_selection=0,
                min_detection_confidence=detection_threshold,
            )

            backbone = models.resnet18(weights=ResNet18_Weights.DEFAULT)
            backbone.fc = torch.nn.Identity()
            self.embedder = backbone.eval().to(self.device)

            self.mean = torch.tensor([0.485, 0.456, 0.406], dtype=torch.float32).view(1, 3, 1, 1).to(self.device)
            self.std = torch.tensor([0.229, 0.224, 0.225], dtype=torch.float32).view(1, 3, 1, 1).to(self.device)
            self.clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        except Exception as exc:
            raise FaceEngineError(f"Failed to initialize face models: {exc}") from exc

    def close(self) -> None:
        self.detector.close()

    def extract_descriptor(self, frame: np.ndarray) -> Optional[np.ndarray]:
        try:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            result = self.detector.process(rgb)
        except Exception as exc:
            raise FaceEngineError(f"Face detection failed: {exc}") from exc

        if not result.detections:
            return None

        h, w = rgb.shape[:2]
        crops = []
        for det in result.detections:
            score = float(det.score[0]) if det.score else 0.0
            if score < self.detection_threshold:
                continue

            rel = det.location_data.relative_bounding_box
            x1 = max(0, int(rel.xmin * w))
            y1 = max(0, int(rel.ymin * h))
            x2 = min(w, x1 + int(rel.width * w))
            y2 = min(h, y1 + int(rel.height * h))
            if (x2 - x1) < self.min_face_size or (y2 - y1) < self.min_face_size:
                continue

            crop = self._stable_crop(rgb, x1, y1, x2, y2)
            if crop.size:
                crops.append(crop)

        if len(crops) != 1:
            if crops:
                logger.info("Descriptor skipped: %d faces in frame", len(crops))
            return None

        try:
            tensor = torch.from_numpy(self._preprocess_crop(crops[0])).permute(2, 0, 1).float() / 255.0
            batch = (tensor.unsqueeze(0).to(self.device) - self.mean) / self.std
            with torch.inference_mode():
                raw = self.embedder(batch)
                normed = f.normalize(raw, p=2, dim=1)
        except Exception as exc:
            raise FaceEngineError(f"Descriptor generation failed: {exc}") from exc

        return normed[0].detach().cpu().numpy().astype(np.float32)

    @staticmethod
    def _stable_crop(rgb: np.ndarray, x1: int, y1: int, x2: int, y2: int) -> np.ndarray:
        h, w = rgb.shape[:2]
        side = int(max(x2 - x1, y2 - y1) * 1.05)
        cx = (x1 + x2) // 2
        cy = (y1 + y2) // 2

        sx1 = max(0, cx - side // 2)
        sy1 = max(0, cy - side // 2)
        sx2 = min(w, sx1 + side)
        sy2 = min(h, sy1 + side)
        if sx2 <= sx1 or sy2 <= sy1:
            return np.empty((0, 0, 3), dtype=rgb.dtype)
        return rgb[sy1:sy2, sx1:sx2]

    def _preprocess_crop(self, crop: np.ndarray) -> np.ndarray:
        interpolation = cv2.INTER_CUBIC if min(crop.shape[:2]) < 224 else cv2.INTER_AREA
        resized = cv2.resize(crop, (224, 224), interpolation=interpolation)

        # Equalize luminance so enrollment and verification lighting compare fairly.
        ycrcb = cv2.cvtColor(resized, cv2.COLOR_RGB2YCrCb)
        y_channel, cr_channel, cb_channel = cv2.split(ycrcb)
        balanced = cv2.cvtColor(
            cv2.merge([self.clahe.apply(y_channel), cr_channel, cb_channel]),
            cv2.COLOR_YCrCb2RGB,
        )

        mask = np.zeros((224, 224), dtype=np.float32)
        cv2.ellipse(mask, (112, 112), (84, 100), 0, 0, 360, 1.0, -1)
        mask = cv2.GaussianBlur(mask, (0, 0), sigmaX=6.0, sigmaY=6.0)[..., None]

        balanced_f = balanced.astype(np.float32)
        mean_color = balanced_f.mean(axis=(0, 1), keepdims=True)
        focused = (balanced_f * mask) + (mean_color * (1.0 - mask))
        return np.clip(focused, 0.0, 255.0).astype(np.uint8)

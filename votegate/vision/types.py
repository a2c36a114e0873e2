from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import numpy as np

Point = Tuple[float, float]


@dataclass(frozen=True)
class FaceLandmarks:
    left_eye: Tuple[Point, ...]
    right_eye: Tuple[Point, ...]
    mouth: Tuple[Point, ...]
    nose_tip: Point
    left_edge: Point
    right_edge: Point


class LandmarkDetector(Protocol):
    def detect(self, frame: np.ndarray) -> Optional[FaceLandmarks]:
        ...


class DescriptorExtractor(Protocol):
    def extract_descriptor(self, frame: np.ndarray) -> Optional[np.ndarray]:
        ...


class FrameSource(Protocol):
    def open(self) -> None:
        ...

    def read(self) -> np.ndarray:
        ...

    def close(self) -> None:
        ...

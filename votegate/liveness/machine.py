from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from votegate.vision.types import FaceLandmarks

from .geometry import average_eye_openness, head_turn_ratio, mouth_openness

logger = logging.getLogger(__name__)

DEFAULT_EAR_THRESHOLD = 0.30
DEFAULT_MAR_THRESHOLD = 0.60
DEFAULT_HEAD_TURN_LOW = 0.35
DEFAULT_HEAD_TURN_HIGH = 0.65


class LivenessStage(str, Enum):
    AWAITING_BLINK = "awaiting_blink"
    AWAITING_MOUTH_OPEN = "awaiting_mouth_open"
    AWAITING_HEAD_TURN = "awaiting_head_turn"
    PASSED = "passed"


STAGE_PROMPTS = {
    LivenessStage.AWAITING_BLINK: "Blink now...",
    LivenessStage.AWAITING_MOUTH_OPEN: "Open your mouth...",
    LivenessStage.AWAITING_HEAD_TURN: "Turn your head left or right...",
    LivenessStage.PASSED: "Liveness check passed!",
}


@dataclass
class LivenessProgress:
    blink: bool = False
    mouth: bool = False
    head: bool = False


class LivenessStateMachine:
    """Blink, mouth-open and head-turn challenge evaluated one frame at a time.

    Only the rule of the current stage is checked, so a frame that would satisfy
    a later stage never advances the machine early. A frame without a face, or
    with an undefined ratio, leaves the stage unchanged. ``on_passed`` fires
    exactly once, when the machine first reaches ``PASSED``.
    """

    def __init__(
        self,
        ear_threshold: float = DEFAULT_EAR_THRESHOLD,
        mar_threshold: float = DEFAULT_MAR_THRESHOLD,
        head_turn_low: float = DEFAULT_HEAD_TURN_LOW,
        head_turn_high: float = DEFAULT_HEAD_TURN_HIGH,
        on_passed: Optional[Callable[[], None]] = None,
    ) -> None:
        if not head_turn_low < head_turn_high:
            raise ValueError("head_turn_low must be below head_turn_high.")
        self.ear_threshold = ear_threshold
        self.mar_threshold = mar_threshold
        self.head_turn_low = head_turn_low
        self.head_turn_high = head_turn_high
        self.on_passed = on_passed
        self.stage = LivenessStage.AWAITING_BLINK
        self.progress = LivenessProgress()
        self.frames_observed = 0

    @property
    def passed(self) -> bool:
        return self.stage is LivenessStage.PASSED

    @property
    def prompt(self) -> str:
        return STAGE_PROMPTS[self.stage]

    def reset(self) -> None:
        self.stage = LivenessStage.AWAITING_BLINK
        self.progress = LivenessProgress()
        self.frames_observed = 0

    def observe(self, landmarks: Optional[FaceLandmarks]) -> LivenessStage:
        if self.passed:
            return self.stage
        self.frames_observed += 1
        if landmarks is None:
            return self.stage

        if self.stage is LivenessStage.AWAITING_BLINK:
            ear = average_eye_openness(landmarks.left_eye, landmarks.right_eye)
            if ear is not None and ear < self.ear_threshold:
                self.progress.blink = True
                self._advance(LivenessStage.AWAITING_MOUTH_OPEN)
        elif self.stage is LivenessStage.AWAITING_MOUTH_OPEN:
            mar = mouth_openness(landmarks.mouth)
            if mar is not None and mar > self.mar_threshold:
                self.progress.mouth = True
                self._advance(LivenessStage.AWAITING_HEAD_TURN)
        elif self.stage is LivenessStage.AWAITING_HEAD_TURN:
            ratio = head_turn_ratio(landmarks.nose_tip, landmarks.left_edge, landmarks.right_edge)
            if ratio is not None and (ratio < self.head_turn_low or ratio > self.head_turn_high):
                self.progress.head = True
                self._advance(LivenessStage.PASSED)
        return self.stage

    def _advance(self, stage: LivenessStage) -> None:
        logger.debug("Liveness stage %s -> %s after %d frames", self.stage.value, stage.value, self.frames_observed)
        self.stage = stage
        if stage is LivenessStage.PASSED and self.on_passed is not None:
            self.on_passed()

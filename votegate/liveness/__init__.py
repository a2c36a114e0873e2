from .geometry import average_eye_openness, eye_openness, head_turn_ratio, mouth_openness
from .machine import LivenessProgress, LivenessStage, LivenessStateMachine

__all__ = [
    "LivenessProgress",
    "LivenessStage",
    "LivenessStateMachine",
    "average_eye_openness",
    "eye_openness",
    "head_turn_ratio",
    "mouth_openness",
]

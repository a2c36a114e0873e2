"""Aspect ratios computed from facial landmark contours.

Eye contours use the six-point convention: points 0 and 3 are the horizontal
corners, (1, 5) and (2, 4) are the vertical pairs. Mouth contours use the
twenty-point convention of twelve outer-lip points followed by eight inner-lip
points; 0 and 6 are the mouth corners and 13/19 the inner-lip vertical pair.

Every ratio returns ``None`` when its denominator is zero.
"""
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

Point = Tuple[float, float]

EYE_POINTS = 6
MOUTH_POINTS = 20
_EPSILON = 1e-12


def _distance(a: Point, b: Point) -> float:
    return math.hypot(float(a[0]) - float(b[0]), float(a[1]) - float(b[1]))


def eye_openness(eye: Sequence[Point]) -> Optional[float]:
    if len(eye) != EYE_POINTS:
        raise ValueError(f"Eye contour must contain {EYE_POINTS} points, got {len(eye)}.")
    horizontal = _distance(eye[0], eye[3])
    if horizontal <= _EPSILON:
        return None
    vertical_1 = _distance(eye[1], eye[5])
    vertical_2 = _distance(eye[2], eye[4])
    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def average_eye_openness(left_eye: Sequence[Point], right_eye: Sequence[Point]) -> Optional[float]:
    left = eye_openness(left_eye)
    right = eye_openness(right_eye)
    if left is None or right is None:
        return None
    return (left + right) / 2.0


def mouth_openness(mouth: Sequence[Point]) -> Optional[float]:
    if len(mouth) < MOUTH_POINTS:
        raise ValueError(f"Mouth contour must contain at least {MOUTH_POINTS} points, got {len(mouth)}.")
    width = _distance(mouth[0], mouth[6])
    if width <= _EPSILON:
        return None
    return _distance(mouth[13], mouth[19]) / width


def head_turn_ratio(nose_tip: Point, left_edge: Point, right_edge: Point) -> Optional[float]:
    span = float(right_edge[0]) - float(left_edge[0])
    if abs(span) <= _EPSILON:
        return None
    return (float(nose_tip[0]) - float(left_edge[0])) / span

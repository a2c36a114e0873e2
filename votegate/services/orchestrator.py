from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Optional, Protocol

import numpy as np

from votegate.exceptions import CameraUnavailable, FaceNotRecognized, LivenessTimeout, NoFaceAtCapture
from votegate.liveness.machine import (
    DEFAULT_EAR_THRESHOLD,
    DEFAULT_HEAD_TURN_HIGH,
    DEFAULT_HEAD_TURN_LOW,
    DEFAULT_MAR_THRESHOLD,
    LivenessStage,
    LivenessStateMachine,
)
from votegate.services.matcher import MatchReason
from votegate.vision.types import DescriptorExtractor, FrameSource, LandmarkDetector

logger = logging.getLogger(__name__)

MSG_NO_FACE_REGISTERED = "No face registered"
MSG_NOT_RECOGNIZED = "Face not recognized"
MSG_TRY_AGAIN = "Verification failed. Try again."
MSG_CAMERA = "Camera access failed"


class FlowPurpose(str, Enum):
    ENROLL = "enroll"
    LOGIN = "login"
    VOTING = "voting"


class FlowStatus(str, Enum):
    ENROLLED = "enrolled"
    AUTHENTICATED = "authenticated"
    VOTE_AUTHORIZED = "vote_authorized"
    CAMERA_UNAVAILABLE = "camera_unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class FlowRequest:
    identity_id: int
    purpose: FlowPurpose
    election_id: Optional[int] = None


@dataclass
class FlowOutcome:
    status: FlowStatus
    message: str
    attempts: int
    vote_token: Optional[str] = None
    session_token: Optional[str] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (FlowStatus.ENROLLED, FlowStatus.AUTHENTICATED, FlowStatus.VOTE_AUTHORIZED)


@dataclass(frozen=True)
class VerifyResponse:
    matched: bool
    reason: Optional[str] = None
    vote_token: Optional[str] = None
    session_token: Optional[str] = None


class VerificationBackend(Protocol):
    async def enroll(self, identity_id: int, embedding: list[float]) -> str:
        ...

    async def verify(
        self,
        identity_id: int,
        embedding: list[float],
        purpose: str,
        election_id: Optional[int] = None,
    ) -> VerifyResponse:
        ...

    async def issue_vote_token(self, identity_id: int, election_id: int) -> str:
        ...


class SessionOrchestrator:
    """Runs capture, liveness, extraction and match for one identity, then hands off a credential.

    Frames are read and detected one at a time, so two detections never race on
    the state machine. The camera is opened per attempt inside a scoped context
    and released as soon as liveness passes, on any failure, and when the
    running task is cancelled. Recoverable failures reset the attempt; only an
    unavailable camera ends the flow immediately.
    """

    def __init__(
        self,
        camera_factory: Callable[[], FrameSource],
        detector: LandmarkDetector,
        extractor: DescriptorExtractor,
        backend: VerificationBackend,
        ear_threshold: float = DEFAULT_EAR_THRESHOLD,
        mar_threshold: float = DEFAULT_MAR_THRESHOLD,
        head_turn_low: float = DEFAULT_HEAD_TURN_LOW,
        head_turn_high: float = DEFAULT_HEAD_TURN_HIGH,
        liveness_timeout: float = 60.0,
        extraction_timeout: float = 10.0,
        max_attempts: int = 3,
        reset_delay: float = 2.0,
        on_status: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.camera_factory = camera_factory
        self.detector = detector
        self.extractor = extractor
        self.backend = backend
        self.liveness_timeout = liveness_timeout
        self.extraction_timeout = extraction_timeout
        self.max_attempts = max_attempts
        self.reset_delay = reset_delay
        self.on_status = on_status
        self._clock = clock
        self.machine = LivenessStateMachine(
            ear_threshold=ear_threshold,
            mar_threshold=mar_threshold,
            head_turn_low=head_turn_low,
            head_turn_high=head_turn_high,
        )

    def _status(self, message: str) -> None:
        logger.info("Session status: %s", message)
        if self.on_status is not None:
            self.on_status(message)

    async def run(self, request: FlowRequest) -> FlowOutcome:
        if request.purpose is FlowPurpose.VOTING and request.election_id is None:
            raise ValueError("Voting verification requires an election id.")

        message = MSG_TRY_AGAIN
        reason: Optional[str] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._attempt(request, attempt)
            except CameraUnavailable as exc:
                logger.warning("Camera unavailable for identity %s: %s", request.identity_id, exc)
                self._status(MSG_CAMERA)
                return FlowOutcome(FlowStatus.CAMERA_UNAVAILABLE, MSG_CAMERA, attempts=attempt)
            except FaceNotRecognized as exc:
                message, reason = str(exc), exc.reason
            except LivenessTimeout:
                message, reason = MSG_TRY_AGAIN, None
            except NoFaceAtCapture:
                message, reason = MSG_TRY_AGAIN, MatchReason.NO_FACE_DETECTED.value
            except asyncio.TimeoutError:
                logger.warning("Extraction and match exceeded %.1fs", self.extraction_timeout)
                message, reason = MSG_TRY_AGAIN, MatchReason.EXTRACTION_ERROR.value
            except Exception:
                logger.exception("Verification attempt %d failed unexpectedly", attempt)
                message, reason = MSG_TRY_AGAIN, MatchReason.EXTRACTION_ERROR.value

            logger.info("Attempt %d/%d reset (%s)", attempt, self.max_attempts, reason or "timeout")
            self._status(message)
            self.machine.reset()
            if attempt < self.max_attempts and self.reset_delay > 0:
                await asyncio.sleep(self.reset_delay)

        return FlowOutcome(FlowStatus.FAILED, message, attempts=self.max_attempts, reason=reason)

    @asynccontextmanager
    async def _capture(self) -> AsyncIterator[FrameSource]:
        stream = self.camera_factory()
        try:
            await asyncio.to_thread(stream.open)
        except CameraUnavailable:
            stream.close()
            raise
        except Exception as exc:
            stream.close()
            raise CameraUnavailable(f"Camera could not be opened: {exc}") from exc
        try:
            yield stream
        finally:
            stream.close()

    async def _attempt(self, request: FlowRequest, attempt: int) -> FlowOutcome:
        self.machine.reset()
        async with self._capture() as stream:
            frame = await self._run_liveness(stream)
        return await asyncio.wait_for(self._extract_and_submit(request, frame, attempt), self.extraction_timeout)

    async def _run_liveness(self, stream: FrameSource) -> np.ndarray:
        deadline = self._clock() + self.liveness_timeout
        stage = self.machine.stage
        self._status(self.machine.prompt)

        while True:
            if self._clock() >= deadline:
                raise LivenessTimeout(f"Liveness not completed within {self.liveness_timeout:.0f}s.")

            frame = await asyncio.to_thread(stream.read)
            try:
                landmarks = await asyncio.to_thread(self.detector.detect, frame)
            except Exception:
                logger.debug("Landmark detection failed for frame", exc_info=True)
                landmarks = None

            try:
                current = self.machine.observe(landmarks)
            except (TypeError, ValueError):
                # Malformed contours count as a frame without a face.
                logger.debug("Landmarks rejected for frame", exc_info=True)
                current = self.machine.stage

            if current is not stage:
                stage = current
                self._status(self.machine.prompt)
            if current is LivenessStage.PASSED:
                return frame

    async def _extract_and_submit(self, request: FlowRequest, frame: np.ndarray, attempt: int) -> FlowOutcome:
        descriptor = await asyncio.to_thread(self.extractor.extract_descriptor, frame)
        if descriptor is None or not np.any(descriptor):
            raise NoFaceAtCapture("No face found in the captured frame.")
        embedding = [float(v) for v in np.asarray(descriptor).ravel()]

        if request.purpose is FlowPurpose.ENROLL:
            result = await self.backend.enroll(request.identity_id, embedding)
            logger.info("Enrollment for identity %s %s", request.identity_id, result)
            self._status("Face registered successfully.")
            return FlowOutcome(FlowStatus.ENROLLED, "Face registered successfully.", attempts=attempt)

        response = await self.backend.verify(
            request.identity_id,
            embedding,
            purpose=request.purpose.value,
            election_id=request.election_id,
        )
        if not response.matched:
            if response.reason == MatchReason.NO_EMBEDDING_ON_FILE.value:
                raise FaceNotRecognized(MSG_NO_FACE_REGISTERED, reason=response.reason)
            raise FaceNotRecognized(MSG_NOT_RECOGNIZED, reason=response.reason)

        if request.purpose is FlowPurpose.LOGIN:
            self._status("Face verified. User logged in.")
            return FlowOutcome(
                FlowStatus.AUTHENTICATED,
                "Face verified. User logged in.",
                attempts=attempt,
                session_token=response.session_token,
            )

        vote_token = response.vote_token
        if not vote_token:
            vote_token = await self.backend.issue_vote_token(request.identity_id, request.election_id)
        self._status("Face verified for voting.")
        return FlowOutcome(
            FlowStatus.VOTE_AUTHORIZED,
            "Face verified for voting.",
            attempts=attempt,
            vote_token=vote_token,
        )

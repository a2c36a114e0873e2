from __future__ import annotations


class VoteGateError(Exception):
    """Base exception for the biometric voting gate."""


class CameraUnavailable(VoteGateError):
    """Raised when the capture device is missing or access is denied."""


class FaceEngineError(VoteGateError):
    """Raised when face detection or descriptor extraction fails."""


class NoFaceAtCapture(VoteGateError):
    """Raised when no usable face is present in the frame chosen for extraction."""


class LivenessTimeout(VoteGateError):
    """Raised when the liveness challenge is not completed within its budget."""


class InvalidEmbeddingFormat(VoteGateError, ValueError):
    """Raised when an embedding has the wrong shape or non-numeric components."""


class StorageError(VoteGateError):
    """Raised when the embedding or ballot store cannot complete an operation."""


class AlreadyVoted(VoteGateError):
    """Raised when a ballot already exists for the identity and election."""


class TokenError(VoteGateError):
    """Base class for credential verification failures."""


class TokenExpired(TokenError):
    pass


class TokenMalformed(TokenError):
    pass


class TokenMissingClaims(TokenError):
    pass


class FaceNotRecognized(VoteGateError):
    """Raised when a verification attempt ends without a match."""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason

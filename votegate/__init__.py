"""Biometric liveness and face-match gate for student election voting."""

__version__ = "1.0.0"

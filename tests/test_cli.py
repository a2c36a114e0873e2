import argparse

import pytest

from votegate import cli
from votegate.exceptions import CameraUnavailable
from votegate.services.orchestrator import SessionOrchestrator


class ClosableModel:
    def __init__(self):
        self.closed = False

    def detect(self, frame):
        return None

    def extract_descriptor(self, frame):
        return None

    def close(self):
        self.closed = True


class UnpluggedCamera:
    def open(self):
        raise CameraUnavailable("No device")

    def read(self):
        raise CameraUnavailable("No device")

    def close(self):
        pass


def test_parse_choice():
    assert cli._parse_choice("3=17") == ("3", 17)
    with pytest.raises(argparse.ArgumentTypeError):
        cli._parse_choice("president")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._parse_choice("3=alice")


def test_login_closes_models_after_flow(monkeypatch):
    detector, extractor = ClosableModel(), ClosableModel()

    def fake_build(settings, backend, camera_index=None):
        return SessionOrchestrator(
            camera_factory=UnpluggedCamera,
            detector=detector,
            extractor=extractor,
            backend=backend,
            reset_delay=0.0,
        )

    monkeypatch.setattr(cli, "build_orchestrator", fake_build)

    assert cli.main(["login", "--identity", "42"]) == 1
    assert detector.closed and extractor.closed


def test_vote_without_choices_still_closes_models(monkeypatch):
    detector, extractor = ClosableModel(), ClosableModel()
    monkeypatch.setattr(
        cli,
        "build_orchestrator",
        lambda settings, backend, camera_index=None: SessionOrchestrator(
            camera_factory=UnpluggedCamera,
            detector=detector,
            extractor=extractor,
            backend=backend,
        ),
    )

    assert cli.main(["vote", "--identity", "42", "--election", "3"]) == 2
    assert detector.closed and extractor.closed

import threading
import time

import numpy as np
import pytest

from votegate.exceptions import CameraUnavailable
from votegate.vision import camera as camera_module
from votegate.vision.camera import CameraStream


class BlockingCapture:
    def __init__(self):
        self.reading = threading.Event()
        self.proceed = threading.Event()
        self.released = False

    def set(self, prop, value):
        return True

    def read(self):
        self.reading.set()
        self.proceed.wait(timeout=2.0)
        return True, np.zeros((4, 4, 3), dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture
def capture(monkeypatch):
    cap = BlockingCapture()
    monkeypatch.setattr(camera_module, "open_camera_capture", lambda index: (cap, "Fake"))
    return cap


def test_close_waits_for_in_flight_read(capture):
    stream = CameraStream(0)
    stream.open()
    frames = []
    reader = threading.Thread(target=lambda: frames.append(stream.read()))
    reader.start()
    assert capture.reading.wait(timeout=2.0)

    closer = threading.Thread(target=stream.close)
    closer.start()
    time.sleep(0.05)
    assert capture.released is False

    capture.proceed.set()
    reader.join(timeout=2.0)
    closer.join(timeout=2.0)

    assert frames and frames[0].shape == (4, 4, 3)
    assert capture.released is True
    assert stream.is_open is False


def test_read_after_close_raises(capture):
    capture.proceed.set()
    with CameraStream(0) as stream:
        assert stream.read().shape == (4, 4, 3)
    with pytest.raises(CameraUnavailable):
        stream.read()
    stream.close()

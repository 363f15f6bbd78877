import threading
from types import SimpleNamespace

import numpy as np
import pytest

from facerecog_live.common_types import Box, Detection
from facerecog_live.overlay import Overlay

DIM = 128


def unit(index, dim=DIM):
    v = np.zeros(dim, dtype=np.float32)
    v[index] = 1.0
    return v


def face(x, y, w, h, descriptor=None, score=0.9):
    return Detection(box=Box(x, y, w, h), score=score, descriptor=descriptor)


class FakeCamera:
    def __init__(self, frame=None):
        self.frame = np.zeros((480, 640, 3), dtype=np.uint8) if frame is None else frame
        self.started = False
        self.released = False

    def start(self):
        self.started = True
        return self

    def read(self):
        return None if self.frame is None else self.frame.copy()

    def release(self):
        self.released = True


class FakeLivePipeline:
    """detect_all_faces returns the next scripted list of detections (last one repeats)."""

    def __init__(self, *frames):
        self.frames = list(frames) or [[]]
        self.calls = 0
        self.gate = None

    def detect_all_faces(self, frame):
        detections = self.frames[min(self.calls, len(self.frames) - 1)]
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(2.0)
        return [Detection(d.box, d.score, d.landmarks, d.descriptor) for d in detections]


class FakeReferencePipeline:
    """detect_single_face keyed on the 'image' the loader returned (here, its path)."""

    def __init__(self, faces):
        self.faces = faces
        self.seen = []

    def detect_single_face(self, image):
        self.seen.append(image)
        return self.faces.get(image)


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def context(camera):
    return SimpleNamespace(camera=camera, overlay=Overlay(600, 450))


@pytest.fixture
def release_gate():
    gate = threading.Event()
    yield gate
    gate.set()

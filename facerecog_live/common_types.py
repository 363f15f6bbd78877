"""
Common value types shared by the pipeline, gallery, matcher and loop.
"""
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

UNKNOWN_LABEL = "unknown"


@dataclass(frozen=True)
class Box:
    """Axis-aligned box in pixel coords (origin + size)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self):
        return self.x + self.width

    @property
    def bottom(self):
        return self.y + self.height

    def scaled(self, sx, sy):
        return Box(self.x * sx, self.y * sy, self.width * sx, self.height * sy)

    def as_int_corners(self):
        """(x1, y1, x2, y2) as ints, ready for cv2 drawing."""
        return int(round(self.x)), int(round(self.y)), int(round(self.right)), int(round(self.bottom))


@dataclass(eq=False)
class Detection:
    box: Box
    score: float
    landmarks: Optional[np.ndarray] = None  # (68, 2) float32, same coords as box
    descriptor: Optional[np.ndarray] = None

    def scaled(self, sx, sy):
        landmarks = None
        if self.landmarks is not None:
            landmarks = self.landmarks * np.array([sx, sy], dtype=np.float32)
        return Detection(self.box.scaled(sx, sy), self.score, landmarks, self.descriptor)


@dataclass(frozen=True, eq=False)
class LabeledFaceDescriptors:
    """One known identity: a label and its reference descriptors."""
    label: str
    descriptors: Tuple[np.ndarray, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "descriptors", tuple(np.asarray(d, dtype=np.float32) for d in self.descriptors))


@dataclass(frozen=True)
class FaceMatch:
    label: str
    distance: float

    @property
    def is_unknown(self):
        return self.label == UNKNOWN_LABEL

    def __str__(self):
        # No distance to show when the face had no descriptor.
        if math.isinf(self.distance):
            return self.label
        return f"{self.label} ({round(self.distance, 2):g})"

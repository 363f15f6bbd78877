"""
Face pipeline: detection -> 68 landmarks -> aligned crop -> descriptor.

The three stages wrap the loaded networks behind small classes so the rest of
the app (gallery, loop) only sees `detect_single_face` / `detect_all_faces`.
"""
import logging
import math

import cv2
import numpy as np
import torch
import torchvision.transforms as transforms

from . import config
from .common_types import Box, Detection

logger = logging.getLogger(__name__)

# Preprocessing transform (ArcFace standard)
# Matches MobileFaceNet training: RGB 112x112, normalized to [-1,1] (mean=0.5, std=0.5 on a [0,1] tensor).
transform = transforms.Compose([
    transforms.ToPILImage(),
    transforms.Resize((112, 112)),
    transforms.ToTensor(),
    transforms.Normalize(mean=[0.5, 0.5, 0.5], std=[0.5, 0.5, 0.5])
])

# 68-point layout: 36-41 left eye, 42-47 right eye.
LEFT_EYE = slice(36, 42)
RIGHT_EYE = slice(42, 48)
MIN_CROP_SIZE = 16
MIN_ROLL_DEGREES = 1.0  # below this the face is treated as level


class FaceDetector:
    """ResNet-10 SSD through cv2.dnn."""

    def __init__(self, net, confidence=None):
        self.net = net
        self.confidence = config.DETECTION_CONFIDENCE if confidence is None else confidence

    def detect(self, frame):
        """
        Returns [(Box, score), ...] in frame pixel coords.
        Blob: 300x300, mean (104, 177, 123) subtracted, BGR kept.
        Boxes come back normalised to [0,1]; scaled to the frame and clamped to its bounds.
        """
        h, w = frame.shape[:2]
        blob = cv2.dnn.blobFromImage(
            cv2.resize(frame, (300, 300)),
            scalefactor=1.0,
            size=(300, 300),
            mean=(104.0, 177.0, 123.0),
            swapRB=False,
            crop=False
        )
        self.net.setInput(blob)
        detections = self.net.forward()

        faces = []
        for i in range(detections.shape[2]):
            confidence = float(detections[0, 0, i, 2])
            if confidence <= self.confidence:
                continue
            x1, y1, x2, y2 = detections[0, 0, i, 3:7] * np.array([w, h, w, h])
            x1, y1 = max(0.0, x1), max(0.0, y1)
            x2, y2 = min(float(w), x2), min(float(h), y2)
            if x2 <= x1 or y2 <= y1:
                continue
            faces.append((Box(float(x1), float(y1), float(x2 - x1), float(y2 - y1)), confidence))
        return faces


class LandmarkPredictor:
    """68-point LBF facemark."""

    def __init__(self, facemark):
        self.facemark = facemark

    def predict(self, frame, boxes):
        """Returns one (68, 2) array per box, or None per box if fitting failed."""
        if not boxes:
            return []
        rects = np.array([[b.x, b.y, b.width, b.height] for b in boxes], dtype=np.int32)
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        ok, landmarks = self.facemark.fit(gray, rects)
        if not ok:
            return [None] * len(boxes)
        return [np.asarray(points, dtype=np.float32).reshape(-1, 2) for points in landmarks]


class DescriptorEncoder:
    """MobileFaceNet forward pass, batched over all crops in a frame."""

    def __init__(self, model):
        self.model = model

    def compute(self, crops):
        """
        crops: list of BGR face crops (any size).
        Returns: list of L2-normalised float32 descriptors (None for a zero-norm output).
        """
        if not crops:
            return []
        batch = torch.stack([transform(cv2.cvtColor(crop, cv2.COLOR_BGR2RGB)) for crop in crops])
        with torch.no_grad():
            embeddings = self.model(batch)
        embeddings = embeddings.cpu().numpy().reshape(len(crops), -1).astype(np.float32)

        descriptors = []
        for embedding in embeddings:
            norm = np.linalg.norm(embedding)
            if norm == 0:
                logger.warning("Zero-norm embedding, dropping descriptor")
                descriptors.append(None)
            else:
                descriptors.append(embedding / norm)
        return descriptors


def align_face(frame, box, landmarks):
    """
    Crops `box` out of `frame`, rotated about the eye midpoint so the eyes are level.
    Without landmarks the plain crop is returned.
    """
    if landmarks is not None and len(landmarks) >= 48:
        left = landmarks[LEFT_EYE].mean(axis=0)
        right = landmarks[RIGHT_EYE].mean(axis=0)
        angle = math.degrees(math.atan2(right[1] - left[1], right[0] - left[0]))
        if abs(angle) >= MIN_ROLL_DEGREES:
            center = (float((left[0] + right[0]) / 2), float((left[1] + right[1]) / 2))
            rotation = cv2.getRotationMatrix2D(center, angle, 1.0)
            frame = cv2.warpAffine(frame, rotation, (frame.shape[1], frame.shape[0]), flags=cv2.INTER_LINEAR)
    x1, y1, x2, y2 = box.as_int_corners()
    return frame[max(0, y1):y2, max(0, x1):x2]


class FacePipeline:
    """detect -> landmarks -> descriptors, for one image or one video frame."""

    def __init__(self, detector, landmarker, encoder):
        self.detector = detector
        self.landmarker = landmarker
        self.encoder = encoder

    @classmethod
    def from_models(cls, models, confidence=None):
        return cls(
            FaceDetector(models.detector, confidence),
            LandmarkPredictor(models.landmarker),
            DescriptorEncoder(models.encoder),
        )

    def detect_all_faces(self, frame):
        """Every face in the frame, each with landmarks and descriptor where extractable."""
        return self._describe(frame, self.detector.detect(frame))

    def _describe(self, frame, found):
        if not found:
            return []
        boxes = [box for box, _ in found]
        all_landmarks = self.landmarker.predict(frame, boxes)

        detections = []
        crops = []
        for (box, score), landmarks in zip(found, all_landmarks):
            detection = Detection(box=box, score=score, landmarks=landmarks)
            crop = align_face(frame, box, landmarks)
            if crop.shape[0] < MIN_CROP_SIZE or crop.shape[1] < MIN_CROP_SIZE:
                logger.debug("Face crop too small for a descriptor: %s", box)
            else:
                crops.append((detection, crop))
            detections.append(detection)

        descriptors = self.encoder.compute([crop for _, crop in crops])
        for (detection, _), descriptor in zip(crops, descriptors):
            detection.descriptor = descriptor
        return detections

    def detect_single_face(self, image):
        """The highest-scoring face in the image, or None if there is none."""
        found = self.detector.detect(image)
        if not found:
            return None
        best = max(found, key=lambda item: item[1])
        return self._describe(image, [best])[0]

"""
Reference gallery: labeled images -> one LabeledFaceDescriptors per identity.
"""
import logging
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from . import config
from .common_types import LabeledFaceDescriptors
from .errors import DetectionSetupError

logger = logging.getLogger(__name__)


def reference_image_paths(label, labels_dir=None, count=None):
    """<labels_dir>/<label>/1.png .. <count>.png"""
    labels_dir = Path(labels_dir or config.LABELS_DIR)
    count = config.REFERENCE_IMAGES_PER_LABEL if count is None else count
    return [labels_dir / label / f"{i}{config.REFERENCE_IMAGE_EXT}" for i in range(1, count + 1)]


def load_reference_image(path):
    """
    Reads an image file as a 3-channel BGR ndarray.
    OpenCV decodes the common formats; PIL covers the rest (and palette/alpha PNGs
    OpenCV refuses). Raises DetectionSetupError if neither can read it.
    """
    path = Path(path)
    if not path.is_file():
        raise DetectionSetupError(f"Reference image not found: {path}")

    bgr = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if bgr is None:
        try:
            with Image.open(path) as img:
                rgb = np.array(img.convert("RGB"))
            bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        except Exception as e:
            raise DetectionSetupError(f"Unsupported or corrupt reference image {path}: {e}") from e

    if bgr.size == 0:
        raise DetectionSetupError(f"Empty reference image: {path}")
    return bgr


def build_labeled_descriptors(pipeline, label, image_paths, strict=False, image_loader=load_reference_image):
    """
    Descriptors for one identity, one per image where a face was found.
    A reference image without a face is skipped with a warning, or aborts the
    build when `strict` is set.
    """
    descriptors = []
    for path in image_paths:
        image = image_loader(path)
        detection = pipeline.detect_single_face(image)
        if detection is None or detection.descriptor is None:
            if strict:
                raise DetectionSetupError(f"No face detected in reference image {path}")
            logger.warning("No face detected in reference image %s, skipping it", path)
            continue
        descriptors.append(detection.descriptor)
    return LabeledFaceDescriptors(label, tuple(descriptors))


def build_reference_gallery(pipeline, labels=None, labels_dir=None, images_per_label=None,
                            strict=False, image_loader=load_reference_image):
    """
    Builds the gallery for every label.
    Identities left without any descriptor are dropped (they could never match).
    Raises DetectionSetupError if nothing usable remains.
    """
    labels = config.LABELS if labels is None else labels
    gallery = []
    for label in labels:
        paths = reference_image_paths(label, labels_dir, images_per_label)
        identity = build_labeled_descriptors(pipeline, label, paths, strict=strict, image_loader=image_loader)
        if not identity.descriptors:
            logger.warning("Identity '%s' has no usable reference images, leaving it out", label)
            continue
        logger.info("Identity '%s': %d reference descriptor(s)", label, len(identity.descriptors))
        gallery.append(identity)

    if not gallery:
        raise DetectionSetupError("No identity has a usable reference image")
    return gallery

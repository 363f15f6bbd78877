"""
Central configuration for the live face recognition app.
Every constant can be overridden from the environment (FACERECOG_<NAME>).
"""
import os
from pathlib import Path


def _env(name, default):
    return os.environ.get(f"FACERECOG_{name}", default)


# Static layout (relative paths resolve against the working directory)
# - MODELS_DIR: the three weight bundles (detector, landmarks, recognition).
# - LABELS_DIR: reference images as <label>/<index>.png, index 1..REFERENCE_IMAGES_PER_LABEL.
MODELS_DIR = Path(_env("MODELS_DIR", "models"))
LABELS_DIR = Path(_env("LABELS_DIR", "labels"))
LABELS = [label.strip() for label in _env("LABELS", "Virat,Messi,Prakash").split(",") if label.strip()]
REFERENCE_IMAGES_PER_LABEL = int(_env("REFERENCE_IMAGES_PER_LABEL", 2))
REFERENCE_IMAGE_EXT = ".png"

# Fetch missing weights on first run (cached under MODELS_DIR afterwards).
DOWNLOAD_MISSING_MODELS = _env("DOWNLOAD_MISSING_MODELS", "1") not in ("0", "false", "False")

# Camera
CAMERA_INDEX = int(_env("CAMERA_INDEX", 0))
FRAME_WIDTH = 640
FRAME_HEIGHT = 480
CAMERA_FPS = 30
CAMERA_WARMUP_SECONDS = float(_env("CAMERA_WARMUP_SECONDS", 5.0))
MIRROR_CAMERA = _env("MIRROR_CAMERA", "0") in ("1", "true", "True")

# Display surface the overlay is sized to (video element size in the web version).
DISPLAY_WIDTH = 600
DISPLAY_HEIGHT = 450
WINDOW_NAME = "Real-Time Face Recognition"

# Detection / recognition
# - DETECTION_CONFIDENCE: SSD boxes below this score are dropped.
# - DISTANCE_THRESHOLD: Euclidean distance on unit-length MobileFaceNet descriptors.
#   1.0 is roughly cosine similarity 0.5; lower = stricter.
DETECTION_CONFIDENCE = float(_env("DETECTION_CONFIDENCE", 0.5))
DISTANCE_THRESHOLD = float(_env("DISTANCE_THRESHOLD", 1.0))
EMBED_SIZE = 128

# Recognition loop period (ms).
TICK_INTERVAL_MS = int(_env("TICK_INTERVAL_MS", 100))

LOG_LEVEL = _env("LOG_LEVEL", "INFO")

"""
Model loading: the three pre-trained networks the pipeline delegates to.

- ssd_face_detector: ResNet-10 SSD (Caffe) run through cv2.dnn.
    Pre-trained on WIDER FACE; outputs [1,1,N,7] (batch, class, score, x1, y1, x2, y2).
- face_landmark_68: LBF facemark from opencv-contrib (cv2.face), 68 points per face.
- face_recognition: MobileFaceNet TorchScript, 128-dim descriptor per aligned crop.

Weights live in MODELS_DIR. If a file is missing and downloading is enabled it is
fetched once from its public release and cached there.
"""
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import cv2
import requests
import torch

from . import config
from .errors import ModelLoadError

logger = logging.getLogger(__name__)

DETECTOR_CONFIG = "deploy.prototxt"
DETECTOR_WEIGHTS = "res10_300x300_ssd_iter_140000.caffemodel"
LANDMARK_WEIGHTS = "lbfmodel.yaml"
RECOGNITION_WEIGHTS = "mobilefacenet_scripted.pt"

MODEL_URLS = {
    DETECTOR_CONFIG: "https://raw.githubusercontent.com/opencv/opencv/master/samples/dnn/face_detector/deploy.prototxt",
    DETECTOR_WEIGHTS: "https://raw.githubusercontent.com/opencv/opencv_3rdparty/dnn_samples_face_detector_20170830/res10_300x300_ssd_iter_140000.caffemodel",
    LANDMARK_WEIGHTS: "https://raw.githubusercontent.com/kurnianggoro/GSOC2017/master/data/lbfmodel.yaml",
    RECOGNITION_WEIGHTS: "https://github.com/foamliu/MobileFaceNet/releases/download/v1.0/mobilefacenet_scripted.pt",
}

DOWNLOAD_CHUNK_SIZE = 8192
DOWNLOAD_TIMEOUT = 60


@dataclass
class FaceModels:
    """The loaded networks, ready for FacePipeline."""
    detector: object    # cv2.dnn.Net
    landmarker: object  # cv2.face.FacemarkLBF
    encoder: object     # torch.jit.ScriptModule


def download_model_file(filename, models_dir):
    """
    Downloads one weight file into models_dir.
    Streams in 8KB chunks to a .part file and renames on success, so an
    interrupted download never leaves a truncated file behind.
    """
    url = MODEL_URLS[filename]
    target = Path(models_dir) / filename
    partial = target.with_name(target.name + ".part")
    logger.info("Downloading %s from %s", filename, url)
    with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
        response.raise_for_status()
        try:
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
    os.replace(partial, target)
    logger.info("Cached %s", target)
    return target


def ensure_model_file(filename, models_dir=None, download=None):
    """Returns the local path of a weight file, downloading it if allowed."""
    models_dir = Path(models_dir or config.MODELS_DIR)
    download = config.DOWNLOAD_MISSING_MODELS if download is None else download
    path = models_dir / filename
    if path.exists():
        return path
    if not download:
        raise FileNotFoundError(f"Model file not found: {path}")
    models_dir.mkdir(parents=True, exist_ok=True)
    return download_model_file(filename, models_dir)


def load_detector(models_dir=None, download=None):
    config_path = ensure_model_file(DETECTOR_CONFIG, models_dir, download)
    weights_path = ensure_model_file(DETECTOR_WEIGHTS, models_dir, download)
    net = cv2.dnn.readNetFromCaffe(str(config_path), str(weights_path))
    logger.info("SSD face detector loaded (confidence > %s)", config.DETECTION_CONFIDENCE)
    return net


def load_landmarker(models_dir=None, download=None):
    weights_path = ensure_model_file(LANDMARK_WEIGHTS, models_dir, download)
    facemark = cv2.face.createFacemarkLBF()
    facemark.loadModel(str(weights_path))
    logger.info("68-point landmark model loaded")
    return facemark


def load_encoder(models_dir=None, download=None):
    weights_path = ensure_model_file(RECOGNITION_WEIGHTS, models_dir, download)
    model = torch.jit.load(str(weights_path), map_location="cpu")
    model.eval()  # Inference mode: no dropout/batchnorm updates
    logger.info("MobileFaceNet loaded (embedding size %d)", config.EMBED_SIZE)
    return model


LOADERS = {
    "ssd_face_detector": load_detector,
    "face_landmark_68": load_landmarker,
    "face_recognition": load_encoder,
}


def load_models(models_dir=None, download=None, loaders=None):
    """
    Loads all three networks concurrently.
    Any failure fails the whole load with ModelLoadError; the caller never
    gets a partially loaded set.
    """
    loaders = loaders or LOADERS
    logger.info("Loading face recognition models from %s", models_dir or config.MODELS_DIR)
    with ThreadPoolExecutor(max_workers=len(loaders)) as pool:
        futures = {name: pool.submit(loader, models_dir, download) for name, loader in loaders.items()}
        loaded = {}
        for name, future in futures.items():
            try:
                loaded[name] = future.result()
            except Exception as e:
                raise ModelLoadError(f"Failed to load {name}: {e}") from e
    return FaceModels(
        detector=loaded["ssd_face_detector"],
        landmarker=loaded["face_landmark_68"],
        encoder=loaded["face_recognition"],
    )

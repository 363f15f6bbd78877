"""
Top-level controller: gated startup, display loop, teardown.

Startup is strictly sequential: models -> camera -> gallery/matcher -> loop.
The first failing stage records its user message and nothing after it runs.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from . import config
from .camera import CameraSource
from .errors import CameraAccessError, DetectionSetupError, ModelLoadError
from .gallery import build_reference_gallery
from .loop import RecognitionLoop
from .matcher import FaceMatcher
from .models import load_models
from .overlay import Overlay, render_error
from .pipeline import FacePipeline

logger = logging.getLogger(__name__)

DISPLAY_FPS = 30
QUIT_KEYS = (27, ord('q'))  # ESC, q


@dataclass
class SessionContext:
    """Everything the session owns; handed to components instead of globals."""
    display_size: Tuple[int, int]
    overlay: Overlay
    camera: Optional[CameraSource] = None
    loop: Optional[RecognitionLoop] = None
    matcher: Optional[FaceMatcher] = None
    error_message: str = ""


class RecognitionSession:

    def __init__(self, labels=None, models_dir=None, labels_dir=None, display_size=None,
                 strict_gallery=False, interval_ms=None, model_loader=load_models,
                 camera_factory=CameraSource, pipeline_factory=FacePipeline.from_models,
                 gallery_builder=build_reference_gallery):
        self.labels = config.LABELS if labels is None else labels
        self.models_dir = models_dir or config.MODELS_DIR
        self.labels_dir = labels_dir or config.LABELS_DIR
        self.strict_gallery = strict_gallery
        self.interval_ms = interval_ms
        self.model_loader = model_loader
        self.camera_factory = camera_factory
        self.pipeline_factory = pipeline_factory
        self.gallery_builder = gallery_builder

        display_size = display_size or (config.DISPLAY_WIDTH, config.DISPLAY_HEIGHT)
        self.context = SessionContext(display_size=display_size, overlay=Overlay(*display_size))
        self._torn_down = False

    @property
    def error_message(self):
        return self.context.error_message

    def _fail(self, user_message, error):
        self.context.error_message = user_message
        logger.error("%s", user_message, exc_info=error)
        return False

    def setup(self):
        """Runs the startup stages in order. Returns True once the loop is running."""
        try:
            models = self.model_loader(self.models_dir)
        except ModelLoadError as e:
            return self._fail(ModelLoadError.user_message, e)

        try:
            self.context.camera = self.camera_factory().start()
        except Exception as e:
            # Anything raised while opening the device is reported as a webcam problem.
            return self._fail(CameraAccessError.user_message, e)

        try:
            pipeline = self.pipeline_factory(models)
            gallery = self.gallery_builder(pipeline, labels=self.labels, labels_dir=self.labels_dir,
                                           strict=self.strict_gallery)
            self.context.matcher = FaceMatcher(gallery)
            self.context.overlay.match_dimensions(*self.context.display_size)
            self.context.loop = RecognitionLoop(self.context, pipeline, self.context.matcher, self.interval_ms)
            self.context.loop.start()
        except Exception as e:
            # Any failure while building the gallery, matcher or loop is a setup failure.
            return self._fail(DetectionSetupError.user_message, e)
        return True

    def next_surface(self):
        """What the window shows right now: the error, or live video with the overlay."""
        width, height = self.context.display_size
        if self.context.error_message:
            return render_error(self.context.error_message, width, height)
        frame = self.context.camera.read() if self.context.camera is not None else None
        if frame is None:
            return np.zeros((height, width, 3), dtype=np.uint8)
        return self.context.overlay.composite(frame)

    def run(self):
        """Shows the window until q/ESC or the window is closed, then tears down."""
        delay = int(1000 / DISPLAY_FPS)
        try:
            cv2.namedWindow(config.WINDOW_NAME, cv2.WINDOW_AUTOSIZE)
            while True:
                cv2.imshow(config.WINDOW_NAME, self.next_surface())
                key = cv2.waitKey(delay) & 0xFF
                if key in QUIT_KEYS:
                    break
                if cv2.getWindowProperty(config.WINDOW_NAME, cv2.WND_PROP_VISIBLE) < 1:
                    break
        except KeyboardInterrupt:
            print("\nInterrupted by user.")
        finally:
            self.teardown()

    def teardown(self):
        if self._torn_down:
            return
        self._torn_down = True
        if self.context.loop is not None:
            self.context.loop.stop()
        if self.context.camera is not None:
            self.context.camera.release()
        cv2.destroyAllWindows()
        logger.info("Session torn down")

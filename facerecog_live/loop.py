"""
Periodic recognition: detect -> match -> redraw the overlay, every TICK_INTERVAL_MS.
"""
import enum
import logging
import math
import threading

from . import config
from .common_types import UNKNOWN_LABEL, FaceMatch
from .overlay import resize_results

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class RecognitionLoop:
    """
    Cancellable periodic task.

    A scheduler thread fires every `interval_ms`. Each fire runs one tick on a
    worker thread, unless the previous tick is still running, in which case the
    fire is skipped and counted in `skipped_ticks`. At most one tick touches the
    overlay at any time.
    """

    def __init__(self, context, pipeline, matcher, interval_ms=None):
        self.context = context
        self.pipeline = pipeline
        self.matcher = matcher
        self.interval = (config.TICK_INTERVAL_MS if interval_ms is None else interval_ms) / 1000.0

        self.state = LoopState.IDLE
        self.tick_count = 0
        self.skipped_ticks = 0
        self.last_results = []

        self._cancelled = threading.Event()
        self._busy = threading.Lock()
        self._scheduler = None
        self._worker = None

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def start(self):
        if self.state is not LoopState.IDLE:
            raise RuntimeError(f"Recognition loop cannot start from state {self.state.value}")
        self.state = LoopState.RUNNING
        self._scheduler = threading.Thread(target=self._schedule, name="recognition-loop", daemon=True)
        self._scheduler.start()
        logger.info("Recognition loop started (every %.0f ms)", self.interval * 1000)
        return self

    def stop(self, timeout=2.0):
        """Cancels future ticks and waits for the scheduler and any running tick."""
        self._cancelled.set()
        # Scheduler first: a fire still in flight may replace the worker.
        self._join(self._scheduler, timeout)
        self._join(self._worker, timeout)
        if self.state is LoopState.RUNNING:
            logger.info("Recognition loop stopped after %d ticks (%d skipped)", self.tick_count, self.skipped_ticks)
        self.state = LoopState.STOPPED

    @staticmethod
    def _join(thread, timeout):
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _schedule(self):
        while not self._cancelled.wait(self.interval):
            self._fire()

    def _fire(self):
        if not self._busy.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.debug("Previous tick still running, skipping this one")
            return
        self._worker = threading.Thread(target=self._run_tick, name="recognition-tick", daemon=True)
        self._worker.start()

    def _run_tick(self):
        try:
            self.tick()
        except Exception:
            logger.exception("Recognition tick failed")
        finally:
            self._busy.release()

    def tick(self):
        """
        One recognition pass over the current frame.
        Returns the match results drawn (empty when cancelled or no frame yet).
        """
        if self._cancelled.is_set():
            return []
        camera = self.context.camera
        overlay = self.context.overlay

        frame = camera.read()
        if frame is None:
            return []
        frame_h, frame_w = frame.shape[:2]

        detections = self.pipeline.detect_all_faces(frame)
        resized = resize_results(detections, (frame_w, frame_h), overlay.size)
        results = [self._match(d) for d in resized]

        if self._cancelled.is_set():
            return []
        with overlay.drawing():
            overlay.clear()
            for detection, result in zip(resized, results):
                overlay.draw_box(detection.box, label=str(result))

        self.tick_count += 1
        self.last_results = results
        return results

    def _match(self, detection):
        if detection.descriptor is None:
            return FaceMatch(UNKNOWN_LABEL, math.inf)
        return self.matcher.find_best_match(detection.descriptor)

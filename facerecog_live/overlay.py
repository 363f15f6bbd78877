"""
Overlay surface drawn over the live video: labeled boxes, cleared every tick.
"""
import threading
from contextlib import contextmanager

import cv2
import numpy as np

BOX_COLOR = (255, 144, 30)  # BGR, blue
LABEL_TEXT_COLOR = (255, 255, 255)
LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
LABEL_SCALE = 0.5
ERROR_COLOR = (0, 0, 255)


def resize_results(detections, frame_size, display_size):
    """Rescales detections from frame (w, h) coords to display (w, h) coords."""
    frame_w, frame_h = frame_size
    display_w, display_h = display_size
    if (frame_w, frame_h) == (display_w, display_h):
        return list(detections)
    sx = display_w / float(frame_w)
    sy = display_h / float(frame_h)
    return [d.scaled(sx, sy) for d in detections]


class Overlay:
    """
    Transparent drawing surface of the display size.

    `canvas` holds the pixels, `mask` marks which ones were drawn, `boxes` keeps
    the (Box, label) pairs of the current drawing. All three are guarded by one
    re-entrant lock; use `drawing()` to clear and redraw as one step.
    """

    def __init__(self, width, height):
        self.lock = threading.RLock()
        self.match_dimensions(width, height)

    def match_dimensions(self, width, height):
        with self.lock:
            self.width = int(width)
            self.height = int(height)
            self.canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)
            self.mask = np.zeros((self.height, self.width), dtype=np.uint8)
            self.boxes = []

    @property
    def size(self):
        return self.width, self.height

    @contextmanager
    def drawing(self):
        with self.lock:
            yield self

    def clear(self):
        with self.lock:
            self.canvas[:] = 0
            self.mask[:] = 0
            self.boxes = []

    def draw_box(self, box, label=None, color=BOX_COLOR, thickness=2):
        with self.lock:
            x1, y1, x2, y2 = box.as_int_corners()
            cv2.rectangle(self.canvas, (x1, y1), (x2, y2), color, thickness)
            cv2.rectangle(self.mask, (x1, y1), (x2, y2), 1, thickness)
            if label:
                self._draw_label(label, x1, y2, color)
            self.boxes.append((box, label))

    def _draw_label(self, text, x, y, background):
        # Label sits under the box's bottom-left corner, like a caption.
        (tw, th), baseline = cv2.getTextSize(text, LABEL_FONT, LABEL_SCALE, 1)
        top, bottom = y, y + th + baseline + 4
        right = x + tw + 4
        cv2.rectangle(self.canvas, (x, top), (right, bottom), background, -1)
        cv2.rectangle(self.mask, (x, top), (right, bottom), 1, -1)
        cv2.putText(self.canvas, text, (x + 2, bottom - baseline - 2),
                    LABEL_FONT, LABEL_SCALE, LABEL_TEXT_COLOR, 1, cv2.LINE_AA)

    def composite(self, frame):
        """Frame resized to the overlay size with the drawing on top."""
        if frame.shape[1] != self.width or frame.shape[0] != self.height:
            frame = cv2.resize(frame, (self.width, self.height), interpolation=cv2.INTER_LINEAR)
        else:
            frame = frame.copy()
        with self.lock:
            drawn = self.mask.astype(bool)
            frame[drawn] = self.canvas[drawn]
        return frame


def render_error(message, width, height):
    """Blank surface with the error message in red (black outline for visibility)."""
    surface = np.zeros((int(height), int(width), 3), dtype=np.uint8)
    y = 40
    for line in _wrap(message, width):
        cv2.putText(surface, line, (12, y + 2), LABEL_FONT, 0.6, (0, 0, 0), 3)
        cv2.putText(surface, line, (10, y), LABEL_FONT, 0.6, ERROR_COLOR, 2)
        y += 30
    return surface


def _wrap(message, width):
    lines, current = [], ""
    for word in message.split():
        candidate = f"{current} {word}".strip()
        (tw, _), _ = cv2.getTextSize(candidate, LABEL_FONT, 0.6, 2)
        if current and tw > width - 20:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines

"""Live webcam face recognition with labeled overlay boxes."""

__version__ = "1.0.0"

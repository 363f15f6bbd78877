"""
Failure kinds surfaced to the user. Each stage of the startup sequence raises
exactly one of these; the session shows its `user_message` and stops.
"""


class FaceRecognitionError(Exception):
    user_message = "Unexpected error."


class ModelLoadError(FaceRecognitionError):
    user_message = "Error loading face recognition models. Please check your models directory."


class CameraAccessError(FaceRecognitionError):
    user_message = "Error accessing webcam. Please check your device permissions."


class DetectionSetupError(FaceRecognitionError):
    user_message = "Error setting up face detection."

# cameratogether/domain/errors.py
from typing import Optional


class CameraTogetherError(Exception):
    """Base class for every error the core raises."""

    default_message = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CameraTogetherError):
    """Required input is missing or malformed. Raised before any network call."""

    default_message = "The input is not valid."


class TransitionError(CameraTogetherError):
    """A group state transition was rejected by its guard."""

    default_message = "This action is not allowed in the current group state."


class BusyError(CameraTogetherError):
    default_message = "Another action is still in progress."


class NetworkError(CameraTogetherError):
    """Transport failure talking to the Group API."""

    default_message = "Could not reach the server."


class HttpError(NetworkError):
    """The Group API answered with an unexpected status code."""

    def __init__(self, status: int, body: Optional[str] = None):
        self.status = status
        self.body = body
        message = f"HTTP error: {status}"
        if body:
            message = f"{message} ({body.strip()[:200]})"
        super().__init__(message)


class DecodingError(CameraTogetherError):
    default_message = "Failed to decode the server response."


class CollageError(CameraTogetherError):
    default_message = "Failed to generate the collage."


class InvalidTemplate(CollageError):
    default_message = "The template is invalid."


class InsufficientImages(CollageError):
    default_message = "Not enough images for this template."

    def __init__(self, required: int, supplied: int):
        self.required = required
        self.supplied = supplied
        super().__init__(f"Template needs {required} images, got {supplied}.")

"""Exception hierarchy shared by the ML layer and the HTTP API.

Every request-scoped error carries the HTTP status and the public ``error`` string
it is reported with. ``CapabilityBootstrapError`` is the only startup error and is
never converted into a response.
"""

from __future__ import annotations


class FaceScopeError(Exception):
    """Base class for all FaceScope errors."""

    status_code: int = 500
    public_message: str = "Internal error"

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.details = details


class CapabilityBootstrapError(FaceScopeError):
    """A model artifact could not be provisioned at startup."""


class ClientInputError(FaceScopeError):
    status_code = 400
    public_message = "Bad request"


class MissingImageError(ClientInputError):
    public_message = "No image provided"


class NoFaceDetectedError(ClientInputError):
    public_message = "No face detected"


class ImageTooLargeError(ClientInputError):
    status_code = 413
    public_message = "Image too large"


class AnalysisError(FaceScopeError):
    """Unexpected failure while decoding or analyzing one image."""

    status_code = 500
    public_message = "Face analysis failed"


class ImageDecodeError(AnalysisError):
    pass


class ServiceBusyError(FaceScopeError):
    status_code = 503
    public_message = "Service busy"

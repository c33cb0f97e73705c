"""
Internal failure taxonomy for Faultline.

These errors describe what went wrong *inside* the capture and report
pipeline. They are logged, never raised into the host application.
"""


class FaultlineError(Exception):
    """Base class for all internal Faultline failures."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.context = context or {}


class ConstructionFailure(FaultlineError):
    """Raised while building a managed exception."""

    pass


class CaptureFailure(FaultlineError):
    """Raised when a stack, screenshot or structure capture fails."""

    pass


class TransportFailure(FaultlineError):
    """Raised when a serialized report cannot be delivered."""

    pass

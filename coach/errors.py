"""
Exception types raised by the session runner and its collaborators.

"No response" and "unparseable response" are never errors: exercise
handlers degrade those to a low score instead of raising.
"""


class CoachError(Exception):
    """Base class for coco-coach errors."""
    pass


class LibraryError(CoachError):
    """Raised when the content library cannot be read or is invalid."""
    pass


class PlannerConfigError(CoachError):
    """Raised when the library has no activity at all for a required slot."""
    pass


class BackendError(CoachError):
    """Raised when the ingest backend rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AudioDeviceError(CoachError):
    """Raised when the playback or capture process fails."""
    pass

"""Exception taxonomy shared by the real-time protocol and the REST surface.

The WebSocket handlers turn these into connection- or room-scoped ``error``
events; the REST routers map them to HTTP status codes:

    AuthError        -> close 1008 / HTTP 401
    NotFoundError    -> error event / HTTP 404
    ValidationError  -> error event / HTTP 400
    GenerationError  -> room-scoped error event (deferred AI step)
    PersistenceError -> room-scoped error event / HTTP 500
"""


class ThreadlineError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str = "Internal error") -> None:
        super().__init__(message)
        self.message = message


class AuthError(ThreadlineError):
    """Credential missing, invalid, expired, or pointing at an unknown user."""


class NotFoundError(ThreadlineError):
    """A referenced entity does not exist or is not visible to the caller."""


class ThreadNotFound(NotFoundError):
    def __init__(self, message: str = "Thread not found") -> None:
        super().__init__(message)


class FileNotFound(NotFoundError):
    def __init__(self, message: str = "File not found") -> None:
        super().__init__(message)


class ValidationError(ThreadlineError):
    """Input rejected before any write happened."""


class EmptyContent(ValidationError):
    def __init__(self, message: str = "Message content is required") -> None:
        super().__init__(message)


class GenerationError(ThreadlineError):
    """The reply generator failed to produce content."""


class PersistenceError(ThreadlineError):
    """The data store rejected or failed a read/write."""

from typing import Optional


class ViewerError(Exception):
    pass


class NotFoundError(ViewerError):
    """Session / org / device / note absent."""


class ObjectNotFound(NotFoundError):
    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class ValidationError(ViewerError, ValueError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class TransportError(ViewerError):
    """Object store or provider call failed. Carries the underlying message."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class TranscriptionError(TransportError):
    pass

"""Error handling utilities."""

from typing import Optional


class OwnItRightError(Exception):
    """Base exception for the OwnItRight client layer."""
    pass


class NetworkError(OwnItRightError):
    """Request never reached the server or its response could not be read."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(OwnItRightError):
    """Local filter/update input is malformed; never sent to the backend."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(OwnItRightError):
    """Operation targeted an id absent from the current collection."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class MutationError(OwnItRightError):
    """Backend rejected a create/update/delete."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

from __future__ import annotations


class ManagementError(Exception):
    """Base class for domain errors; ``status_code`` is the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ManagementError):
    status_code = 400


class PermissionDeniedError(ManagementError):
    status_code = 403


class NotFoundError(ManagementError):
    status_code = 404


class ConflictError(ManagementError):
    """Invalid state transition or duplicate record."""

    status_code = 409


class UpstreamError(ManagementError):
    """A third-party service the request depends on failed."""

    status_code = 502

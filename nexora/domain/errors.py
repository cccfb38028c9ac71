from __future__ import annotations
from typing import Optional, Sequence


class NexoraError(Exception):
    """Base for errors that map onto an HTTP response.

    ``detail`` is safe to show to callers; the underlying cause (if any) is
    chained with ``raise ... from`` and only ever logged.
    """

    status_code: int = 500
    detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(NexoraError):
    status_code = 400
    detail = "Invalid request"

    def __init__(self, detail: Optional[str] = None, *, fields: Sequence[str] = ()) -> None:
        super().__init__(detail)
        self.fields = list(fields)


class Conflict(NexoraError):
    status_code = 409
    detail = "Username or Email already exists"


class NotFound(NexoraError):
    status_code = 404
    detail = "User not found"


class Unauthorized(NexoraError):
    status_code = 401
    detail = "Invalid password"


class InvalidOrExpired(NexoraError):
    # wrong code, unknown email and expired code all land here
    status_code = 400
    detail = "Invalid or expired code"


class ServiceFailure(NexoraError):
    status_code = 500


class PersistenceError(ServiceFailure):
    detail = "Storage failure"


class DuplicateKeyError(PersistenceError):
    detail = "Duplicate key"


class DeliveryError(ServiceFailure):
    detail = "Email delivery failed"

# File: app/core/errors.py
"""Domain errors raised by the workflow core and mapped to HTTP responses in app.main."""
from typing import Optional


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(DomainError):
    """Malformed or missing input. The message is returned to the caller verbatim."""
    status_code = 400


class InvalidTransition(DomainError):
    status_code = 400

    def __init__(self, current: str, requested: str, detail: Optional[str] = None):
        super().__init__(detail or f"Cannot move issue from {current} to {requested}")
        self.current = current
        self.requested = requested


class AccessDenied(DomainError):
    """Policy said no. Callers never learn which rule failed."""
    status_code = 403

    def __init__(self, detail: str = "Access denied"):
        super().__init__(detail)


class NotFound(DomainError):
    status_code = 404

    def __init__(self, what: str = "Resource"):
        super().__init__(f"{what} not found")
        self.what = what

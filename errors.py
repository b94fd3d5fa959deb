"""Error taxonomy for the API. Each error carries the HTTP status it maps to."""

from typing import Any, Dict, Optional


class APIError(Exception):
    """Base class for errors raised by route handlers."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, **self.details}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(APIError):
    """Missing or malformed request data."""

    status_code = 400


class NotFoundError(APIError):
    """The identifier does not resolve to a document."""

    status_code = 404


class AuthError(APIError):
    """Credentials or token rejected."""

    status_code = 401


class StorageError(APIError):
    """Unexpected database failure."""

    status_code = 500

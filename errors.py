"""
errors.py
Typed failures shared by the store, the session gate and the member service.
The UI catches AcademyError per operation and shows `message`.
"""

from __future__ import annotations


class AcademyError(Exception):
    message = "Something went wrong."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AcademyError):
    """Required field missing or malformed. `errors` maps field -> message."""

    message = "Please fill in the required fields."

    def __init__(self, errors: dict[str, str], message: str | None = None):
        self.errors = dict(errors)
        if message is None and errors:
            message = " ".join(errors.values())
        super().__init__(message)


class NotFound(AcademyError):
    message = "Record not found."


class Unauthorized(AcademyError):
    message = "Authentication required."


class Forbidden(AcademyError):
    message = "You are not allowed to do this."


class RateLimited(AcademyError):
    message = "Too many failed login attempts. Please try again later."

    def __init__(self, retry_after: float, message: str | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class StoreUnavailable(AcademyError):
    message = "Data could not be read or saved."


class StoreConflict(AcademyError):
    message = "The data was changed by someone else. Reload and try again."

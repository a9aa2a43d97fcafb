"""
Typed failures raised by the account use-cases.

Each failure carries the HTTP status the adapter answers with and the level
at which the adapter logs it. Messages are safe to show to the client.
"""
import logging
from typing import Any, List, Optional


class AccountError(Exception):
    status_code = 500
    log_level = logging.ERROR
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccountError):
    status_code = 400
    log_level = logging.WARNING
    default_message = "Validation error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidCredentials(AccountError):
    # Never say which of email/password was wrong
    status_code = 401
    log_level = logging.WARNING
    default_message = "Invalid email or password"


class InvalidToken(AccountError):
    # Same message for expired, forged and malformed tokens
    status_code = 401
    log_level = logging.WARNING
    default_message = "Invalid or expired token"


class NotFound(AccountError):
    status_code = 404
    log_level = logging.WARNING
    default_message = "User not found"


class Conflict(AccountError):
    status_code = 409
    log_level = logging.WARNING
    default_message = "User already exists"

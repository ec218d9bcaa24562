"""Errors raised by the OAuth sign-in layer."""
from __future__ import annotations

from typing import Optional


class OAuthError(Exception):
    """Base exception for sign-in operations."""


class AuthConfigurationError(OAuthError):
    """A handler id, connection name or handler map is missing or unknown."""


class TokenServiceError(OAuthError):

    def __init__(self, message: str, status_code: Optional[int] = None, operation: str = ""):
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)

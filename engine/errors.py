# engine/errors.py
from typing import Optional


class ProviderError(Exception):
    """An upstream product provider could not answer a request."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status = status


class RateLimitError(ProviderError):
    """Provider refused the request because a quota or rate limit was hit."""


class ProviderUnavailable(ProviderError):
    """Connection error, timeout or 5xx from the provider."""


class AccountError(Exception):
    """Remote account backend call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationRequired(AccountError):
    """No session token is stored; the caller should prompt for login."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status=401)


class StorageError(Exception):
    """Local persistent storage failed after retries."""

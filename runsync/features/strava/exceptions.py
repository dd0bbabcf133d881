"""
Integration error taxonomy.

ProviderAuthError is terminal (the user has to reconnect).
ProviderRateLimitError and ProviderUnavailableError are transient and
left for the next reconciliation pass.
"""


class IntegrationError(Exception):
    """Base integration error."""


class NotConnectedError(IntegrationError):
    """No credential for the user, or the credential is disconnected."""


class DecryptionError(IntegrationError):
    """Stored token ciphertext is malformed or was not produced with this key."""


class ImportConflictError(IntegrationError):
    """Insert hit the uniqueness constraint on (owner, provider, external id)."""


class ProviderError(IntegrationError):
    """Base error for calls to the provider."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    """Grant is invalid, expired or revoked."""


class ProviderRateLimitError(ProviderError):
    """Provider rate limit exceeded."""


class ProviderUnavailableError(ProviderError):
    """Timeout, transport failure or 5xx from the provider."""

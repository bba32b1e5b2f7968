"""
Custom exceptions for better error handling.
"""


class LinkStoreError(Exception):
    """Base exception for link store errors."""
    pass


class NotFoundError(LinkStoreError):
    """Referenced user, account or link request does not exist."""
    def __init__(self, message: str, entity: str = None, key: str = None):
        self.entity = entity
        self.key = key
        super().__init__(message)


class ExpiredError(LinkStoreError):
    """Link request is past its validity window."""
    def __init__(self, message: str, expires=None):
        self.expires = expires
        super().__init__(message)


class ConstraintViolationError(LinkStoreError):
    """Uniqueness, foreign-key or length constraint rejected a write."""
    pass


class TransientStoreError(LinkStoreError):
    """Connection or timeout failure; safe for the caller to retry."""
    pass


class TokenError(LinkStoreError):
    """Token-related errors."""
    pass


class TokenDecryptionError(TokenError):
    """Failed to decrypt a stored token."""
    pass


class RefreshTokenError(TokenError):
    """OAuth provider rejected the refresh token."""
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class ProviderUnavailableError(TokenError):
    """OAuth provider could not be reached or failed; the stored account is kept."""
    pass


class ConfigurationError(LinkStoreError):
    """Configuration or environment variable errors."""
    pass

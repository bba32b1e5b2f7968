"""
Account-linking and OAuth token-lifecycle store.
"""
from linkstore.exceptions import (
    LinkStoreError,
    NotFoundError,
    ExpiredError,
    ConstraintViolationError,
    TransientStoreError,
    TokenError,
    TokenDecryptionError,
    RefreshTokenError,
    ProviderUnavailableError,
    ConfigurationError,
)
from linkstore.manager import LinkManager
from linkstore.schemas import AccountRecord, LinkRequestRecord, TokenGrant, UserRecord

__version__ = "0.1.0"

__all__ = [
    'LinkManager',
    'AccountRecord',
    'LinkRequestRecord',
    'TokenGrant',
    'UserRecord',
    'LinkStoreError',
    'NotFoundError',
    'ExpiredError',
    'ConstraintViolationError',
    'TransientStoreError',
    'TokenError',
    'TokenDecryptionError',
    'RefreshTokenError',
    'ProviderUnavailableError',
    'ConfigurationError',
]

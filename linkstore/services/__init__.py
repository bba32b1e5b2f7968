"""
Services used by the link manager: token encryption and OAuth refresh.
"""
from linkstore.services.encryption import TokenCipher
from linkstore.services.oauth import OAuthTokenRefresher, TokenRefresher

__all__ = [
    'TokenCipher',
    'OAuthTokenRefresher',
    'TokenRefresher',
]

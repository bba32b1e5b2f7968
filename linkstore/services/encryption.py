"""
Encryption utilities for token storage.
"""
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

from linkstore.exceptions import TokenDecryptionError
from linkstore.logging_config import get_logger

logger = get_logger(__name__)


class TokenCipher:
    """
    Encrypts OAuth tokens at rest.

    Without a Fernet instance the cipher is a pass-through and tokens are
    stored exactly as given.
    """

    def __init__(self, fernet: Optional[Fernet] = None):
        self.fernet = fernet

    @classmethod
    def from_key(cls, encryption_key: Optional[str]) -> "TokenCipher":
        """Build a cipher from a Fernet key string (None disables encryption)."""
        if encryption_key is None:
            return cls()
        return cls(Fernet(encryption_key.encode()))

    @property
    def enabled(self) -> bool:
        return self.fernet is not None

    def encrypt(self, token: Optional[str]) -> Optional[str]:
        """
        Encrypt a token for secure storage.

        Args:
            token: Plain text token

        Returns:
            Encrypted token as string
        """
        if token is None:
            return None
        if token == "" or self.fernet is None:
            return token
        return self.fernet.encrypt(token.encode()).decode()

    def decrypt(self, encrypted_token: Optional[str]) -> Optional[str]:
        """
        Decrypt a token from storage.

        Raises:
            TokenDecryptionError: If the stored value is not valid for this key
        """
        if encrypted_token is None:
            return None
        if encrypted_token == "" or self.fernet is None:
            return encrypted_token
        try:
            return self.fernet.decrypt(encrypted_token.encode()).decode()
        except InvalidToken as e:
            logger.error("token_decryption_failed", error=type(e).__name__)
            raise TokenDecryptionError("Failed to decrypt stored token") from e

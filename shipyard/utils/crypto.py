"""
Encryption of credentials stored in the database (S3 keys, SSH private keys).
Uses Fernet symmetric encryption with the key from ENCRYPTION_KEY.
"""

from cryptography.fernet import Fernet, InvalidToken


class SecretBox:
    """Encrypts and decrypts credential columns."""

    def __init__(self):
        self._fernet = None

    def initialize(self, key):
        """
        Initialize with a Fernet key.

        Args:
            key: URL-safe base64 encoded 32-byte key (str or bytes)

        Raises:
            ValueError: If the key is not a valid Fernet key
        """
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string.

        Raises:
            RuntimeError: If not initialized
        """
        if not self._fernet:
            raise RuntimeError("SecretBox not initialized. Set ENCRYPTION_KEY.")

        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """
        Decrypt a token produced by encrypt().

        Raises:
            RuntimeError: If not initialized or the token was encrypted with another key
        """
        if not self._fernet:
            raise RuntimeError("SecretBox not initialized. Set ENCRYPTION_KEY.")

        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            raise RuntimeError("Failed to decrypt secret: invalid token or wrong ENCRYPTION_KEY")

    @property
    def is_initialized(self) -> bool:
        return self._fernet is not None


# Global instance, initialized by create_app()
secret_box = SecretBox()

"""
Cryptography Manager for the ruburu image-board.

Handles the cryptographic operations of the administrative side:
- Password hashing with scrypt and a per-user random salt
- Constant-time password verification
- Random identifiers for sessions and captcha challenges
"""

import os
import uuid

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.backends import default_backend


SALT_SIZE = 16
KEY_LENGTH = 32


class CryptoError(Exception):
    """Base exception for cryptographic errors"""
    pass


class CryptoManager:
    """
    Manages cryptographic operations for the image-board.
    """

    def __init__(self, n: int = 2**14, r: int = 8, p: int = 1):
        """
        Args:
            n: scrypt CPU/memory cost parameter (power of two)
            r: scrypt block size
            p: scrypt parallelization parameter
        """
        self.backend = default_backend()
        self.n = n
        self.r = r
        self.p = p

    def _kdf(self, salt: bytes) -> Scrypt:
        return Scrypt(
            salt=salt,
            length=KEY_LENGTH,
            n=self.n,
            r=self.r,
            p=self.p,
            backend=self.backend
        )

    def hash_password(self, password: str) -> tuple:
        """
        Derive a password hash with a fresh random salt.

        Args:
            password: Plaintext password

        Returns:
            tuple: (hash bytes, salt bytes)

        Raises:
            CryptoError: If derivation fails
        """
        try:
            salt = os.urandom(SALT_SIZE)
            key = self._kdf(salt).derive(password.encode('utf-8'))
            return key, salt
        except Exception as e:
            raise CryptoError(f"Failed to hash password: {e}")

    def verify_password(self, password: str, password_hash: bytes, salt: bytes) -> bool:
        """
        Check a password against a stored hash in constant time.

        Args:
            password: Plaintext password to check
            password_hash: Stored derived key
            salt: Salt the key was derived with

        Returns:
            bool: True if the password matches
        """
        try:
            self._kdf(salt).verify(password.encode('utf-8'), password_hash)
            return True
        except InvalidKey:
            return False

    @staticmethod
    def new_token() -> str:
        """Return a random UUID4 string for sessions and challenges."""
        return str(uuid.uuid4())

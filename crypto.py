"""
crypto.py – Secret hashing for the administrator credentials.

This module contains SecretHasher, the single place responsible for every
cryptographic concern in the application:

  - Hashing passwords, PINs and the super-action code with
    PBKDF2-HMAC-SHA256 and a fresh random 16-byte salt per secret.
  - Verifying a candidate secret against a stored hash in constant time
    (PBKDF2HMAC.verify).
  - Recognising values written before hashing was introduced (plain text)
    and flagging any stored value that should be re-hashed.

Stored format:

    pbkdf2_sha256$<iterations>$<base64 salt>$<base64 derived key>
"""

import base64
import binascii
import hmac
import logging
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import APP_NAME, DEFAULT_KDF_ITERATIONS

logger = logging.getLogger(APP_NAME)

HASH_SCHEME = "pbkdf2_sha256"
SALT_BYTES = 16
KEY_LENGTH = 32


class SecretHasher:
    """
    Hashes and verifies shared secrets.

    Parameters
    ----------
    iterations : int
        PBKDF2 iteration count used for new hashes.  Existing hashes carry
        their own count and are verified with it.
    """

    def __init__(self, iterations: int = DEFAULT_KDF_ITERATIONS) -> None:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    @staticmethod
    def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )

    def hash(self, secret: str) -> str:
        """Return the encoded salted hash of *secret*."""
        salt = os.urandom(SALT_BYTES)
        derived = self._kdf(salt, self.iterations).derive(secret.encode("utf-8"))
        return "$".join([
            HASH_SCHEME,
            str(self.iterations),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(derived).decode("ascii"),
        ])

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    @staticmethod
    def _split(stored: str):
        """
        Decode *stored* into (iterations, salt, key).

        Returns None when the value is not in the hashed format.
        """
        parts = stored.split("$")
        if len(parts) != 4 or parts[0] != HASH_SCHEME:
            return None
        try:
            iterations = int(parts[1])
            salt = base64.b64decode(parts[2], validate=True)
            key = base64.b64decode(parts[3], validate=True)
        except (ValueError, binascii.Error):
            return None
        if iterations < 1 or not salt or len(key) != KEY_LENGTH:
            return None
        return iterations, salt, key

    def is_hashed(self, stored: str) -> bool:
        return self._split(stored) is not None

    def verify(self, candidate: str, stored: str) -> bool:
        """
        Return True if *candidate* matches *stored*.

        Hashed values are checked with PBKDF2HMAC.verify.  Legacy plain-text
        values are compared with hmac.compare_digest so the comparison time
        does not depend on where the strings differ.  A value carrying the
        hash prefix that does not decode never matches.
        """
        if candidate is None or stored is None:
            return False
        decoded = self._split(stored)
        if decoded is None:
            if stored.startswith(HASH_SCHEME + "$"):
                logger.error("Stored hash is corrupted; refusing to verify against it")
                return False
            return hmac.compare_digest(candidate.encode("utf-8"), stored.encode("utf-8"))

        iterations, salt, key = decoded
        try:
            self._kdf(salt, iterations).verify(candidate.encode("utf-8"), key)
            return True
        except InvalidKey:
            return False

    def needs_rehash(self, stored: str) -> bool:
        """
        True for plain-text values and for hashes made with an iteration
        count other than the configured one.
        """
        decoded = self._split(stored)
        if decoded is None:
            return True
        return decoded[0] != self.iterations

"""
Symmetric encryption of the card envelope carried between initialize
and authorize.

AES-256-CBC with PKCS7 padding, base64 output. Operator-supplied
secrets of any length are normalised: the key is the first 32 hex
characters of its SHA-256 digest, the IV is right-padded with ``0`` and
cut to the 16-byte block size.
"""
import base64
import binascii
import hashlib

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from rexpay_gateway.core.exceptions import DecryptionError

logger = structlog.get_logger(__name__)

KEY_LENGTH = 32
BLOCK_SIZE = 16
IV_FILLER = b"0"


def derive_key(key: str) -> bytes:
    """Hash arbitrary key material down to an AES-256 key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:KEY_LENGTH].encode("ascii")


def derive_iv(iv: str) -> bytes:
    """Pad or truncate the IV to exactly one cipher block."""
    return iv.encode("utf-8").ljust(BLOCK_SIZE, IV_FILLER)[:BLOCK_SIZE]


class EncryptionCodec:
    """
    Stateless AES-CBC codec for card envelopes.

    Safe to share across concurrent calls.
    """

    @staticmethod
    def _cipher(key: str, iv: str) -> Cipher:
        return Cipher(algorithms.AES(derive_key(key)), modes.CBC(derive_iv(iv)))

    def encrypt(self, plaintext: str, key: str, iv: str) -> str:
        """
        Encrypt a UTF-8 string.

        Args:
            plaintext: Text to encrypt
            key: Encryption key material
            iv: Initialization vector material

        Returns:
            str: Base64 ciphertext
        """
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = self._cipher(key, iv).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str, key: str, iv: str) -> str:
        """
        Decrypt a string produced by :meth:`encrypt` with the same key and IV.

        Args:
            ciphertext: Base64 ciphertext
            key: Encryption key material
            iv: Initialization vector material

        Returns:
            str: Original plaintext

        Raises:
            DecryptionError: If the input is malformed, truncated or was
                sealed with a different key/IV
        """
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
            decryptor = self._cipher(key, iv).decryptor()
            padded = decryptor.update(raw) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, binascii.Error) as e:
            logger.warning("envelope_decryption_failed", error_type=type(e).__name__)
            raise DecryptionError("Failed to decrypt card envelope", cause=e) from e

"""
Symmetric encryption for the on-disk secret cache.
AES-256-CBC with a fixed external IV and an scrypt-derived key.
"""

import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from opconfig.errors import CacheCorrupt


class CryptoBox:
    """
    Encrypts and decrypts text payloads for the cache file.

    The IV is supplied out of band (OP_CACHE_IV) and shared by every cache
    write; the key is derived per write from the service token and a random salt.
    """

    KEY_LENGTH = 32
    IV_LENGTH = 16

    # scrypt cost parameters (16 MiB of memory per derivation)
    SCRYPT_N = 2 ** 14
    SCRYPT_R = 8
    SCRYPT_P = 1

    def __init__(self, iv: bytes):
        if len(iv) != self.IV_LENGTH:
            raise ValueError(f"IV must be {self.IV_LENGTH} bytes, got {len(iv)}")
        self._iv = iv

    @classmethod
    def from_hex(cls, iv_hex: str) -> "CryptoBox":
        return cls(bytes.fromhex(iv_hex))

    @classmethod
    def derive_key(cls, secret: str, salt: str) -> bytes:
        """
        Derive a 256-bit key from a secret and a hex salt.

        Deliberately slow so a captured cache file is expensive to brute force.
        """
        kdf = Scrypt(
            salt=salt.encode("utf-8"),
            length=cls.KEY_LENGTH,
            n=cls.SCRYPT_N,
            r=cls.SCRYPT_R,
            p=cls.SCRYPT_P,
        )
        return kdf.derive(secret.encode("utf-8"))

    @staticmethod
    def generate_salt() -> str:
        return secrets.token_hex(16)

    @classmethod
    def generate_iv_hex(cls) -> str:
        return secrets.token_hex(cls.IV_LENGTH)

    def _cipher(self, key: bytes) -> Cipher:
        return Cipher(algorithms.AES(key), modes.CBC(self._iv))

    def encrypt(self, plaintext: str, key: bytes) -> str:
        """Encrypt text and return the ciphertext as hex."""
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = self._cipher(key).encryptor()
        return (encryptor.update(data) + encryptor.finalize()).hex()

    def decrypt(self, ciphertext_hex: str, key: bytes) -> str:
        """
        Decrypt hex ciphertext produced by encrypt().

        Raises:
            CacheCorrupt: On malformed hex, truncated input, bad padding,
                a wrong key or IV, or a plaintext that is not UTF-8.
        """
        try:
            data = bytes.fromhex(ciphertext_hex.strip())
            if not data or len(data) % self.IV_LENGTH:
                raise ValueError("ciphertext is not a whole number of blocks")

            decryptor = self._cipher(key).decryptor()
            padded = decryptor.update(data) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as e:
            # UnicodeDecodeError is a ValueError subclass
            raise CacheCorrupt(f"Unable to decrypt cache payload: {e}") from e

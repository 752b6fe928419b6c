# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""CryptoJS-compatible passphrase AES.

Kahla clients encrypt message bodies with ``CryptoJS.AES.encrypt(text,
aesKey)``, which treats the key as a passphrase and emits the OpenSSL
"salted" format::

    base64("Salted__" + salt[8] + AES-256-CBC(PKCS7(plaintext)))

Key and IV are derived from passphrase and salt with OpenSSL's
``EVP_BytesToKey`` (MD5, one iteration).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from typing import Protocol

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


_SALT_MAGIC = b"Salted__"
_SALT_SIZE = 8
_KEY_SIZE = 32
_IV_SIZE = 16


class CipherError(Exception):
    """Raised when a message cannot be encrypted or decrypted."""


class MessageCipher(Protocol):
    def encrypt(self, plaintext: str, key: str) -> str: ...

    def decrypt(self, ciphertext: str, key: str) -> str: ...


def evp_bytes_to_key(
    passphrase: bytes, salt: bytes, key_size: int, iv_size: int
) -> tuple[bytes, bytes]:
    """Derive key and IV the way OpenSSL's ``EVP_BytesToKey`` does."""
    derived = b""
    block = b""
    while len(derived) < key_size + iv_size:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:key_size], derived[key_size : key_size + iv_size]


class CryptoJsCipher:
    """``MessageCipher`` interoperable with CryptoJS passphrase mode."""

    def encrypt(self, plaintext: str, key: str) -> str:
        if not key:
            raise CipherError("empty encryption key")
        salt = os.urandom(_SALT_SIZE)
        aes_key, iv = evp_bytes_to_key(
            key.encode("utf-8"), salt, _KEY_SIZE, _IV_SIZE
        )
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(_SALT_MAGIC + salt + ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str, key: str) -> str:
        if not key:
            raise CipherError("empty decryption key")
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CipherError(f"ciphertext is not valid base64: {e}") from e

        header = len(_SALT_MAGIC) + _SALT_SIZE
        if not raw.startswith(_SALT_MAGIC) or len(raw) <= header:
            raise CipherError("ciphertext is not in salted format")
        body = raw[header:]
        if len(body) % _IV_SIZE:
            raise CipherError("ciphertext length is not a block multiple")

        aes_key, iv = evp_bytes_to_key(
            key.encode("utf-8"), raw[len(_SALT_MAGIC) : header], _KEY_SIZE, _IV_SIZE
        )
        decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as e:
            # Bad padding or non-UTF-8 output both mean a wrong key
            raise CipherError("decryption failed (wrong key?)") from e

"""Reversible field encryption.

``FieldCipher.hash`` / ``unhash`` encrypt and decrypt single string field
values.  AES-256-GCM with a random 96-bit nonce per value; the key is
derived from a secret with scrypt.  Tokens look like ``<nonce hex>:<ciphertext hex>``.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from revstore.errors import CipherError

_SALT = b"revstore-field-cipher"
_NONCE_SIZE = 12


class FieldCipher:
    def __init__(self, secret: str) -> None:
        key = Scrypt(salt=_SALT, length=32, n=2**14, r=8, p=1).derive(secret.encode("utf-8"))
        self._aead = AESGCM(key)

    def hash(self, value: str) -> str:
        nonce = os.urandom(_NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, str(value).encode("utf-8"), None)
        return f"{nonce.hex()}:{ciphertext.hex()}"

    def unhash(self, token: str) -> str:
        nonce_hex, sep, ciphertext_hex = token.partition(":")
        if not sep or not nonce_hex or not ciphertext_hex:
            msg = "Invalid encrypted data format"
            raise CipherError(msg)
        try:
            plaintext = self._aead.decrypt(bytes.fromhex(nonce_hex), bytes.fromhex(ciphertext_hex), None)
        except (ValueError, InvalidTag) as e:
            msg = "Encrypted value could not be decrypted"
            raise CipherError(msg) from e
        return plaintext.decode("utf-8")

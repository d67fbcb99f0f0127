# gst_compliance/infrastructure/external/nic_crypto.py
"""
Crypto primitives for the NIC e-way bill API.

- Handshake: the login payload is RSA (PKCS#1 v1.5) encrypted with the
  authority's published public key.
- The authority returns the session encryption key (SEK) AES-encrypted
  with the 32-byte app key we generated for the handshake.
- Every later request/response ``data`` field is AES-256-ECB / PKCS7 with
  the SEK, carrying base64-encoded JSON.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from gst_compliance.core.errors import ConfigurationError

APP_KEY_BYTES = 32


class CryptoError(Exception):
    """Ciphertext could not be decrypted or decoded."""


def generate_app_key() -> bytes:
    return os.urandom(APP_KEY_BYTES)


def load_public_key(key_text: str) -> RSAPublicKey:
    """Accept a PEM block or the bare base64 DER body the portal publishes."""
    text = (key_text or "").strip()
    if not text:
        raise ConfigurationError("e-way bill public key not configured")
    try:
        if "BEGIN" in text:
            key = serialization.load_pem_public_key(text.encode())
        else:
            key = serialization.load_der_public_key(base64.b64decode(text))
    except (ValueError, UnsupportedAlgorithm, binascii.Error) as exc:
        raise ConfigurationError(f"invalid e-way bill public key: {exc}") from exc
    if not isinstance(key, RSAPublicKey):
        raise ConfigurationError("e-way bill public key is not an RSA key")
    return key


def rsa_encrypt(data: bytes, public_key: RSAPublicKey) -> str:
    return base64.b64encode(public_key.encrypt(data, asym_padding.PKCS1v15())).decode()


def aes_encrypt(plain: bytes, key: bytes) -> str:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plain) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return base64.b64encode(encryptor.update(padded) + encryptor.finalize()).decode()


def aes_decrypt(cipher_b64: str, key: bytes) -> bytes:
    try:
        raw = base64.b64decode(cipher_b64, validate=True)
        decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except (ValueError, TypeError, binascii.Error) as exc:
        raise CryptoError(f"AES decryption failed: {exc}") from exc


def decrypt_sek(encrypted_sek: str, app_key: bytes) -> bytes:
    sek = aes_decrypt(encrypted_sek, app_key)
    if len(sek) not in (16, 24, 32):
        raise CryptoError(f"session key has invalid length {len(sek)}")
    return sek


def encrypt_payload(payload: dict[str, Any], sek: bytes) -> str:
    encoded = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode())
    return aes_encrypt(encoded, sek)


def decode_json_bytes(raw: bytes) -> dict[str, Any]:
    """Parse JSON that may or may not be wrapped in one layer of base64."""
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        pass
    try:
        return json.loads(base64.b64decode(raw, validate=True))
    except (ValueError, UnicodeDecodeError, binascii.Error) as exc:
        raise CryptoError(f"decrypted payload is not JSON: {exc}") from exc


def decrypt_payload(cipher_b64: str, sek: bytes) -> dict[str, Any]:
    return decode_json_bytes(aes_decrypt(cipher_b64, sek))

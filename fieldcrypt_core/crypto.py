"""
fieldcrypt_core.crypto
----------------------
Cipher primitives and the two field codecs:

- SeparatedCodec: one ciphertext per field value (ARC4, or ChaCha20 with a nonce)
- AggregatedCodec: one AES-256-CBC blob for a whole object, ``IV || ciphertext``,
  optionally closed by an HMAC-SHA256 tag

Encryption is a coroutine because the entropy read may block; decryption is a
plain function and never suspends.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Optional
import asyncio, binascii, json, os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.decrepit.ciphers.algorithms import ARC4
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .constants import (
    AGGREGATED_KEY_LENGTH,
    CHACHA20_NONCE_LENGTH,
    DEFAULT_SEPARATED_CIPHER,
    HKDF_INFO_MAC,
    HKDF_INFO_STREAM,
    IV_LENGTH,
    MAC_LENGTH,
)
from .errors import DecodeError, KeyMaterialError
from .logger import get_logger
from .utils import canonical_json, parse_json, to_bytes

log = get_logger("fieldcrypt.crypto")

RandomSource = Callable[[int], bytes]

# --------- key derivation ----------
def evp_bytes_to_key(password: bytes, key_len: int, iv_len: int = 0) -> bytes:
    """OpenSSL EVP_BytesToKey with MD5, one iteration and no salt (legacy createCipher)."""
    derived, block = b"", b""
    while len(derived) < key_len + iv_len:
        h = hashes.Hash(hashes.MD5())
        h.update(block + password)
        block = h.finalize()
        derived += block
    return derived[:key_len]

def hkdf_derive(key: bytes, info: bytes, length: int = 32) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=length, salt=None, info=info)
    return hkdf.derive(key)

# --------- entropy ----------
async def random_bytes(n: int, source: RandomSource = os.urandom) -> bytes:
    try:
        data = await asyncio.to_thread(source, n)
    except OSError as e:
        raise KeyMaterialError(f"entropy source failed: {e}") from e
    if not isinstance(data, (bytes, bytearray)) or len(data) != n:
        raise KeyMaterialError(f"entropy source returned an invalid buffer, expected {n} bytes")
    return bytes(data)

# --------- stream ciphers ----------
def rc4_apply(key: bytes, data: bytes) -> bytes:
    # ARC4 is symmetric: the same call encrypts and decrypts
    ctx = Cipher(ARC4(key), mode=None).encryptor()
    return ctx.update(data) + ctx.finalize()

def chacha20_apply(key: bytes, nonce: bytes, data: bytes) -> bytes:
    ctx = Cipher(algorithms.ChaCha20(key, nonce), mode=None).encryptor()
    return ctx.update(data) + ctx.finalize()

# --------- AES-256-CBC + HMAC ----------
def aes_cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    enc = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return enc.update(padded) + enc.finalize()

def aes_cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    dec = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = dec.update(ciphertext) + dec.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()

def hmac_sha256(key: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(data)
    return h.finalize()

def hmac_sha256_verify(key: bytes, data: bytes, tag: bytes) -> None:
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(data)
    h.verify(tag)


class SeparatedCodec:
    """Encrypts a single field value to its own ciphertext."""

    def __init__(self, key: bytes, cipher: str = DEFAULT_SEPARATED_CIPHER,
                 random_source: RandomSource = os.urandom):
        self.cipher = cipher
        self._random_source = random_source
        if cipher == "rc4":
            self._key = evp_bytes_to_key(key, 16)
        elif cipher == "chacha20":
            self._key = hkdf_derive(key, HKDF_INFO_STREAM)
        else:
            raise ValueError(f"unknown separated cipher: {cipher!r}")

    @property
    def deterministic(self) -> bool:
        return self.cipher == "rc4"

    async def encrypt(self, value: Any) -> bytes:
        data = canonical_json(value)
        if self.cipher == "rc4":
            return rc4_apply(self._key, data)
        nonce = await random_bytes(CHACHA20_NONCE_LENGTH, self._random_source)
        return nonce + chacha20_apply(self._key, nonce, data)

    def decrypt(self, ciphertext: Any, field: Optional[str] = None,
                record_id: Optional[str] = None) -> Any:
        try:
            raw = to_bytes(ciphertext)
        except (TypeError, binascii.Error, ValueError) as e:
            raise DecodeError(f"separated ciphertext is not decodable: {e}", field, record_id) from e

        if self.cipher == "rc4":
            data = rc4_apply(self._key, raw)
        else:
            if len(raw) < CHACHA20_NONCE_LENGTH:
                raise DecodeError("separated ciphertext is shorter than its nonce", field, record_id)
            nonce, body = raw[:CHACHA20_NONCE_LENGTH], raw[CHACHA20_NONCE_LENGTH:]
            data = chacha20_apply(self._key, nonce, body)

        try:
            return parse_json(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Error parsing JSON during separated decrypt: {e}", field, record_id) from e


class AggregatedCodec:
    """Encrypts a whole mapping of field -> value into one blob."""

    def __init__(self, key: bytes, authenticate: bool = True,
                 random_source: RandomSource = os.urandom):
        if len(key) != AGGREGATED_KEY_LENGTH:
            raise ValueError(f"aggregated key must be {AGGREGATED_KEY_LENGTH} bytes")
        self._key = key
        self._random_source = random_source
        self.authenticate = authenticate
        self._mac_key = hkdf_derive(key, HKDF_INFO_MAC) if authenticate else None

    async def encrypt(self, obj: Dict[str, Any]) -> bytes:
        iv = await random_bytes(IV_LENGTH, self._random_source)
        blob = iv + aes_cbc_encrypt(self._key, iv, canonical_json(obj))
        if self.authenticate:
            blob += hmac_sha256(self._mac_key, blob)
        return blob

    def decrypt(self, blob: Any, record_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            raw = to_bytes(blob)
        except (TypeError, binascii.Error, ValueError) as e:
            raise DecodeError(f"aggregated ciphertext is not decodable: {e}", record_id=record_id) from e

        minimum = IV_LENGTH + algorithms.AES.block_size // 8 + (MAC_LENGTH if self.authenticate else 0)
        if len(raw) < minimum:
            raise DecodeError(f"aggregated ciphertext too short ({len(raw)} bytes)", record_id=record_id)

        if self.authenticate:
            raw, tag = raw[:-MAC_LENGTH], raw[-MAC_LENGTH:]
            try:
                hmac_sha256_verify(self._mac_key, raw, tag)
            except InvalidSignature as e:
                raise DecodeError("aggregated ciphertext failed authentication", record_id=record_id) from e

        iv, body = raw[:IV_LENGTH], raw[IV_LENGTH:]
        try:
            data = aes_cbc_decrypt(self._key, iv, body)
        except ValueError as e:
            raise DecodeError(f"aggregated ciphertext could not be decrypted: {e}", record_id=record_id) from e

        try:
            obj = parse_json(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Error parsing JSON during aggregation decrypt: {e}", record_id=record_id) from e
        if not isinstance(obj, dict):
            raise DecodeError("aggregated plaintext is not an object", record_id=record_id)
        return obj

# fieldcrypt_core/config.py

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import binascii
import os

from .constants import (
    AGGREGATED_CIPHER_FIELD,
    AGGREGATED_KEY_LENGTH,
    DEFAULT_SEPARATED_CIPHER,
    SEPARATED_CIPHER_MAP_FIELD,
    SEPARATED_CIPHERS,
    SEPARATED_INLINE_FIELD,
    SEPARATED_STORAGES,
    STORAGE_SIDE_MAP,
)
from .errors import ConfigError
from .utils import b64d


@dataclass(frozen=True)
class CryptoOptions:
    """
    Process-wide key material and codec variants.

    Built once at setup and never mutated; every controller configured with
    the same options shares the same keys.
    """
    separated_key: bytes
    aggregated_key: bytes
    separated_storage: str = STORAGE_SIDE_MAP
    separated_cipher: str = DEFAULT_SEPARATED_CIPHER
    aggregated_authenticate: bool = True
    aggregated_cipher_field: str = AGGREGATED_CIPHER_FIELD
    separated_cipher_map_field: str = SEPARATED_CIPHER_MAP_FIELD
    separated_inline_field: str = SEPARATED_INLINE_FIELD

    def __post_init__(self):
        if not self.separated_key:
            raise ConfigError("separated key must not be empty")
        if len(self.aggregated_key) != AGGREGATED_KEY_LENGTH:
            raise ConfigError(
                f"aggregated key must be {AGGREGATED_KEY_LENGTH} bytes, got {len(self.aggregated_key)}"
            )
        if self.separated_storage not in SEPARATED_STORAGES:
            raise ConfigError(f"unknown separated storage: {self.separated_storage!r}")
        if self.separated_cipher not in SEPARATED_CIPHERS:
            raise ConfigError(f"unknown separated cipher: {self.separated_cipher!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CryptoOptions":
        """
        Accepts either the nested form ``{"separated": {"key": ...}, "aggregated": {"key": ...}}``
        or the flat form ``{"separated_key": ..., "aggregated_key": ...}``. Keys are base64 strings.
        """
        sep = data.get("separated") or {}
        agg = data.get("aggregated") or {}
        sep_raw = sep.get("key") or data.get("separated_key")
        agg_raw = agg.get("key") or data.get("aggregated_key")

        if not sep_raw:
            raise ConfigError("separated key is required as a base64 string")
        if not agg_raw:
            raise ConfigError("aggregated key is required as a 32 byte base64 string")

        extra = {
            name: data[name]
            for name in (
                "separated_storage",
                "separated_cipher",
                "aggregated_authenticate",
                "aggregated_cipher_field",
                "separated_cipher_map_field",
                "separated_inline_field",
            )
            if data.get(name) is not None
        }
        return cls(
            separated_key=_decode_key("separated", sep_raw),
            aggregated_key=_decode_key("aggregated", agg_raw),
            **extra,
        )


def _decode_key(label: str, raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if not isinstance(raw, str):
        raise ConfigError(f"{label} key must be a base64 string")
    try:
        return b64d(raw)
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"{label} key is not valid base64: {e}") from e


def load_options(config: Optional[Dict[str, Any]] = None) -> CryptoOptions:
    """
    Resolve crypto options from an explicit dict, falling back to the environment.

    Environment:
        FIELDCRYPT_SEPARATED_KEY, FIELDCRYPT_AGGREGATED_KEY,
        FIELDCRYPT_SEPARATED_STORAGE, FIELDCRYPT_SEPARATED_CIPHER,
        FIELDCRYPT_AGGREGATED_AUTH ("0" disables the blob MAC)
    """
    config = dict(config or {})
    config.setdefault("separated_key", os.getenv("FIELDCRYPT_SEPARATED_KEY"))
    config.setdefault("aggregated_key", os.getenv("FIELDCRYPT_AGGREGATED_KEY"))
    config.setdefault("separated_storage", os.getenv("FIELDCRYPT_SEPARATED_STORAGE"))
    config.setdefault("separated_cipher", os.getenv("FIELDCRYPT_SEPARATED_CIPHER"))
    if "aggregated_authenticate" not in config and os.getenv("FIELDCRYPT_AGGREGATED_AUTH") is not None:
        config["aggregated_authenticate"] = os.getenv("FIELDCRYPT_AGGREGATED_AUTH") != "0"
    return CryptoOptions.from_dict(config)

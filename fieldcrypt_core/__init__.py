"""
fieldcrypt_core
===============
Transparent field-level encryption for structured records.

Provides:
- Field classification from schema metadata (plaintext / separated / aggregated)
- Separated codec: one ciphertext per field value
- Aggregated codec: one AES-256-CBC blob for all aggregated fields
- Document crypto controller + lifecycle hooks for a persistence host
- Reference record stores (memory, SQLite) that drive those hooks
"""

from .classifier import Classification, classify
from .config import CryptoOptions, load_options
from .controller import DocumentCryptoController, encrypted_children, plugin
from .errors import ConfigError, DecodeError, FieldCryptError, KeyMaterialError, SelectionError, ValidationError
from .lifecycle import LifecycleAdapter
from .record import NestedRecord, Record, SupportsDecrypt
from .schema import FieldSpec, Schema

__all__ = [
    "Classification",
    "classify",
    "CryptoOptions",
    "load_options",
    "DocumentCryptoController",
    "encrypted_children",
    "plugin",
    "ConfigError",
    "DecodeError",
    "FieldCryptError",
    "KeyMaterialError",
    "SelectionError",
    "ValidationError",
    "LifecycleAdapter",
    "NestedRecord",
    "Record",
    "SupportsDecrypt",
    "FieldSpec",
    "Schema",
]

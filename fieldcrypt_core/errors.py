from __future__ import annotations
from typing import Optional


class FieldCryptError(Exception):
    pass


class ConfigError(FieldCryptError):
    """Missing or malformed key material, or an illegal field declaration."""


class KeyMaterialError(FieldCryptError):
    """The entropy source failed while encrypting."""


class DecodeError(FieldCryptError):
    """
    Ciphertext could not be decrypted or the decrypted text did not parse.

    Always a data-integrity problem (corruption or key mismatch), never a hint
    that the stored value was plaintext.
    """

    def __init__(self, message: str, field: Optional[str] = None, record_id: Optional[str] = None):
        self.field = field
        self.record_id = record_id if record_id is not None else "unknown"
        where = f"record={self.record_id}"
        if field:
            where += f" field={field}"
        super().__init__(f"{message} ({where})")


class SelectionError(FieldCryptError):
    """An encrypted field was set on a record loaded without its ciphertext fields."""


class ValidationError(FieldCryptError):
    """Raised by a record store when a record fails schema validation."""

    def __init__(self, errors: dict):
        self.errors = dict(errors)
        super().__init__("validation failed: " + ", ".join(sorted(self.errors)))

"""
fieldcrypt_core.controller
--------------------------
Document-level orchestration of the separated and aggregated codecs.

``plugin(schema, options)`` is the setup entry point: it classifies the
schema's fields, reserves the ciphertext fields, and attaches a controller and
a lifecycle adapter to the schema. After that, the host drives everything
through the adapter's hooks.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Optional, Set, Tuple, Union
import asyncio, os

from .classifier import Classification, classify
from .config import CryptoOptions
from .constants import (
    AGGREGATED_CIPHER_FIELD,
    SEPARATED_CIPHER_MAP_FIELD,
    SEPARATED_INLINE_FIELD,
    STORAGE_INLINE,
)
from .crypto import AggregatedCodec, RandomSource, SeparatedCodec
from .errors import ConfigError, DecodeError
from .lifecycle import LifecycleAdapter
from .logger import get_logger
from .record import Record, SupportsDecrypt
from .schema import FieldSpec, Schema, is_walkable
from .utils import b64e

log = get_logger("fieldcrypt.controller")


class DocumentCryptoController:
    def __init__(self, schema: Schema, options: Optional[CryptoOptions],
                 classification: Optional[Classification] = None,
                 random_source: RandomSource = os.urandom):
        self.schema = schema
        self.options = options
        self.classification = classification or classify(schema)

        if options is None and not self.classification.is_empty:
            raise ConfigError(f"schema {schema.name!r} declares encrypted fields but no keys were given")

        self.separated_fields: Tuple[str, ...] = tuple(sorted(self.classification.separated))
        self.aggregated_fields: Tuple[str, ...] = tuple(sorted(self.classification.aggregated))

        if options is not None:
            self.aggregated_cipher_field = options.aggregated_cipher_field
            self.separated_cipher_map_field = options.separated_cipher_map_field
            self.separated_inline_field = options.separated_inline_field
            self.inline = options.separated_storage == STORAGE_INLINE
            self._separated = SeparatedCodec(options.separated_key, options.separated_cipher, random_source)
            self._aggregated = AggregatedCodec(options.aggregated_key, options.aggregated_authenticate, random_source)
        else:
            self.aggregated_cipher_field = AGGREGATED_CIPHER_FIELD
            self.separated_cipher_map_field = SEPARATED_CIPHER_MAP_FIELD
            self.separated_inline_field = SEPARATED_INLINE_FIELD
            self.inline = False
            self._separated = None
            self._aggregated = None

        if self.separated_fields and self._separated.deterministic:
            log.warning(
                f"schema {schema.name!r}: separated fields {list(self.separated_fields)} use rc4 without a nonce; "
                "equal values produce equal ciphertexts"
            )

    # ------------------------------------------------------------------
    # Reserved fields
    # ------------------------------------------------------------------
    @property
    def separated_holder(self) -> str:
        return self.separated_inline_field if self.inline else self.separated_cipher_map_field

    @property
    def cipher_fields(self) -> Tuple[str, ...]:
        fields = []
        if self.separated_fields:
            fields.append(self.separated_holder)
        if self.aggregated_fields:
            fields.append(self.aggregated_cipher_field)
        return tuple(fields)

    def widen_selection(self, fields: Iterable[str]) -> Set[str]:
        """
        Field set for a partial load. Encrypted fields share their ciphertext
        holders, so selecting any of them loads all of them with the holders.
        """
        selected = set(fields)
        if selected & self.classification.encrypted:
            selected |= self.classification.encrypted | set(self.cipher_fields)
        return selected

    def has_ciphertext(self, record: Record) -> bool:
        return any(
            name in record
            for name in (self.separated_cipher_map_field, self.separated_inline_field, self.aggregated_cipher_field)
        )

    # ------------------------------------------------------------------
    # Encrypt
    # ------------------------------------------------------------------
    async def encrypt(self, record: Record) -> None:
        """
        Replace every present encrypted field with ciphertext.

        Both codecs run concurrently and only stage their output; the record is
        touched only after both succeeded, so a failure leaves it unchanged.
        """
        if self.classification.is_empty:
            return
        if self.has_ciphertext(record):
            # leftover ciphertext from an unrestored load; keep values set since then
            self.decrypt(record, keep_present=True)

        separated, aggregated = await asyncio.gather(
            self._stage_separated(record),
            self._stage_aggregated(record),
        )
        self._commit_separated(record, separated)
        self._commit_aggregated(record, aggregated)
        log.debug(
            f"encrypted record={record.record_id} separated={sorted(separated)} "
            f"aggregated={sorted(aggregated[0]) if aggregated else []}"
        )

    async def _stage_separated(self, record: Record) -> Dict[str, bytes]:
        present = [f for f in self.separated_fields if f in record]
        if not present:
            return {}
        ciphertexts = await asyncio.gather(*(self._separated.encrypt(record[f]) for f in present))
        return dict(zip(present, ciphertexts))

    async def _stage_aggregated(self, record: Record) -> Optional[Tuple[Tuple[str, ...], bytes]]:
        obj = {f: record[f] for f in self.aggregated_fields if f in record}
        if not obj:
            return None
        blob = await self._aggregated.encrypt(obj)
        return tuple(obj), blob

    def _commit_separated(self, record: Record, staged: Dict[str, bytes]) -> None:
        if not staged:
            return
        if self.inline:
            marked = list(record.get(self.separated_inline_field) or [])
            for name, ct in staged.items():
                record[name] = b64e(ct)
                if name not in marked:
                    marked.append(name)
            record[self.separated_inline_field] = marked
            return
        cipher_map = dict(record.get(self.separated_cipher_map_field) or {})
        for name, ct in staged.items():
            cipher_map[name] = ct
            record.clear_field(name)
        record[self.separated_cipher_map_field] = cipher_map

    def _commit_aggregated(self, record: Record, staged) -> None:
        if not staged:
            return
        names, blob = staged
        for name in names:
            record.clear_field(name)
        record[self.aggregated_cipher_field] = blob

    # ------------------------------------------------------------------
    # Decrypt (synchronous)
    # ------------------------------------------------------------------
    def decrypt(self, record: Record, keep_present: bool = False) -> Record:
        """Restore plaintext and drop the ciphertext holders. No holders: no-op."""
        if not self.has_ciphertext(record):
            return record
        self.decrypt_separated(record, keep_present)
        self.decrypt_aggregated(record, keep_present)
        log.debug(f"decrypted record={record.record_id}")
        return record

    def decrypt_separated(self, record: Record, keep_present: bool = False) -> None:
        rid = record.record_id
        restored: Dict[str, Any] = {}

        if self.separated_cipher_map_field in record:
            cipher_map = record[self.separated_cipher_map_field] or {}
            for name, ct in cipher_map.items():
                restored[name] = self._require(self._separated, rid).decrypt(ct, field=name, record_id=rid)
            self._assign(record, restored, keep_present)
            record.clear_field(self.separated_cipher_map_field)

        if self.separated_inline_field in record:
            marked = record[self.separated_inline_field] or []
            inline = {name: self._require(self._separated, rid).decrypt(record[name], field=name, record_id=rid)
                      for name in marked if name in record}
            # inline fields always hold ciphertext while marked
            self._assign(record, inline, False)
            record.clear_field(self.separated_inline_field)

    def decrypt_aggregated(self, record: Record, keep_present: bool = False) -> None:
        if self.aggregated_cipher_field not in record:
            return
        blob = record[self.aggregated_cipher_field]
        if blob:
            rid = record.record_id
            obj = self._require(self._aggregated, rid).decrypt(blob, record_id=rid)
            self._assign(record, obj, keep_present)
        record.clear_field(self.aggregated_cipher_field)

    @staticmethod
    def _assign(record: Record, values: Dict[str, Any], keep_present: bool) -> None:
        for name, value in values.items():
            if keep_present and name in record:
                continue
            record[name] = value

    @staticmethod
    def _require(codec, record_id):
        if codec is None:
            raise DecodeError("record carries ciphertext but no keys are configured", record_id=record_id)
        return codec

    # ------------------------------------------------------------------
    # Nested records
    # ------------------------------------------------------------------
    def restore_nested(self, record: Record) -> None:
        """Decrypt every nested record reachable from ``record``'s declared fields."""
        self._decrypt_nested(record)

    def _decrypt_nested(self, record: Record) -> None:
        for spec in record.schema:
            if not is_walkable(spec) or spec.name not in record:
                continue
            value = record[spec.name]
            children = value if isinstance(value, list) else [value]
            for child in children:
                if isinstance(child, SupportsDecrypt):
                    child.decrypt_sync()
                    if isinstance(child, Record):
                        self._decrypt_nested(child)


# ----------------------------------------------------------------------
# Setup
# ----------------------------------------------------------------------
def plugin(schema: Schema, options: Union[CryptoOptions, Dict[str, Any], None],
           random_source: RandomSource = os.urandom) -> DocumentCryptoController:
    """Enable field encryption on ``schema``. Fails fast on bad keys or declarations."""
    if options is None:
        raise ConfigError("options with separated and aggregated keys are required")
    if not isinstance(options, CryptoOptions):
        options = CryptoOptions.from_dict(options)

    classification = classify(schema)
    reserved = {
        options.aggregated_cipher_field,
        options.separated_cipher_map_field,
        options.separated_inline_field,
    }
    clash = classification.encrypted & reserved
    if clash:
        raise ConfigError(f"encrypted fields clash with reserved ciphertext fields: {sorted(clash)}")

    controller = DocumentCryptoController(schema, options, classification, random_source)

    if controller.aggregated_fields and not schema.has(controller.aggregated_cipher_field):
        schema.add(FieldSpec(name=controller.aggregated_cipher_field, type="binary", reserved=True))
    if controller.separated_fields and not schema.has(controller.separated_holder):
        schema.add(FieldSpec(
            name=controller.separated_holder,
            type="array" if controller.inline else "mixed",
            reserved=True,
        ))

    _attach(schema, controller)
    log.info(
        f"schema {schema.name!r}: separated={list(controller.separated_fields)} "
        f"aggregated={list(controller.aggregated_fields)} "
        f"storage={options.separated_storage} cipher={options.separated_cipher}"
    )
    return controller


def encrypted_children(schema: Schema) -> DocumentCryptoController:
    """
    For a parent schema with no encrypted fields of its own whose nested
    records are encrypted: wires the hooks that restore those children.
    """
    if schema.crypto is not None:
        return schema.crypto
    controller = DocumentCryptoController(schema, None)
    _attach(schema, controller)
    return controller


def _attach(schema: Schema, controller: DocumentCryptoController) -> None:
    schema.crypto = controller
    schema.lifecycle = LifecycleAdapter(controller)

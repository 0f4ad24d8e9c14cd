"""
fieldcrypt_core.lifecycle
-------------------------
Hooks a document-persistence host calls around a record's lifecycle:

- on_hydrate       record built from stored data; decrypted before it is returned
- on_pre_persist   encrypt before the write (awaited)
- on_post_persist  restore plaintext in memory, nested records included
- on_post_validate restore nested records when validation failed
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Optional, TYPE_CHECKING

from .errors import SelectionError
from .logger import get_logger
from .record import NestedRecord, Record
from .schema import Schema

if TYPE_CHECKING:
    from .controller import DocumentCryptoController

log = get_logger("fieldcrypt.lifecycle")


class LifecycleAdapter:
    def __init__(self, controller: "DocumentCryptoController"):
        self.controller = controller
        self.schema = controller.schema

    def on_hydrate(self, raw_data: Dict[str, Any], is_nested: bool = False,
                   selected: Optional[Iterable[str]] = None) -> Record:
        """
        Build a record from stored data and decrypt it in place.

        Synchronous for top-level and nested records alike, so hosts that
        construct nested records inline get a usable result immediately.
        """
        record = build_record(self.schema, raw_data, is_nested=is_nested, selected=selected)
        self.controller.decrypt(record)
        return record

    async def on_pre_persist(self, record: Record) -> bool:
        """
        Encrypt when the record is new or its ciphertext was loaded. Errors abort
        the write, as does an encrypted field set on a record loaded without it.
        """
        if record.is_new or any(record.is_selected(f) for f in self.controller.cipher_fields):
            await self.controller.encrypt(record)
            return True
        stray = sorted(f for f in self.controller.classification.encrypted if f in record)
        if stray:
            raise SelectionError(
                f"record={record.record_id}: encrypted fields {stray} were set but their "
                "ciphertext fields were not loaded"
            )
        return True

    def on_post_persist(self, record: Record) -> None:
        self.controller.decrypt(record)
        # the host does not notify nested records after a write
        self.controller.restore_nested(record)

    def on_post_validate(self, record: Record) -> None:
        if record.errors:
            log.debug(f"validation failed for record={record.record_id}; restoring nested records")
            self.controller.restore_nested(record)


def hydrate(schema: Schema, raw_data: Dict[str, Any], is_nested: bool = False,
            selected: Optional[Iterable[str]] = None) -> Record:
    """Hydrate through the schema's adapter when it has one."""
    if schema.lifecycle is not None:
        return schema.lifecycle.on_hydrate(raw_data, is_nested=is_nested, selected=selected)
    return build_record(schema, raw_data, is_nested=is_nested, selected=selected)


def build_record(schema: Schema, raw_data: Dict[str, Any], is_nested: bool = False,
                 selected: Optional[Iterable[str]] = None) -> Record:
    data = {}
    for name, value in raw_data.items():
        spec = schema.field(name)
        if spec is not None and spec.is_nested:
            value = _hydrate_children(spec.schema, value)
        data[name] = value
    cls = NestedRecord if is_nested else Record
    return cls(schema, data, is_new=False, selected=selected)


def _hydrate_children(schema: Schema, value: Any) -> Any:
    if isinstance(value, list):
        return [_hydrate_children(schema, v) for v in value]
    if isinstance(value, dict):
        return hydrate(schema, value, is_nested=True)
    return value

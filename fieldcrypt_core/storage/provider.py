# fieldcrypt_core/storage/provider.py

from __future__ import annotations
from typing import Any, Dict, Iterable, Optional

from fieldcrypt_core.constants import ID_FIELD
from fieldcrypt_core.controller import encrypted_children
from fieldcrypt_core.errors import ValidationError
from fieldcrypt_core.logger import get_logger
from fieldcrypt_core.record import Record
from fieldcrypt_core.schema import Schema, is_walkable
from fieldcrypt_core.utils import new_id

log = get_logger("fieldcrypt.storage")


class RecordStore:
    """
    Reference persistence host for one schema.

    Drives the lifecycle hooks in the order a document database would:
    nested pre-persist, validate, post-validate, pre-persist, write,
    post-persist. Providers only implement the raw read/write primitives.
    """
    name: str = "base"

    def __init__(self, schema: Schema):
        self.schema = schema
        if schema.lifecycle is None:
            encrypted_children(schema)
        self.adapter = schema.lifecycle

    # --- provider primitives ---
    def _read(self, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def _write(self, record_id: str, doc: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _delete(self, record_id: str) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return

    # --- host lifecycle ---
    async def save(self, record: Record) -> Record:
        if record.schema is not self.schema:
            raise ValueError(f"record schema {record.schema.name!r} does not belong to this store")
        if record.get(ID_FIELD) is None:
            record[ID_FIELD] = new_id()
        rid = record.record_id

        try:
            await self._encrypt_nested(record)
        except Exception:
            self.adapter.controller.restore_nested(record)
            raise

        record.errors = self.schema.validate(record)
        self.adapter.on_post_validate(record)
        if record.errors:
            raise ValidationError(record.errors)

        try:
            await self.adapter.on_pre_persist(record)
        except Exception:
            self.adapter.controller.restore_nested(record)
            raise

        doc = record.to_raw()
        if not record.is_new and record.selected is not None:
            # partial load: keep the fields that were not selected
            stored = self._read(rid) or {}
            for name in record.selected - doc.keys():
                stored.pop(name, None)
            stored.update(doc)
            doc = stored
        self._write(rid, doc)
        record.is_new = False
        log.debug(f"[{self.name}] saved record={rid}")

        self.adapter.on_post_persist(record)
        return record

    def load(self, record_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Record]:
        raw = self._read(record_id)
        if raw is None:
            return None
        selected = None
        if fields is not None:
            selected = self.adapter.controller.widen_selection(fields) | {ID_FIELD}
            raw = {k: v for k, v in raw.items() if k in selected}
        return self.adapter.on_hydrate(raw, is_nested=False, selected=selected)

    def raw(self, record_id: str) -> Optional[Dict[str, Any]]:
        """The stored (encrypted) form of a record."""
        return self._read(record_id)

    def delete(self, record_id: str) -> bool:
        return self._delete(record_id)

    async def _encrypt_nested(self, record: Record) -> None:
        # nested records run their own pre-persist hook before the parent's
        for spec in record.schema:
            if not is_walkable(spec) or spec.name not in record:
                continue
            value = record[spec.name]
            for child in value if isinstance(value, list) else [value]:
                if not isinstance(child, Record):
                    continue
                await self._encrypt_nested(child)
                if child.schema.lifecycle is not None:
                    await child.schema.lifecycle.on_pre_persist(child)

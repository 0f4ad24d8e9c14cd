# fieldcrypt_core/record.py

from __future__ import annotations
from collections.abc import MutableMapping
from typing import Any, Dict, Iterable, Iterator, Optional, Protocol, runtime_checkable

from .constants import ID_FIELD
from .schema import Schema


@runtime_checkable
class SupportsDecrypt(Protocol):
    """Anything the nested-record walk can restore in place."""

    def decrypt_sync(self) -> Any: ...


class Record(MutableMapping):
    """
    A document: field name -> value, bound to its schema.

    Cleared fields are removed rather than set to None, so "absent" and
    "explicitly null" stay distinguishable across an encrypt/decrypt cycle.
    """

    def __init__(self, schema: Schema, data: Optional[Dict[str, Any]] = None,
                 is_new: bool = True, selected: Optional[Iterable[str]] = None):
        self.schema = schema
        self._data: Dict[str, Any] = dict(data or {})
        self.is_new = is_new
        self.selected = set(selected) if selected is not None else None
        self.errors: Dict[str, str] = {}

    # --- mapping protocol ---
    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    def clear_field(self, key: str) -> None:
        self._data.pop(key, None)

    @property
    def record_id(self) -> Optional[str]:
        rid = self._data.get(ID_FIELD)
        return str(rid) if rid is not None else None

    def is_selected(self, field: str) -> bool:
        return self.selected is None or field in self.selected

    def to_raw(self) -> Dict[str, Any]:
        """Plain dict form for storage; nested records are flattened recursively."""
        return {k: _raw_value(v) for k, v in self._data.items()}

    # --- crypto capability; a schema without a controller has no cipher fields ---
    async def encrypt(self) -> None:
        if self.schema.crypto is not None:
            await self.schema.crypto.encrypt(self)

    def decrypt_sync(self) -> "Record":
        if self.schema.crypto is not None:
            self.schema.crypto.decrypt(self)
        return self


class NestedRecord(Record):
    """A sub-record embedded in a parent's field tree."""


def _raw_value(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_raw()
    if isinstance(value, list):
        return [_raw_value(v) for v in value]
    return value

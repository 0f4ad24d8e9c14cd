from typing import Any, Dict, Optional
import copy

from fieldcrypt_core.schema import Schema
from fieldcrypt_core.storage.provider import RecordStore


class InMemoryRecordStore(RecordStore):
    name = "memory"

    def __init__(self, schema: Schema):
        super().__init__(schema)
        self.docs: Dict[str, Dict[str, Any]] = {}

    # stored docs are copied both ways so no in-memory record aliases them
    def _read(self, record_id: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(record_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _write(self, record_id: str, doc: Dict[str, Any]) -> None:
        self.docs[record_id] = copy.deepcopy(doc)

    def _delete(self, record_id: str) -> bool:
        return self.docs.pop(record_id, None) is not None

    def close(self):
        self.docs.clear()

from __future__ import annotations
from typing import Optional, Dict, Any
import sqlite3, os

from fieldcrypt_core.schema import Schema
from fieldcrypt_core.storage.provider import RecordStore
from fieldcrypt_core.utils import dump_document, load_document, now_ts


class SQLiteRecordStore(RecordStore):
    name = "sqlite"

    def __init__(self, schema: Schema, path="db/fieldcrypt.db"):
        super().__init__(schema)
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path, check_same_thread=False)
        self.collection = schema.name
        self._init()

    def execute(self, sql: str, params: tuple = None):
        if params:
            return self.db.execute(sql, params)
        return self.db.execute(sql)

    def fetch_one(self, sql: str, params: tuple = None):
        cur = self.execute(sql, params)
        row = cur.fetchone()
        if row is None:
            return None
        columns = [col[0] for col in cur.description]
        return {columns[i]: row[i] for i in range(len(columns))}

    def _init(self) -> None:
        self.db.execute("""CREATE TABLE IF NOT EXISTS records(
            collection TEXT NOT NULL,
            record_id TEXT NOT NULL,
            doc TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (collection, record_id)
        )""")
        self.db.commit()

    def _read(self, record_id: str) -> Optional[Dict[str, Any]]:
        row = self.fetch_one(
            "SELECT doc FROM records WHERE collection=? AND record_id=?",
            (self.collection, record_id),
        )
        if not row:
            return None
        return load_document(row["doc"])

    def _write(self, record_id: str, doc: Dict[str, Any]) -> None:
        self.db.execute(
            "INSERT INTO records(collection,record_id,doc,updated_at) VALUES(?,?,?,?) "
            "ON CONFLICT(collection, record_id) DO UPDATE SET doc=excluded.doc, updated_at=excluded.updated_at",
            (self.collection, record_id, dump_document(doc), now_ts()),
        )
        self.db.commit()

    def _delete(self, record_id: str) -> bool:
        cur = self.db.execute(
            "DELETE FROM records WHERE collection=? AND record_id=?",
            (self.collection, record_id),
        )
        self.db.commit()
        return cur.rowcount > 0

    def close(self):
        self.db.close()

"""
fieldcrypt_core.utils
---------------------
Lightweight helpers for base64 and canonical JSON serialization.
Every value that goes into a cipher passes through canonical_json() so the
plaintext form of a field is stable across runs.
"""

from __future__ import annotations
import base64, json, time, uuid
from collections.abc import Mapping
from typing import Any

BINARY_TAG = "$binary"


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)

def _default(obj: Any) -> Any:
    # records and other mapping types serialize as plain objects
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

def canonical_json(obj: Any) -> bytes:
    # Deterministic, minimal JSON for encryption
    return json.dumps(
        obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False, default=_default
    ).encode("utf-8")

def parse_json(data: bytes) -> Any:
    return json.loads(data.decode("utf-8"))

def to_bytes(value: Any) -> bytes:
    """Normalize a stored ciphertext (raw bytes or base64 text) to bytes."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return b64d(value)
    raise TypeError(f"unsupported ciphertext type: {type(value).__name__}")

# --------- storage form (bytes survive a JSON column) ----------
def dump_document(doc: Mapping[str, Any]) -> str:
    def _tag(obj: Any) -> Any:
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return {BINARY_TAG: b64e(bytes(obj))}
        return _default(obj)

    return json.dumps(doc, separators=(",", ":"), sort_keys=True, ensure_ascii=False, default=_tag)

def load_document(text: str) -> dict:
    def _untag(obj: dict) -> Any:
        if len(obj) == 1 and BINARY_TAG in obj:
            return b64d(obj[BINARY_TAG])
        return obj

    return json.loads(text, object_hook=_untag)

def new_id() -> str:
    return uuid.uuid4().hex

def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, second precision
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

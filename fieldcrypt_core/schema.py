"""
fieldcrypt_core.schema
----------------------
Static field metadata consumed by the classifier and the controller.

A Schema is declared once at setup. The crypto plugin later adds its reserved
ciphertext fields and attaches a controller + lifecycle adapter to it; field
specs themselves never change.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, TYPE_CHECKING

from .constants import ID_FIELD, VERSION_FIELD
from .errors import ConfigError

if TYPE_CHECKING:
    from .controller import DocumentCryptoController
    from .lifecycle import LifecycleAdapter


@dataclass(frozen=True)
class FieldSpec:
    name: str
    encrypt: Optional[str] = None     # None | "separated" | "aggregated"
    indexed: bool = False
    required: bool = False
    type: Optional[str] = None        # informational: "binary", "mixed", ...
    array: bool = False
    element: Optional["FieldSpec"] = None   # array element type
    schema: Optional["Schema"] = None       # sub-schema for nested records
    reserved: bool = False

    @property
    def effective_encrypt(self) -> Optional[str]:
        # element-level annotation wins over the container's
        if self.element is not None and self.element.encrypt:
            return self.element.encrypt
        return self.encrypt

    @property
    def is_nested(self) -> bool:
        return self.schema is not None


class Schema:
    def __init__(self, fields: Optional[List[FieldSpec]] = None, name: str = "record"):
        self.name = name
        self.fields: Dict[str, FieldSpec] = {}
        self.crypto: Optional["DocumentCryptoController"] = None
        self.lifecycle: Optional["LifecycleAdapter"] = None
        for f in fields or []:
            self.add(f)

    def add(self, spec: FieldSpec) -> None:
        self.fields[spec.name] = spec

    def has(self, name: str) -> bool:
        return name in self.fields

    def field(self, name: str) -> Optional[FieldSpec]:
        return self.fields.get(name)

    @property
    def paths(self) -> List[str]:
        return list(self.fields)

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self.fields.values())

    def __repr__(self) -> str:
        return f"Schema(name={self.name!r}, fields={self.paths!r})"

    def validate(self, record) -> Dict[str, str]:
        """Required-field check only, over loaded fields; returns field -> message."""
        selected = getattr(record, "selected", None)
        errors = {}
        for spec in self:
            if selected is not None and spec.name not in selected:
                continue
            if spec.required and record.get(spec.name) is None:
                errors[spec.name] = f"Path `{spec.name}` is required."
        return errors

    @classmethod
    def from_dict(cls, declaration: Dict[str, Any], name: str = "record") -> "Schema":
        """
        Build a schema from a declaration such as::

            {
                "email": {"indexed": True},
                "ssn": {"encrypt": "separated"},
                "tags": {"type": [{"encrypt": "aggregated"}]},
                "addresses": [address_schema],
            }
        """
        return cls([_parse_field(fname, decl) for fname, decl in declaration.items()], name=name)


def _parse_field(fname: str, decl: Any) -> FieldSpec:
    if isinstance(decl, Schema):
        return FieldSpec(name=fname, schema=decl)
    if isinstance(decl, list):
        return _parse_array(fname, decl, {})
    if isinstance(decl, str):
        return FieldSpec(name=fname, type=decl)
    if not isinstance(decl, dict):
        raise TypeError(f"invalid declaration for field {fname!r}: {decl!r}")
    nested = sorted(k for k, v in decl.items() if k != "type" and _declares_encrypt(v))
    if nested:
        raise ConfigError(
            f"field {fname!r}: sub-fields {nested} declare encryption inside a plain object; "
            "declare them on a nested Schema instead"
        )

    ftype = decl.get("type")
    if isinstance(ftype, list):
        return _parse_array(fname, ftype, decl)
    if isinstance(ftype, Schema):
        return FieldSpec(
            name=fname,
            schema=ftype,
            required=bool(decl.get("required", False)),
        )
    return FieldSpec(
        name=fname,
        encrypt=decl.get("encrypt"),
        indexed=bool(decl.get("indexed", decl.get("index", False))),
        required=bool(decl.get("required", False)),
        type=ftype,
    )


def _parse_array(fname: str, items: list, decl: Dict[str, Any]) -> FieldSpec:
    inner = items[0] if items else None
    common = dict(
        name=fname,
        array=True,
        encrypt=decl.get("encrypt"),
        indexed=bool(decl.get("indexed", decl.get("index", False))),
        required=bool(decl.get("required", False)),
    )
    if isinstance(inner, Schema):
        return FieldSpec(schema=inner, **common)
    if isinstance(inner, dict):
        element = FieldSpec(
            name=fname,
            encrypt=inner.get("encrypt"),
            type=inner.get("type") if isinstance(inner.get("type"), str) else None,
        )
        return FieldSpec(element=element, **common)
    if isinstance(inner, str):
        return FieldSpec(element=FieldSpec(name=fname, type=inner), **common)
    return FieldSpec(**common)


def _declares_encrypt(value: Any) -> bool:
    if isinstance(value, dict):
        return "encrypt" in value or any(_declares_encrypt(v) for v in value.values())
    if isinstance(value, list):
        return any(_declares_encrypt(v) for v in value)
    return False


def is_walkable(spec: FieldSpec) -> bool:
    """Fields the nested-record walk may descend into."""
    return spec.name not in (ID_FIELD, VERSION_FIELD) and not spec.reserved

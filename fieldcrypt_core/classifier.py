# fieldcrypt_core/classifier.py

from __future__ import annotations
from dataclasses import dataclass
from typing import FrozenSet

from .constants import AGGREGATED, ID_FIELD, MODES, SEPARATED, VERSION_FIELD
from .errors import ConfigError
from .schema import Schema


@dataclass(frozen=True)
class Classification:
    separated: FrozenSet[str] = frozenset()
    aggregated: FrozenSet[str] = frozenset()
    plaintext: FrozenSet[str] = frozenset()

    @property
    def encrypted(self) -> FrozenSet[str]:
        return self.separated | self.aggregated

    @property
    def is_empty(self) -> bool:
        return not self.separated and not self.aggregated


def classify(schema: Schema) -> Classification:
    """
    Partition the declared fields of ``schema`` into separated, aggregated and
    plaintext sets.

    Raises ConfigError for an indexed field that declares an encryption mode,
    for an unknown mode, or for an identity/reserved field that declares one.
    """
    separated, aggregated, plaintext = set(), set(), set()

    for spec in schema:
        mode = spec.effective_encrypt
        if not mode:
            plaintext.add(spec.name)
            continue
        if mode not in MODES:
            raise ConfigError(f"field {spec.name!r}: unknown encrypt mode {mode!r}")
        if spec.reserved or spec.name in (ID_FIELD, VERSION_FIELD):
            raise ConfigError(f"field {spec.name!r} is reserved and cannot be encrypted")
        if spec.indexed:
            raise ConfigError(
                f"field {spec.name!r} is indexed; encrypting it would break queries on the index"
            )
        if mode == SEPARATED:
            separated.add(spec.name)
        elif mode == AGGREGATED:
            aggregated.add(spec.name)

    return Classification(
        separated=frozenset(separated),
        aggregated=frozenset(aggregated),
        plaintext=frozenset(plaintext),
    )

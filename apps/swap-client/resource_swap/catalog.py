"""Mintable resources.

The table is fixed configuration: names are validated against it when
arguments are parsed, before any contract call is prepared.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

METADATA_CID = "bafybeidxmkohxp4mdrcg7iv6z37fxxp75zl5fg6zuqgutv6jjmozd2lztq"
DEFAULT_CATEGORY = "animal"


@dataclass(frozen=True)
class MintRequest:
    name: str
    category: str
    tier: int
    value: int
    metadata_uri: str

    def as_args(self) -> tuple[str, str, int, int, str]:
        return (self.name, self.category, self.tier, self.value, self.metadata_uri)

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "tier": self.tier,
            "value": self.value,
            "metadataUri": self.metadata_uri,
        }


def _animal(name: str, tier: int, value: int) -> MintRequest:
    return MintRequest(name, DEFAULT_CATEGORY, tier, value, f"ipfs://{METADATA_CID}/{name}.json")


CATALOG: Mapping[str, MintRequest] = MappingProxyType(
    {
        entry.name: entry
        for entry in (
            _animal("Singe", 1, 900),
            _animal("Lapin", 2, 700),
            _animal("Perroquet", 2, 650),
            _animal("Crocodile", 3, 500),
            _animal("Cerf", 3, 450),
            _animal("Hibou", 3, 420),
            _animal("Suricate", 4, 300),
            _animal("Mouton", 4, 250),
        )
    }
)

DEFAULT_RESOURCE = "Singe"

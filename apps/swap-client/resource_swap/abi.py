"""ABI surface of the ResourceSwap contract.

Selectors and topics are keccak-256 digests of canonical signatures; values are
encoded and decoded with eth_abi. The built-in fragment covers every method,
error and event the client touches. A Hardhat artifact replaces it when the
deployed contract's exact ABI is available.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Iterable

from Crypto.Hash import keccak
from eth_abi import decode, encode

ERROR_STRING_SELECTOR = "0x08c379a0"


class AbiError(Exception):
    """ABI definition is unavailable or does not declare the requested entry."""


def keccak256(data: bytes) -> bytes:
    digest = keccak.new(digest_bits=256)
    digest.update(data)
    return digest.digest()


def _canonical_type(param: dict[str, Any]) -> str:
    kind = str(param.get("type", ""))
    if kind.startswith("tuple"):
        inner = ",".join(_canonical_type(component) for component in param.get("components", []))
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def _types(params: Iterable[dict[str, Any]]) -> list[str]:
    return [_canonical_type(param) for param in params]


def signature(entry: dict[str, Any]) -> str:
    return f"{entry['name']}({','.join(_types(entry.get('inputs', [])))})"


def selector(entry: dict[str, Any]) -> str:
    return "0x" + keccak256(signature(entry).encode("utf-8"))[:4].hex()


def topic(entry: dict[str, Any]) -> str:
    return "0x" + keccak256(signature(entry).encode("utf-8")).hex()


def _hex_bytes(value: str) -> bytes:
    raw = value[2:] if value[:2] in {"0x", "0X"} else value
    return bytes.fromhex(raw)


def _prepare_arg(kind: str, value: Any) -> Any:
    # eth_abi rejects mixed-case addresses with a bad checksum; the node does not care.
    if kind == "address" and isinstance(value, str):
        return value.lower()
    return value


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[tuple[str, str]], mutability: str = "view") -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


def _err(name: str, inputs: list[tuple[str, str]]) -> dict[str, Any]:
    return {"type": "error", "name": name, "inputs": [{"name": n, "type": t} for n, t in inputs]}


DEFAULT_ABI: list[dict[str, Any]] = [
    _fn("ownerOf", [("tokenId", "uint256")], [("", "address")]),
    _fn("getApproved", [("tokenId", "uint256")], [("", "address")]),
    _fn("isApprovedForAll", [("owner", "address"), ("operator", "address")], [("", "bool")]),
    _fn("tokenURI", [("tokenId", "uint256")], [("", "string")]),
    _fn(
        "offers",
        [("", "uint256")],
        [("offerer", "address"), ("offeredTokenId", "uint256"), ("requestedTokenId", "uint256"), ("active", "bool")],
    ),
    _fn("lastActionAt", [("", "address")], [("", "uint256")]),
    _fn("lockedUntil", [("", "address")], [("", "uint256")]),
    _fn("COOLDOWN", [], [("", "uint256")]),
    _fn("LOCK_DURATION", [], [("", "uint256")]),
    _fn("approve", [("to", "address"), ("tokenId", "uint256")], [], "nonpayable"),
    _fn("cancelOffer", [("offerId", "uint256")], [], "nonpayable"),
    _fn(
        "mintResource",
        [
            ("name", "string"),
            ("resourceType", "string"),
            ("tier", "uint256"),
            ("value", "uint256"),
            ("tokenURI", "string"),
        ],
        [("", "uint256")],
        "nonpayable",
    ),
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
        ],
    },
    {
        "type": "event",
        "name": "Approval",
        "anonymous": False,
        "inputs": [
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "approved", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
        ],
    },
    # OpenZeppelin ERC-721 custom errors.
    _err("ERC721InvalidOwner", [("owner", "address")]),
    _err("ERC721NonexistentToken", [("tokenId", "uint256")]),
    _err("ERC721IncorrectOwner", [("sender", "address"), ("tokenId", "uint256"), ("owner", "address")]),
    _err("ERC721InvalidSender", [("sender", "address")]),
    _err("ERC721InvalidReceiver", [("receiver", "address")]),
    _err("ERC721InsufficientApproval", [("operator", "address"), ("tokenId", "uint256")]),
    _err("ERC721InvalidApprover", [("approver", "address")]),
    _err("ERC721InvalidOperator", [("operator", "address")]),
    _err("Panic", [("code", "uint256")]),
]


class ContractAbi:
    def __init__(self, entries: list[dict[str, Any]]):
        self.entries = entries
        self._functions: dict[str, dict[str, Any]] = {}
        self._events: dict[str, dict[str, Any]] = {}
        self._errors: dict[str, dict[str, Any]] = {}
        for entry in entries:
            kind = entry.get("type")
            name = entry.get("name")
            if not isinstance(name, str):
                continue
            # Overloads keep the first declaration.
            if kind == "function":
                self._functions.setdefault(name, entry)
            elif kind == "event":
                self._events.setdefault(name, entry)
            elif kind == "error":
                self._errors.setdefault(selector(entry), entry)

    @classmethod
    def from_artifact(cls, path: pathlib.Path) -> "ContractAbi":
        if not path.exists():
            raise AbiError(f"ABI artifact not found at '{path}'.")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except Exception as exc:
            raise AbiError(f"Invalid JSON in ABI artifact '{path}': {exc}") from exc
        # Hardhat artifacts wrap the ABI; a bare ABI list is accepted too.
        entries = payload.get("abi") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise AbiError(f"ABI artifact '{path}' has no abi array.")
        return cls([entry for entry in entries if isinstance(entry, dict)])

    def function(self, name: str) -> dict[str, Any]:
        entry = self._functions.get(name)
        if entry is None:
            raise AbiError(f"ABI does not declare function '{name}'.")
        return entry

    def event(self, name: str) -> dict[str, Any]:
        entry = self._events.get(name)
        if entry is None:
            raise AbiError(f"ABI does not declare event '{name}'.")
        return entry

    def error_for_selector(self, sel: str) -> dict[str, Any] | None:
        return self._errors.get(sel.lower())

    def encode_call(self, name: str, args: Iterable[Any]) -> str:
        entry = self.function(name)
        types = _types(entry.get("inputs", []))
        raw_args = list(args)
        if len(raw_args) != len(types):
            raise AbiError(f"{signature(entry)} expects {len(types)} arguments, got {len(raw_args)}.")
        values = [_prepare_arg(kind, value) for kind, value in zip(types, raw_args)]
        return selector(entry) + encode(types, values).hex()

    def decode_output(self, name: str, raw: str) -> tuple[Any, ...]:
        entry = self.function(name)
        return tuple(decode(_types(entry.get("outputs", [])), _hex_bytes(raw)))

    def decode_output_named(self, name: str, raw: str) -> dict[str, Any]:
        outputs = self.function(name).get("outputs", [])
        values = self.decode_output(name, raw)
        return {(param.get("name") or str(index)): value for index, (param, value) in enumerate(zip(outputs, values))}

    def decode_error(self, data: str) -> tuple[str, list[Any]] | None:
        """Return (name, args) when the payload's selector is a declared error."""
        if len(data) < 10:
            return None
        entry = self.error_for_selector(data[:10])
        if entry is None:
            return None
        values = decode(_types(entry.get("inputs", [])), _hex_bytes(data[10:]))
        return str(entry["name"]), list(values)

    def decode_log(self, name: str, log: dict[str, Any]) -> dict[str, Any] | None:
        """Decode a receipt log as event `name`, or None when it has another shape."""
        entry = self.event(name)
        topics = [str(value).lower() for value in (log.get("topics") or [])]
        inputs = entry.get("inputs", [])
        indexed = [param for param in inputs if param.get("indexed")]
        plain = [param for param in inputs if not param.get("indexed")]
        if not topics or topics[0] != topic(entry) or len(topics) != len(indexed) + 1:
            return None

        decoded: dict[str, Any] = {}
        for param, raw_topic in zip(indexed, topics[1:]):
            kind = _canonical_type(param)
            if kind in {"string", "bytes"} or kind.startswith("(") or kind.endswith("]"):
                # Dynamic indexed values are stored as their hash.
                decoded[param["name"]] = raw_topic
            else:
                decoded[param["name"]] = decode([kind], _hex_bytes(raw_topic))[0]
        if plain:
            values = decode(_types(plain), _hex_bytes(str(log.get("data") or "0x")))
            for param, value in zip(plain, values):
                decoded[param["name"]] = value
        return decoded


def default_abi() -> ContractAbi:
    return ContractAbi(DEFAULT_ABI)


def load_abi(path: str | None) -> ContractAbi:
    if not path:
        return default_abi()
    return ContractAbi.from_artifact(pathlib.Path(path).expanduser())

from __future__ import annotations

import json
import os
import pathlib
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from Crypto.Hash import keccak
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

if TYPE_CHECKING:
    from .rpc import RpcClient

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_DEPLOYMENT_FILE = pathlib.Path("deployments") / "localhost.json"


class ConfigError(Exception):
    """Local configuration is missing or invalid."""


def env_str(name: str, default: str | None = None) -> str | None:
    raw = (os.environ.get(name) or "").strip()
    return raw or default


def _env_uint(name: str, default: int, minimum: int) -> int:
    raw = env_str(name)
    if raw is None:
        return default
    if not re.fullmatch(r"[0-9]+", raw):
        raise ConfigError(f"{name} must be an integer.")
    value = int(raw)
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}.")
    return value


def rpc_timeout_sec() -> int:
    return _env_uint("RESOURCE_SWAP_RPC_TIMEOUT_SEC", 20, 1)


def cast_send_timeout_sec() -> int:
    return _env_uint("RESOURCE_SWAP_CAST_SEND_TIMEOUT_SEC", 30, 1)


def cast_receipt_timeout_sec() -> int:
    return _env_uint("RESOURCE_SWAP_CAST_RECEIPT_TIMEOUT_SEC", 90, 1)


def account_index(value: Any = None) -> int:
    if value is None:
        return _env_uint("RESOURCE_SWAP_ACCOUNT", 0, 0)
    raw = str(value).strip()
    if not re.fullmatch(r"[0-9]+", raw):
        raise ConfigError(f"Invalid account index: {value}")
    return int(raw)


def is_hex_address(value: str) -> bool:
    return bool(re.fullmatch(r"0x[a-fA-F0-9]{40}", value))


def same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


@dataclass(frozen=True)
class Deployment:
    address: str
    chain_id: str | None
    deployed_at: str | None
    path: pathlib.Path

    def to_payload(self) -> dict[str, Any]:
        return {"address": self.address, "chainId": self.chain_id, "deployedAt": self.deployed_at, "file": str(self.path)}


def deployment_path(value: str | None = None) -> pathlib.Path:
    raw = value or env_str("RESOURCE_SWAP_DEPLOYMENT")
    return pathlib.Path(raw).expanduser() if raw else pathlib.Path.cwd() / DEFAULT_DEPLOYMENT_FILE


def load_deployment(path: pathlib.Path) -> Deployment:
    if not path.exists():
        raise ConfigError(f"Deployment record not found at '{path}'. Deploy the contract first or pass --contract.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Invalid JSON in '{path}': {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Deployment record '{path}' must be a JSON object.")
    address = payload.get("address")
    if not isinstance(address, str) or not is_hex_address(address):
        raise ConfigError(f"Deployment record '{path}' has no valid address.")
    chain_id = payload.get("chainId")
    deployed_at = payload.get("deployedAt")
    return Deployment(
        address=address,
        chain_id=str(chain_id) if chain_id is not None else None,
        deployed_at=str(deployed_at) if deployed_at is not None else None,
        path=path,
    )


def resolve_contract_address(explicit: str | None, deployment_file: str | None) -> str:
    address = explicit or env_str("RESOURCE_SWAP_CONTRACT")
    if address:
        if not is_hex_address(address):
            raise ConfigError(f"Invalid contract address: {address}")
        return address
    return load_deployment(deployment_path(deployment_file)).address


def normalize_private_key_hex(value: str) -> str | None:
    stripped = value.strip()
    if stripped.startswith("0x"):
        stripped = stripped[2:]
    if re.fullmatch(r"[a-fA-F0-9]{64}", stripped):
        return stripped.lower()
    return None


def derive_address(private_key_hex: str) -> str:
    private_value = int.from_bytes(bytes.fromhex(private_key_hex), byteorder="big")
    # cryptography validates private key range for secp256k1.
    private_key = ec.derive_private_key(private_value, ec.SECP256K1())
    public_key_bytes = private_key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    digest = keccak.new(digest_bits=256)
    digest.update(public_key_bytes[1:])
    return "0x" + digest.digest()[-20:].hex()


@dataclass(frozen=True)
class Signer:
    address: str
    index: int | None = None
    private_key_hex: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"address": self.address, "index": self.index, "mode": "private_key" if self.private_key_hex else "node"}


def resolve_signer(rpc: "RpcClient", index: int) -> Signer:
    raw_key = env_str("RESOURCE_SWAP_PRIVATE_KEY")
    if raw_key:
        private_key_hex = normalize_private_key_hex(raw_key)
        if private_key_hex is None:
            raise ConfigError("RESOURCE_SWAP_PRIVATE_KEY must be a 32-byte hex string.")
        try:
            address = derive_address(private_key_hex)
        except ValueError as exc:
            raise ConfigError(f"RESOURCE_SWAP_PRIVATE_KEY is not a valid secp256k1 key: {exc}") from exc
        return Signer(address=address, private_key_hex=private_key_hex)

    accounts = rpc.accounts()
    if index >= len(accounts):
        raise ConfigError(f"Invalid account index: {index} (node exposes {len(accounts)} accounts).")
    return Signer(address=accounts[index], index=index)

"""Readable diagnoses for failed remote calls.

Transports wrap the node's revert payload at different depths, so the payload is
located by walking REVERT_DATA_PATHS in order. The payload then goes through
PAYLOAD_DECODERS, and the first decoder that yields a string wins. Without a
decodable payload the error's own message fields are used. decode_error never
raises.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable

from eth_abi import decode

from .abi import ERROR_STRING_SELECTOR, ContractAbi, default_abi

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"

REVERT_DATA_PATHS: tuple[tuple[str, ...], ...] = (
    ("data",),
    ("error", "data"),
    ("error", "data", "data"),
    ("info", "error", "data"),
    ("info", "data"),
    ("cause", "data"),
)

MESSAGE_FIELDS: tuple[str, ...] = ("shortMessage", "reason", "message")


def _field(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _root(err: Any) -> Any:
    payload = getattr(err, "payload", None)
    return payload if isinstance(payload, Mapping) else err


def _probe(root: Any, path: tuple[str, ...]) -> Any:
    value = root
    for key in path:
        value = _field(value, key)
        if value is None:
            return None
    return value


def _is_hex_payload(value: Any) -> bool:
    return isinstance(value, str) and value[:2] in {"0x", "0X"} and len(value) > 2


def extract_revert_data(err: Any) -> str | None:
    root = _root(err)
    for path in REVERT_DATA_PATHS:
        try:
            value = _probe(root, path)
        except Exception:
            continue
        if _is_hex_payload(value):
            return value
    return None


def _render_arg(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_render_arg(item) for item in value) + "]"
    return str(value)


def _decode_custom_error(data: str, abi: ContractAbi) -> str | None:
    parsed = abi.decode_error(data)
    if parsed is None:
        return None
    name, args = parsed
    return f"Revert: {name}({', '.join(_render_arg(arg) for arg in args)})"


def _decode_error_string(data: str, abi: ContractAbi) -> str | None:
    if data[:10].lower() != ERROR_STRING_SELECTOR:
        return None
    (reason,) = decode(["string"], bytes.fromhex(data[10:]))
    return f"Revert: {reason}"


PAYLOAD_DECODERS: tuple[Callable[[str, ContractAbi], str | None], ...] = (
    _decode_custom_error,
    _decode_error_string,
)


def decode_revert_data(data: str, abi: ContractAbi | None = None) -> str | None:
    contract_abi = abi or default_abi()
    for decoder in PAYLOAD_DECODERS:
        try:
            result = decoder(data, contract_abi)
        except Exception as exc:
            logger.debug("%s could not decode %s: %s", decoder.__name__, data[:10], exc)
            continue
        if result:
            return result
    return None


def _message_fallback(err: Any) -> str | None:
    roots = [_root(err)]
    if roots[0] is not err:
        roots.append(err)
    for field in MESSAGE_FIELDS:
        for root in roots:
            try:
                value = _field(root, field)
            except Exception:
                continue
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(err, BaseException) and str(err).strip():
        return str(err).strip()
    return None


def decode_error(err: Any, abi: ContractAbi | None = None) -> str:
    """Best-effort human-readable cause of a failed call."""
    try:
        data = extract_revert_data(err)
        if data is not None:
            decoded = decode_revert_data(data, abi)
            if decoded:
                return decoded
        return _message_fallback(err) or UNKNOWN_ERROR
    except Exception:
        return UNKNOWN_ERROR

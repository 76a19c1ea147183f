"""Ledger node transport.

Reads, signer listing and node-signed sends go over JSON-RPC/HTTP. Private-key
sends and receipt waits go through Foundry's `cast`. Both paths raise
RemoteError, but they wrap the node's failure differently: JSON-RPC keeps the
node's error object under `error`, while `cast` only leaves stderr text.
"""

from __future__ import annotations

import http.client
import itertools
import json
import logging
import os
import pathlib
import re
import shutil
import subprocess
import urllib.error
import urllib.request
from typing import Any

logger = logging.getLogger(__name__)

USER_AGENT = "resource-swap-client/1.0"


class RemoteError(Exception):
    """A remote call or transaction failed."""

    def __init__(self, message: str, payload: dict[str, Any] | None = None, tx_hash: str | None = None):
        super().__init__(message)
        self.payload: dict[str, Any] = dict(payload or {})
        self.payload.setdefault("message", message)
        self.tx_hash = tx_hash


class MissingDependencyError(Exception):
    """A required local binary is not installed."""


def parse_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Unable to parse quantity: {value!r}")
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    if re.fullmatch(r"0[xX][a-fA-F0-9]+", raw):
        return int(raw, 16)
    if re.fullmatch(r"[0-9]+", raw):
        return int(raw)
    raise ValueError(f"Unable to parse quantity: {value!r}")


class RpcClient:
    def __init__(self, url: str, timeout_sec: int = 20):
        self.url = url
        self.timeout_sec = timeout_sec
        self._ids = itertools.count(1)

    def request(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        headers = {"Accept": "application/json", "Content-Type": "application/json", "User-Agent": USER_AGENT}
        request = urllib.request.Request(
            url=self.url, data=json.dumps(body).encode("utf-8"), headers=headers, method="POST"
        )
        logger.debug("rpc %s %s", method, params)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_sec) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            raw = exc.read().decode("utf-8") if exc.fp else ""
            if not raw:
                raise RemoteError(f"RPC {method} failed: HTTP {exc.code}", {"cause": {"status": exc.code}}) from exc
        except urllib.error.URLError as exc:
            raise RemoteError(
                f"RPC {method} failed: {exc.reason}", {"cause": {"reason": str(exc.reason)}}
            ) from exc
        except TimeoutError as exc:
            raise RemoteError(f"RPC {method} timed out after {self.timeout_sec}s.", {"cause": {"timeoutSec": self.timeout_sec}}) from exc
        except (http.client.HTTPException, OSError) as exc:
            # Raised while reading the response, e.g. the node dropped the connection.
            raise RemoteError(f"RPC {method} failed: {str(exc) or type(exc).__name__}", {"cause": {"reason": repr(exc)}}) from exc

        try:
            parsed = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise RemoteError(f"RPC {method} returned invalid JSON.", {"cause": {"body": raw[:200]}}) from exc
        if not isinstance(parsed, dict):
            raise RemoteError(f"RPC {method} returned non-object JSON payload.")

        error = parsed.get("error")
        if error is not None:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RemoteError(
                f"RPC {method} failed: {message}",
                {"error": error, "shortMessage": message},
            )
        return parsed.get("result")

    def call(self, to: str, data: str, sender: str | None = None) -> str:
        tx: dict[str, str] = {"to": to, "data": data}
        if sender:
            tx["from"] = sender
        result = self.request("eth_call", [tx, "latest"])
        if not isinstance(result, str):
            raise RemoteError("eth_call returned a non-hex result.")
        return result

    def latest_block(self) -> dict[str, Any]:
        block = self.request("eth_getBlockByNumber", ["latest", False])
        if not isinstance(block, dict):
            raise RemoteError("Latest block is unavailable.")
        return block

    def block_timestamp(self) -> int:
        return parse_quantity(self.latest_block().get("timestamp"))

    def accounts(self) -> list[str]:
        result = self.request("eth_accounts", [])
        if not isinstance(result, list):
            raise RemoteError("eth_accounts returned a non-list result.")
        return [str(entry) for entry in result]

    def chain_id(self) -> int:
        return parse_quantity(self.request("eth_chainId", []))

    def send_transaction(self, tx: dict[str, str]) -> str:
        result = self.request("eth_sendTransaction", [tx])
        if not isinstance(result, str) or not re.fullmatch(r"0x[a-fA-F0-9]{64}", result):
            raise RemoteError("eth_sendTransaction did not return a transaction hash.")
        return result


def find_cast_bin() -> str | None:
    # Foundry installs to ~/.foundry/bin, which is often missing from PATH.
    candidates: list[str] = []
    explicit = (os.environ.get("RESOURCE_SWAP_CAST_BIN") or "").strip()
    if explicit:
        candidates.append(explicit)

    foundry_bin = (os.environ.get("FOUNDRY_BIN") or "").strip()
    if foundry_bin:
        candidates.append(str(pathlib.Path(foundry_bin) / "cast"))

    which_cast = shutil.which("cast")
    if which_cast:
        candidates.append(which_cast)

    candidates.append(str(pathlib.Path.home() / ".foundry" / "bin" / "cast"))

    for entry in candidates:
        path = pathlib.Path(entry).expanduser()
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)
    return None


def require_cast_bin() -> str:
    cast_bin = find_cast_bin()
    if not cast_bin:
        raise MissingDependencyError("Missing dependency: cast.")
    return cast_bin


def _cast_failure(proc: subprocess.CompletedProcess[str], fallback: str) -> RemoteError:
    stderr = (proc.stderr or "").strip()
    stdout = (proc.stdout or "").strip()
    text = stderr or stdout or fallback
    payload: dict[str, Any] = {"shortMessage": text.splitlines()[0].removeprefix("Error: ").strip()}
    # cast prints the revert payload inline, e.g. `execution reverted, data: "0x08c3..."`.
    match = re.search(r"data:\s*\"?(0x[a-fA-F0-9]+)", text)
    if match:
        payload["data"] = match.group(1)
    return RemoteError(text, payload)


def run_cast(cmd: list[str], *, timeout_sec: int, kind: str) -> subprocess.CompletedProcess[str]:
    redacted = ["<redacted>" if index > 0 and cmd[index - 1] == "--private-key" else part for index, part in enumerate(cmd)]
    logger.debug("cast %s: %s", kind, " ".join(redacted))
    try:
        return subprocess.run(cmd, text=True, capture_output=True, timeout=timeout_sec)
    except subprocess.TimeoutExpired as exc:
        raise RemoteError(
            f"Timed out after {timeout_sec}s running cast {kind}.",
            {"cause": {"kind": kind, "timeoutSec": timeout_sec}},
        ) from exc


def extract_tx_hash(output: str) -> str:
    trimmed = (output or "").strip()
    if not trimmed:
        raise RemoteError("cast send returned empty output.")
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        parsed = None

    # `cast send --async --json` prints the hash as a JSON string.
    if isinstance(parsed, str) and re.fullmatch(r"0x[a-fA-F0-9]{64}", parsed):
        return parsed

    match = re.search(r"0x[a-fA-F0-9]{64}", trimmed)
    if match:
        return match.group(0)
    raise RemoteError("cast send output did not include a transaction hash.")


def cast_send(
    cast_bin: str,
    rpc_url: str,
    *,
    private_key_hex: str,
    sender: str,
    to: str,
    data: str,
    timeout_sec: int,
) -> str:
    proc = run_cast(
        [
            cast_bin,
            "send",
            "--async",
            "--json",
            "--rpc-url",
            rpc_url,
            "--private-key",
            private_key_hex,
            "--from",
            sender,
            to,
            data,
        ],
        timeout_sec=timeout_sec,
        kind="send",
    )
    if proc.returncode != 0:
        raise _cast_failure(proc, "cast send failed.")
    return extract_tx_hash(proc.stdout)


def cast_receipt(cast_bin: str, rpc_url: str, tx_hash: str, *, timeout_sec: int) -> dict[str, Any]:
    proc = run_cast(
        [cast_bin, "receipt", "--json", "--rpc-url", rpc_url, tx_hash],
        timeout_sec=timeout_sec,
        kind="receipt",
    )
    if proc.returncode != 0:
        raise _cast_failure(proc, "cast receipt failed.")
    try:
        receipt = json.loads((proc.stdout or "{}").strip() or "{}")
    except json.JSONDecodeError as exc:
        raise RemoteError("cast receipt returned invalid JSON.", tx_hash=tx_hash) from exc
    if not isinstance(receipt, dict):
        raise RemoteError("cast receipt returned non-object JSON payload.", tx_hash=tx_hash)
    return receipt

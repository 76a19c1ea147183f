from __future__ import annotations

import logging
from typing import Any, Iterator

from eth_abi.exceptions import DecodingError

from .abi import ContractAbi
from .config import Signer, same_address
from .contract import PreparedCall
from .rpc import RemoteError, RpcClient, cast_receipt, cast_send, parse_quantity, require_cast_bin

logger = logging.getLogger(__name__)


class EventNotFoundError(Exception):
    """A confirmed receipt did not carry the expected event."""

    def __init__(self, event: str, tx_hash: str | None):
        super().__init__(f"Transaction {tx_hash or '<unknown>'} confirmed but emitted no {event} event.")
        self.event = event
        self.tx_hash = tx_hash


def receipt_succeeded(receipt: dict[str, Any]) -> bool:
    return str(receipt.get("status", "0x0")).lower() in {"0x1", "1"}


class TransactionExecutor:
    """Submits prepared calls and waits for their receipts.

    Failures propagate as RemoteError; decoding them is the caller's job.
    """

    def __init__(
        self,
        rpc: RpcClient,
        *,
        cast_bin: str | None = None,
        send_timeout_sec: int = 30,
        receipt_timeout_sec: int = 90,
    ):
        self.rpc = rpc
        self._cast_bin = cast_bin
        self.send_timeout_sec = send_timeout_sec
        self.receipt_timeout_sec = receipt_timeout_sec

    @property
    def cast_bin(self) -> str:
        if self._cast_bin is None:
            self._cast_bin = require_cast_bin()
        return self._cast_bin

    def submit(self, call: PreparedCall, signer: Signer) -> str:
        if signer.private_key_hex:
            tx_hash = cast_send(
                self.cast_bin,
                self.rpc.url,
                private_key_hex=signer.private_key_hex,
                sender=signer.address,
                to=call.to,
                data=call.data,
                timeout_sec=self.send_timeout_sec,
            )
        else:
            tx_hash = self.rpc.send_transaction({"from": signer.address, "to": call.to, "data": call.data})
        logger.info("%s submitted: %s", call.function, tx_hash)
        return tx_hash

    def confirm(self, tx_hash: str) -> dict[str, Any]:
        receipt = cast_receipt(self.cast_bin, self.rpc.url, tx_hash, timeout_sec=self.receipt_timeout_sec)
        if not receipt_succeeded(receipt):
            status = str(receipt.get("status", "0x0"))
            raise RemoteError(
                f"Transaction {tx_hash} reverted on-chain (status {status}).",
                {"reason": f"receipt status {status}", "info": {"receipt": receipt}},
                tx_hash=tx_hash,
            )
        logger.info("%s confirmed in block %s", tx_hash, receipt.get("blockNumber"))
        return receipt

    def execute(self, call: PreparedCall, signer: Signer) -> tuple[str, dict[str, Any]]:
        # Receipt waits need cast; resolve it before anything is sent.
        _ = self.cast_bin
        tx_hash = self.submit(call, signer)
        try:
            receipt = self.confirm(tx_hash)
        except RemoteError as exc:
            exc.tx_hash = exc.tx_hash or tx_hash
            raise
        return tx_hash, receipt


def block_number(receipt: dict[str, Any]) -> int | None:
    try:
        return parse_quantity(receipt.get("blockNumber"))
    except ValueError:
        return None


def iter_event_args(
    abi: ContractAbi,
    receipt: dict[str, Any],
    event: str,
    arg: str,
    *,
    address: str | None = None,
) -> Iterator[Any]:
    for log in receipt.get("logs") or []:
        if not isinstance(log, dict):
            continue
        if address and not same_address(str(log.get("address") or ""), address):
            continue
        try:
            decoded = abi.decode_log(event, log)
        except (DecodingError, ValueError, TypeError):
            # Logs from other events and contracts are expected.
            continue
        if decoded is not None and arg in decoded:
            yield decoded[arg]


def extract_event_arg(
    abi: ContractAbi,
    receipt: dict[str, Any],
    event: str,
    arg: str,
    *,
    address: str | None = None,
) -> Any:
    for value in iter_event_args(abi, receipt, event, arg, address=address):
        return value
    raise EventNotFoundError(event, receipt.get("transactionHash"))

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi.exceptions import DecodingError

from .abi import ContractAbi
from .rpc import RemoteError, RpcClient


@dataclass(frozen=True)
class PreparedCall:
    """A mutating contract call, encoded and ready to submit."""

    function: str
    to: str
    data: str


class Contract:
    def __init__(self, rpc: RpcClient, abi: ContractAbi, address: str):
        self.rpc = rpc
        self.abi = abi
        self.address = address

    def _call(self, function: str, args: tuple[Any, ...]) -> str:
        return self.rpc.call(self.address, self.abi.encode_call(function, args))

    def read(self, function: str, *args: Any) -> Any:
        raw = self._call(function, args)
        try:
            values = self.abi.decode_output(function, raw)
        except DecodingError as exc:
            # An empty result usually means no contract lives at the address.
            raise RemoteError(f"{function}() returned undecodable data '{raw[:18]}'.", {"data": raw}) from exc
        if len(values) == 1:
            return values[0]
        return values

    def read_named(self, function: str, *args: Any) -> dict[str, Any]:
        raw = self._call(function, args)
        try:
            return self.abi.decode_output_named(function, raw)
        except DecodingError as exc:
            raise RemoteError(f"{function}() returned undecodable data '{raw[:18]}'.", {"data": raw}) from exc

    def prepare(self, function: str, *args: Any) -> PreparedCall:
        return PreparedCall(function=function, to=self.address, data=self.abi.encode_call(function, args))

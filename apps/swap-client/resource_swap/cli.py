#!/usr/bin/env python3
"""ResourceSwap client CLI.

Every command prints exactly one JSON object on stdout. Mutating commands run
their preflight guard first and never submit a transaction the guard rejects.
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from dataclasses import dataclass
from typing import Any

from .abi import AbiError, ContractAbi, load_abi
from .catalog import CATALOG, DEFAULT_RESOURCE
from .config import (
    DEFAULT_RPC_URL,
    ConfigError,
    Signer,
    account_index,
    cast_receipt_timeout_sec,
    cast_send_timeout_sec,
    deployment_path,
    env_str,
    is_hex_address,
    load_deployment,
    resolve_contract_address,
    resolve_signer,
    rpc_timeout_sec,
)
from .contract import Contract
from .diagnosis import decode_error
from .executor import EventNotFoundError, TransactionExecutor, block_number, extract_event_arg
from .preflight import NOOP, Verdict, approval_guard, cancel_guard, check_mint, mint_guard, read_offer
from .rpc import MissingDependencyError, RemoteError, RpcClient
from .timegate import read_time_gate

logger = logging.getLogger(__name__)


@dataclass
class Session:
    rpc: RpcClient
    abi: ContractAbi
    contract: Contract
    executor: TransactionExecutor


def emit(payload: dict) -> int:
    print(json.dumps(payload, separators=(",", ":"), default=str))
    return 0


def ok(message: str, **extra: object) -> int:
    payload = {"ok": True, "code": "ok", "message": message}
    payload.update(extra)
    return emit(payload)


def fail(code: str, message: str, action_hint: str | None = None, details: dict | None = None, exit_code: int = 1) -> int:
    payload: dict[str, object] = {"ok": False, "code": code, "message": message}
    if action_hint:
        payload["actionHint"] = action_hint
    if details:
        payload["details"] = details
    emit(payload)
    return exit_code


def require_json_flag(args: argparse.Namespace) -> int | None:
    if getattr(args, "json", False):
        return None
    return fail("missing_flag", "This command requires --json output mode.", "Re-run with --json.", exit_code=2)


def _parse_uint_arg(value: Any) -> int | None:
    raw = str(value if value is not None else "").strip()
    if re.fullmatch(r"[0-9]+", raw):
        return int(raw)
    if re.fullmatch(r"0x[a-fA-F0-9]+", raw):
        return int(raw, 16)
    return None


def _rpc_client(args: argparse.Namespace) -> RpcClient:
    url = getattr(args, "rpc_url", None) or env_str("RESOURCE_SWAP_RPC_URL", DEFAULT_RPC_URL)
    return RpcClient(str(url), timeout_sec=rpc_timeout_sec())


def _load_contract_abi(args: argparse.Namespace) -> ContractAbi:
    return load_abi(getattr(args, "abi", None) or env_str("RESOURCE_SWAP_ABI"))


def _open_session(args: argparse.Namespace) -> Session:
    rpc = _rpc_client(args)
    abi = _load_contract_abi(args)
    address = resolve_contract_address(getattr(args, "contract", None), getattr(args, "deployment", None))
    logger.info("contract %s via %s", address, rpc.url)
    return Session(
        rpc=rpc,
        abi=abi,
        contract=Contract(rpc, abi, address),
        executor=TransactionExecutor(
            rpc,
            send_timeout_sec=cast_send_timeout_sec(),
            receipt_timeout_sec=cast_receipt_timeout_sec(),
        ),
    )


def _signer(session: Session, args: argparse.Namespace) -> Signer:
    return resolve_signer(session.rpc, account_index(getattr(args, "account", None)))


def _verdict_failure(verdict: Verdict, signer: Signer) -> int:
    return fail(verdict.code, verdict.message, verdict.action_hint, {**verdict.details, "account": signer.address}, exit_code=1)


def _tx_failure(action: str, exc: RemoteError, abi: ContractAbi | None, details: dict[str, Any]) -> int:
    diagnosis = decode_error(exc, abi)
    if exc.tx_hash:
        details = {**details, "txHash": exc.tx_hash}
    return fail(
        "tx_failed",
        f"{action} failed: {diagnosis}",
        "Inspect the diagnosis; the contract rejected or could not confirm the transaction.",
        details,
        exit_code=1,
    )


def _common_failure(exc: Exception, abi: ContractAbi | None, details: dict[str, Any] | None = None) -> int:
    if isinstance(exc, MissingDependencyError):
        return fail("missing_dependency", str(exc), "Install Foundry and ensure `cast` is on PATH.", {"dependency": "cast"}, exit_code=1)
    if isinstance(exc, (ConfigError, AbiError)):
        return fail("config_invalid", str(exc), "Check deployment, ABI and RESOURCE_SWAP_* settings.", details, exit_code=2)
    return fail("rpc_failed", decode_error(exc, abi), "Verify the node is reachable and the contract address is correct.", details, exit_code=1)


def cmd_mint(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    request = CATALOG.get(args.animal)
    if request is None:
        return fail(
            "invalid_input",
            f"Unknown resource '{args.animal}'.",
            f"Choose one of: {', '.join(CATALOG)}.",
            {"animal": args.animal},
            exit_code=2,
        )

    session: Session | None = None
    try:
        session = _open_session(args)
        signer = _signer(session, args)
        verdict = mint_guard(session.contract, signer.address)
        if not verdict.should_submit:
            return _verdict_failure(verdict, signer)

        # The token id is read from Transfer; an ABI without it is rejected before sending.
        session.abi.event("Transfer")
        call = session.contract.prepare("mintResource", *request.as_args())
        try:
            tx_hash, receipt = session.executor.execute(call, signer)
        except RemoteError as exc:
            return _tx_failure("Mint", exc, session.abi, {"resource": request.to_payload(), "account": signer.address})

        try:
            token_id = extract_event_arg(session.abi, receipt, "Transfer", "tokenId", address=session.contract.address)
        except EventNotFoundError as exc:
            return fail(
                "result_unavailable",
                str(exc),
                "The mint was confirmed; look up the transaction to recover the token id.",
                {"txHash": tx_hash, "blockNumber": block_number(receipt), "event": exc.event},
                exit_code=1,
            )

        result: dict[str, Any] = {
            "contract": session.contract.address,
            "account": signer.address,
            "resource": request.to_payload(),
            "txHash": tx_hash,
            "blockNumber": block_number(receipt),
            "tokenId": str(token_id),
        }
        try:
            result["owner"] = session.contract.read("ownerOf", token_id)
            result["tokenUri"] = session.contract.read("tokenURI", token_id)
        except RemoteError as exc:
            # Mint is already confirmed.
            result.setdefault("owner", None)
            result.update(tokenUri=None, postReadError=decode_error(exc, session.abi))
        return ok("Resource minted.", **result)
    except (ConfigError, AbiError, MissingDependencyError, RemoteError) as exc:
        return _common_failure(exc, session.abi if session else None, {"animal": args.animal})


def cmd_approve(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    token_id = _parse_uint_arg(args.token)
    if token_id is None:
        return fail("invalid_input", "Invalid token id.", "Use a non-negative integer.", {"token": args.token}, exit_code=2)
    if args.operator and not is_hex_address(args.operator):
        return fail("invalid_input", "Invalid operator address format.", "Use 0x-prefixed 20-byte hex address.", {"operator": args.operator}, exit_code=2)

    session: Session | None = None
    try:
        session = _open_session(args)
        signer = _signer(session, args)
        operator = args.operator or session.contract.address
        verdict = approval_guard(session.contract, signer.address, token_id, operator)
        if verdict.status == NOOP:
            return ok(verdict.message, status=verdict.status, submitted=False, **verdict.details)
        if not verdict.should_submit:
            return _verdict_failure(verdict, signer)

        call = session.contract.prepare("approve", operator, token_id)
        try:
            tx_hash, receipt = session.executor.execute(call, signer)
        except RemoteError as exc:
            return _tx_failure("Approve", exc, session.abi, {"tokenId": str(token_id), "operator": operator})
        return ok(
            f"Approved {operator} for token {token_id}.",
            status=verdict.status,
            submitted=True,
            tokenId=str(token_id),
            operator=operator,
            account=signer.address,
            txHash=tx_hash,
            blockNumber=block_number(receipt),
        )
    except (ConfigError, AbiError, MissingDependencyError, RemoteError) as exc:
        return _common_failure(exc, session.abi if session else None, {"tokenId": str(token_id)})


def cmd_cancel_offer(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    offer_id = _parse_uint_arg(args.offer)
    if offer_id is None:
        return fail("invalid_input", "Invalid offer id.", "Use a non-negative integer.", {"offer": args.offer}, exit_code=2)

    session: Session | None = None
    try:
        session = _open_session(args)
        signer = _signer(session, args)
        verdict = cancel_guard(session.contract, signer.address, offer_id)
        if not verdict.should_submit:
            return _verdict_failure(verdict, signer)

        call = session.contract.prepare("cancelOffer", offer_id)
        try:
            tx_hash, receipt = session.executor.execute(call, signer)
        except RemoteError as exc:
            return _tx_failure("cancelOffer", exc, session.abi, {"offerId": str(offer_id)})
        result: dict[str, Any] = {
            "offerId": str(offer_id),
            "account": signer.address,
            "txHash": tx_hash,
            "blockNumber": block_number(receipt),
            "timeGate": verdict.details.get("timeGate"),
        }
        try:
            result["activeNow"] = read_offer(session.contract, offer_id).active
        except RemoteError as exc:
            result.update(activeNow=None, postReadError=decode_error(exc, session.abi))
        return ok(f"Offer {offer_id} cancelled.", **result)
    except (ConfigError, AbiError, MissingDependencyError, RemoteError) as exc:
        return _common_failure(exc, session.abi if session else None, {"offerId": str(offer_id)})


def cmd_time_gate(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    session: Session | None = None
    try:
        session = _open_session(args)
        signer = _signer(session, args)
        gate = read_time_gate(session.contract, signer.address)
        return ok(
            "Time gate resolved.",
            account=signer.address,
            mintAllowed=check_mint(gate).should_submit,
            **gate.to_details(),
        )
    except (ConfigError, AbiError, MissingDependencyError, RemoteError) as exc:
        return _common_failure(exc, session.abi if session else None)


def cmd_accounts(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    try:
        rpc = _rpc_client(args)
        accounts = rpc.accounts()
        return ok("Signer accounts listed.", rpcUrl=rpc.url, accounts=[{"index": i, "address": a} for i, a in enumerate(accounts)])
    except (ConfigError, RemoteError) as exc:
        return _common_failure(exc, None)


def cmd_catalog(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    return ok("Mintable resources.", resources=[entry.to_payload() for entry in CATALOG.values()])


def cmd_deployment(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    try:
        deployment = load_deployment(deployment_path(args.deployment))
    except ConfigError as exc:
        return _common_failure(exc, None)
    return ok("Deployment record loaded.", **deployment.to_payload())


def cmd_decode_error(args: argparse.Namespace) -> int:
    chk = require_json_flag(args)
    if chk is not None:
        return chk
    data = str(args.data or "").strip()
    if not re.fullmatch(r"0x([a-fA-F0-9]{2})*", data):
        return fail("invalid_input", "Invalid revert data.", "Use 0x-prefixed hex bytes.", {"data": args.data}, exit_code=2)
    try:
        abi = _load_contract_abi(args)
    except AbiError as exc:
        return _common_failure(exc, None)
    return ok("Revert data decoded.", data=data, diagnosis=decode_error({"data": data}, abi))


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--rpc-url")
    common.add_argument("--contract")
    common.add_argument("--deployment")
    common.add_argument("--abi")
    common.add_argument("--account")
    common.add_argument("--json", action="store_true")
    common.add_argument("--verbose", action="store_true")
    return common


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="resource-swap", add_help=True)
    sub = p.add_subparsers(dest="top")
    common = _common_options()

    mint = sub.add_parser("mint", parents=[common])
    mint.add_argument("--animal", default=DEFAULT_RESOURCE)
    mint.set_defaults(func=cmd_mint)

    approve = sub.add_parser("approve", parents=[common])
    approve.add_argument("--token", required=True)
    approve.add_argument("--operator")
    approve.set_defaults(func=cmd_approve)

    cancel = sub.add_parser("cancel-offer", parents=[common])
    cancel.add_argument("--offer", required=True)
    cancel.set_defaults(func=cmd_cancel_offer)

    time_gate = sub.add_parser("time-gate", parents=[common])
    time_gate.set_defaults(func=cmd_time_gate)

    accounts = sub.add_parser("accounts", parents=[common])
    accounts.set_defaults(func=cmd_accounts)

    catalog = sub.add_parser("catalog", parents=[common])
    catalog.set_defaults(func=cmd_catalog)

    deployment = sub.add_parser("deployment", parents=[common])
    deployment.set_defaults(func=cmd_deployment)

    decode = sub.add_parser("decode-error", parents=[common])
    decode.add_argument("--data", required=True)
    decode.set_defaults(func=cmd_decode_error)

    return p


def _configure_logging(verbose: bool) -> None:
    level_name = "INFO" if verbose else (env_str("RESOURCE_SWAP_LOG_LEVEL") or "WARNING")
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(getattr(args, "verbose", False))
    if not hasattr(args, "func"):
        parser.print_help()
        return 2
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())

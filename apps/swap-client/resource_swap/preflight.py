"""Local checks run before a mutating call is submitted.

The contract stays the final authority: state can change between a check and
the submission, so a passing verdict only means the call is not known to fail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .config import same_address
from .contract import Contract
from .diagnosis import decode_error
from .rpc import RemoteError
from .timegate import TimeGate, format_seconds, read_time_gate

PASS = "pass"
NOOP = "noop"
FAIL = "fail"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class Verdict:
    status: str
    code: str
    message: str
    action_hint: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def should_submit(self) -> bool:
        return self.status == PASS


@dataclass(frozen=True)
class OwnershipState:
    owner: str
    approved_address: str
    approved_for_all: bool


@dataclass(frozen=True)
class OfferState:
    active: bool
    offerer: str
    fields: dict[str, Any] = field(default_factory=dict)


def check_mint(gate: TimeGate) -> Verdict:
    lock_left = gate.lock_remaining
    cooldown_left = gate.cooldown_remaining
    details = gate.to_details()
    windows = f"lock {format_seconds(lock_left)} ({max(0, lock_left)}s), cooldown {format_seconds(cooldown_left)} ({max(0, cooldown_left)}s)"
    if lock_left > 0:
        return Verdict(
            FAIL,
            "account_locked",
            f"Account is locked for {format_seconds(lock_left)} (LOCK_DURATION={format_seconds(gate.lock_duration)}); remaining {windows}.",
            "Wait for the lock to expire, then retry.",
            details,
        )
    if cooldown_left > 0:
        return Verdict(
            FAIL,
            "cooldown_active",
            f"Cooldown active for {format_seconds(cooldown_left)} (COOLDOWN={format_seconds(gate.cooldown)}); remaining {windows}.",
            "Wait for the cooldown to elapse, then retry.",
            details,
        )
    return Verdict(PASS, "mint_allowed", "Account may mint.", details=details)


def mint_guard(contract: Contract, account: str) -> Verdict:
    return check_mint(read_time_gate(contract, account))


def check_approval(caller: str, operator: str, token_id: int, state: OwnershipState) -> Verdict:
    details = {
        "tokenId": str(token_id),
        "owner": state.owner,
        "caller": caller,
        "operator": operator,
        "approvedAddress": state.approved_address,
        "approvedForAll": state.approved_for_all,
    }
    if not same_address(state.owner, caller):
        return Verdict(
            FAIL,
            "not_owner",
            f"Account {caller} is not the owner of token {token_id}.",
            "Use the owning account.",
            details,
        )
    if same_address(state.approved_address, operator) or state.approved_for_all:
        return Verdict(NOOP, "already_approved", f"Operator {operator} is already approved for token {token_id}.", details=details)
    return Verdict(PASS, "approval_required", f"Token {token_id} needs approval for {operator}.", details=details)


def read_ownership(contract: Contract, token_id: int, operator: str) -> OwnershipState:
    owner = str(contract.read("ownerOf", token_id))
    approved = contract.read("getApproved", token_id)
    approved_all = contract.read("isApprovedForAll", owner, operator)
    return OwnershipState(owner=owner, approved_address=str(approved or ZERO_ADDRESS), approved_for_all=bool(approved_all))


def approval_guard(contract: Contract, caller: str, token_id: int, operator: str | None = None) -> Verdict:
    target = operator or contract.address
    try:
        state = read_ownership(contract, token_id, target)
    except RemoteError as exc:
        return Verdict(
            FAIL,
            "token_not_found",
            f"Token {token_id} not found: {decode_error(exc, contract.abi)}",
            "Check the token id.",
            {"tokenId": str(token_id)},
        )
    return check_approval(caller, target, token_id, state)


def check_cancel(caller: str, offer_id: int, offer: OfferState) -> Verdict:
    details: dict[str, Any] = {"offerId": str(offer_id), "offerer": offer.offerer, "caller": caller, "active": offer.active}
    if not offer.active:
        return Verdict(
            FAIL,
            "offer_inactive",
            f"Offer {offer_id} is inactive (already cancelled or accepted).",
            details=details,
        )
    if not same_address(offer.offerer, caller):
        return Verdict(
            FAIL,
            "not_offerer",
            f"Account {caller} is not the offerer of offer {offer_id}; expected offerer {offer.offerer}.",
            "Use the account that created the offer.",
            details,
        )
    return Verdict(PASS, "cancel_allowed", f"Offer {offer_id} may be cancelled.", details=details)


def read_offer(contract: Contract, offer_id: int) -> OfferState:
    fields = contract.read_named("offers", offer_id)
    return OfferState(active=bool(fields.get("active")), offerer=str(fields.get("offerer") or ZERO_ADDRESS), fields=fields)


def cancel_guard(contract: Contract, caller: str, offer_id: int) -> Verdict:
    try:
        offer = read_offer(contract, offer_id)
    except RemoteError as exc:
        return Verdict(
            FAIL,
            "offer_not_found",
            f"Invalid offer id {offer_id}: {decode_error(exc, contract.abi)}",
            "Check the offer id.",
            {"offerId": str(offer_id)},
        )
    verdict = check_cancel(caller, offer_id, offer)
    # Windows are informational here; the contract decides whether they gate cancellation.
    try:
        extra: dict[str, Any] = {"timeGate": read_time_gate(contract, caller).to_details()}
    except RemoteError as exc:
        extra = {"timeGate": None, "timeGateError": decode_error(exc, contract.abi)}
    return Verdict(verdict.status, verdict.code, verdict.message, verdict.action_hint, {**verdict.details, **extra})

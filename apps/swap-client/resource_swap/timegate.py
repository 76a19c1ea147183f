from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .contract import Contract


def lock_remaining(now: int, locked_until: int) -> int:
    # Zero means the account was never locked.
    if locked_until == 0:
        return 0
    return locked_until - now


def cooldown_remaining(now: int, last_action_at: int, cooldown: int) -> int:
    if last_action_at == 0:
        return 0
    return last_action_at + cooldown - now


def format_seconds(seconds: int) -> str:
    if seconds <= 0:
        return "0s"
    minutes, rest = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {rest}s"
    return f"{rest}s"


@dataclass(frozen=True)
class TimeGate:
    """Cooldown and lock windows for one account at one block timestamp.

    Remaining values are negative once a window has elapsed.
    """

    now: int
    last_action_at: int
    locked_until: int
    cooldown: int
    lock_duration: int

    @property
    def cooldown_remaining(self) -> int:
        return cooldown_remaining(self.now, self.last_action_at, self.cooldown)

    @property
    def lock_remaining(self) -> int:
        return lock_remaining(self.now, self.locked_until)

    def to_details(self) -> dict[str, Any]:
        return {
            "now": self.now,
            "lastActionAt": self.last_action_at,
            "lockedUntil": self.locked_until,
            "cooldownSec": self.cooldown,
            "lockDurationSec": self.lock_duration,
            "cooldownRemainingSec": max(0, self.cooldown_remaining),
            "lockRemainingSec": max(0, self.lock_remaining),
            "cooldownRemaining": format_seconds(self.cooldown_remaining),
            "lockRemaining": format_seconds(self.lock_remaining),
        }


def read_time_gate(contract: Contract, account: str) -> TimeGate:
    # Block time advances between attempts, so this is never cached.
    return TimeGate(
        now=contract.rpc.block_timestamp(),
        last_action_at=int(contract.read("lastActionAt", account)),
        locked_until=int(contract.read("lockedUntil", account)),
        cooldown=int(contract.read("COOLDOWN")),
        lock_duration=int(contract.read("LOCK_DURATION")),
    )

import unittest

from fake_node import ALICE, BOB, CONTRACT, NOW, ZERO, FakeNode, custom_error_payload

from resource_swap import preflight
from resource_swap.abi import default_abi
from resource_swap.contract import Contract
from resource_swap.rpc import RemoteError


def _contract(node: FakeNode) -> Contract:
    return Contract(node, node.abi, CONTRACT)


class MintGuardTests(unittest.TestCase):
    def test_fresh_account_passes(self) -> None:
        verdict = preflight.mint_guard(_contract(FakeNode()), ALICE)
        self.assertEqual(verdict.status, preflight.PASS)
        self.assertTrue(verdict.should_submit)

    def test_lock_blocks_and_reports_both_windows(self) -> None:
        node = FakeNode()
        node.views["lockedUntil"] = NOW + 120
        verdict = preflight.mint_guard(_contract(node), ALICE)
        self.assertEqual(verdict.status, preflight.FAIL)
        self.assertEqual(verdict.code, "account_locked")
        self.assertIn("2m 0s", verdict.message)
        self.assertIn("120s", verdict.message)
        self.assertIn("cooldown 0s", verdict.message)
        self.assertEqual(verdict.details["lockRemainingSec"], 120)
        self.assertEqual(verdict.details["cooldownRemainingSec"], 0)

    def test_cooldown_blocks(self) -> None:
        node = FakeNode()
        node.views["lastActionAt"] = NOW - 15
        verdict = preflight.mint_guard(_contract(node), ALICE)
        self.assertEqual(verdict.code, "cooldown_active")
        self.assertIn("45s", verdict.message)
        self.assertIn("COOLDOWN=1m 0s", verdict.message)

    def test_elapsed_windows_pass(self) -> None:
        node = FakeNode()
        node.views["lastActionAt"] = NOW - 600
        node.views["lockedUntil"] = NOW - 1
        self.assertEqual(preflight.mint_guard(_contract(node), ALICE).status, preflight.PASS)


class ApprovalGuardTests(unittest.TestCase):
    def test_owner_without_approval_must_submit(self) -> None:
        node = FakeNode()
        verdict = preflight.approval_guard(_contract(node), ALICE, 3)
        self.assertEqual(verdict.status, preflight.PASS)
        self.assertEqual(verdict.details["operator"], CONTRACT)

    def test_owner_comparison_is_case_insensitive(self) -> None:
        node = FakeNode()
        verdict = preflight.approval_guard(_contract(node), ALICE.upper().replace("0X", "0x"), 3)
        self.assertEqual(verdict.status, preflight.PASS)

    def test_already_approved_address_is_noop(self) -> None:
        node = FakeNode()
        node.views["getApproved"] = CONTRACT
        verdict = preflight.approval_guard(_contract(node), ALICE, 3)
        self.assertEqual(verdict.status, preflight.NOOP)
        self.assertEqual(verdict.code, "already_approved")
        self.assertFalse(verdict.should_submit)

    def test_approved_for_all_is_noop(self) -> None:
        node = FakeNode()
        seen: list[tuple[str, str]] = []

        def approved_for_all(owner: str, operator: str) -> bool:
            seen.append((owner.lower(), operator.lower()))
            return True

        node.views["isApprovedForAll"] = approved_for_all
        verdict = preflight.approval_guard(_contract(node), ALICE, 3)
        self.assertEqual(verdict.status, preflight.NOOP)
        self.assertEqual(seen, [(ALICE, CONTRACT)])

    def test_non_owner_fails(self) -> None:
        node = FakeNode()
        verdict = preflight.approval_guard(_contract(node), BOB, 3)
        self.assertEqual(verdict.status, preflight.FAIL)
        self.assertEqual(verdict.code, "not_owner")
        self.assertEqual(node.sent, [])

    def test_missing_token_is_not_found(self) -> None:
        node = FakeNode()
        data = custom_error_payload(default_abi(), "ERC721NonexistentToken", ["uint256"], [9])

        def owner_of(token_id: int) -> str:
            raise RemoteError("RPC eth_call failed: execution reverted", {"error": {"code": 3, "data": data}})

        node.views["ownerOf"] = owner_of
        verdict = preflight.approval_guard(_contract(node), ALICE, 9)
        self.assertEqual(verdict.code, "token_not_found")
        self.assertIn("ERC721NonexistentToken(9)", verdict.message)

    def test_check_approval_is_pure(self) -> None:
        state = preflight.OwnershipState(owner=ALICE, approved_address=ZERO, approved_for_all=False)
        self.assertEqual(preflight.check_approval(ALICE, CONTRACT, 1, state).status, preflight.PASS)
        self.assertEqual(preflight.check_approval(BOB, CONTRACT, 1, state).code, "not_owner")


class CancelGuardTests(unittest.TestCase):
    def test_inactive_offer_regardless_of_caller(self) -> None:
        node = FakeNode()
        node.views["offers"] = (ALICE, 1, 2, False)
        for caller in (ALICE, BOB):
            verdict = preflight.cancel_guard(_contract(node), caller, 4)
            self.assertEqual(verdict.code, "offer_inactive")
            self.assertEqual(verdict.status, preflight.FAIL)

    def test_wrong_caller_names_expected_offerer(self) -> None:
        node = FakeNode()
        node.views["offers"] = (ALICE, 1, 2, True)
        verdict = preflight.cancel_guard(_contract(node), BOB, 4)
        self.assertEqual(verdict.code, "not_offerer")
        self.assertIn(ALICE, verdict.message.lower())
        self.assertEqual(verdict.details["offerer"].lower(), ALICE)

    def test_offerer_passes_with_time_gate_context(self) -> None:
        node = FakeNode()
        node.views["lockedUntil"] = NOW + 30
        verdict = preflight.cancel_guard(_contract(node), ALICE, 4)
        self.assertEqual(verdict.status, preflight.PASS)
        self.assertEqual(verdict.details["timeGate"]["lockRemainingSec"], 30)

    def test_time_gate_failure_keeps_offer_verdict(self) -> None:
        node = FakeNode()

        def last_action_at(account: str) -> int:
            raise RemoteError("RPC eth_call failed: lastActionAt unavailable", {"shortMessage": "lastActionAt unavailable"})

        node.views["lastActionAt"] = last_action_at
        verdict = preflight.cancel_guard(_contract(node), ALICE, 4)
        self.assertEqual(verdict.status, preflight.PASS)
        self.assertEqual(verdict.code, "cancel_allowed")
        self.assertIsNone(verdict.details["timeGate"])
        self.assertEqual(verdict.details["timeGateError"], "lastActionAt unavailable")

    def test_read_failure_is_not_found(self) -> None:
        node = FakeNode()

        def offers(offer_id: int) -> tuple:
            raise RemoteError("RPC eth_call failed: execution reverted", {"shortMessage": "execution reverted"})

        node.views["offers"] = offers
        verdict = preflight.cancel_guard(_contract(node), ALICE, 99)
        self.assertEqual(verdict.code, "offer_not_found")
        self.assertIn("execution reverted", verdict.message)

    def test_check_cancel_is_pure(self) -> None:
        offer = preflight.OfferState(active=True, offerer=ALICE.upper().replace("0X", "0x"))
        self.assertEqual(preflight.check_cancel(ALICE, 1, offer).status, preflight.PASS)


if __name__ == "__main__":
    unittest.main()

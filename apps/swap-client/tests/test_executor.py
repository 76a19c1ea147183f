import unittest
from unittest import mock

from fake_node import ALICE, BOB, CONTRACT, TX_HASH, FakeNode, error_string_payload, receipt_proc, transfer_log, word

from resource_swap import executor as executor_mod
from resource_swap import rpc
from resource_swap.abi import default_abi, topic
from resource_swap.config import Signer
from resource_swap.contract import Contract
from resource_swap.diagnosis import decode_error


def _receipt(logs: list, status: str = "0x1") -> dict:
    return {"transactionHash": TX_HASH, "status": status, "blockNumber": "0x2a", "logs": logs}


class SubmitConfirmTests(unittest.TestCase):
    def setUp(self) -> None:
        self.node = FakeNode()
        self.contract = Contract(self.node, self.node.abi, CONTRACT)
        self.executor = executor_mod.TransactionExecutor(self.node, cast_bin="cast")
        self.call = self.contract.prepare("cancelOffer", 4)

    def test_node_signer_uses_send_transaction(self) -> None:
        tx_hash = self.executor.submit(self.call, Signer(address=ALICE, index=0))
        self.assertEqual(tx_hash, TX_HASH)
        self.assertEqual(self.node.sent, [{"from": ALICE, "to": CONTRACT, "data": self.call.data}])

    def test_private_key_signer_uses_cast_send(self) -> None:
        commands: list[list[str]] = []

        def fake_run(cmd: list[str], **kwargs):
            commands.append(cmd)
            return mock.Mock(returncode=0, stdout=f'"{TX_HASH}"', stderr="")

        signer = Signer(address=BOB, private_key_hex="11" * 32)
        with mock.patch.object(rpc.subprocess, "run", side_effect=fake_run):
            tx_hash = self.executor.submit(self.call, signer)

        self.assertEqual(tx_hash, TX_HASH)
        self.assertEqual(self.node.sent, [])
        self.assertEqual(commands[0][:3], ["cast", "send", "--async"])
        self.assertIn("--private-key", commands[0])
        self.assertEqual(commands[0][-2:], [CONTRACT, self.call.data])

    def test_cast_send_revert_keeps_payload_for_diagnosis(self) -> None:
        stderr = f'Error: server returned an error response: error code 3: execution reverted: Not owner, data: "{error_string_payload("Not owner")}"'
        signer = Signer(address=BOB, private_key_hex="11" * 32)
        with mock.patch.object(rpc.subprocess, "run", return_value=mock.Mock(returncode=1, stdout="", stderr=stderr)):
            with self.assertRaises(rpc.RemoteError) as ctx:
                self.executor.submit(self.call, signer)
        self.assertEqual(decode_error(ctx.exception), "Revert: Not owner")

    def test_confirm_returns_successful_receipt(self) -> None:
        with mock.patch.object(rpc.subprocess, "run", return_value=receipt_proc(_receipt([]))) as run:
            receipt = self.executor.confirm(TX_HASH)
        self.assertEqual(receipt["blockNumber"], "0x2a")
        self.assertEqual(run.call_args[0][0][:3], ["cast", "receipt", "--json"])

    def test_confirm_raises_on_failed_status(self) -> None:
        with mock.patch.object(rpc.subprocess, "run", return_value=receipt_proc(_receipt([], status="0x0"))):
            with self.assertRaises(rpc.RemoteError) as ctx:
                self.executor.confirm(TX_HASH)
        self.assertEqual(ctx.exception.tx_hash, TX_HASH)
        self.assertEqual(decode_error(ctx.exception), "receipt status 0x0")

    def test_execute_attaches_tx_hash_to_confirmation_failure(self) -> None:
        timeout = rpc.subprocess.TimeoutExpired(cmd=["cast"], timeout=90)
        with mock.patch.object(rpc.subprocess, "run", side_effect=timeout):
            with self.assertRaises(rpc.RemoteError) as ctx:
                self.executor.execute(self.call, Signer(address=ALICE, index=0))
        self.assertEqual(ctx.exception.tx_hash, TX_HASH)
        self.assertIn("Timed out", str(ctx.exception))

    def test_execute_requires_cast_before_submitting(self) -> None:
        executor = executor_mod.TransactionExecutor(self.node)
        with mock.patch.object(executor_mod, "require_cast_bin", side_effect=rpc.MissingDependencyError("Missing dependency: cast.")):
            with self.assertRaises(rpc.MissingDependencyError):
                executor.execute(self.call, Signer(address=ALICE, index=0))
        self.assertEqual(self.node.sent, [])

    def test_send_error_propagates_raw(self) -> None:
        self.node.send_error = rpc.RemoteError("RPC eth_sendTransaction failed", {"error": {"data": error_string_payload("Locked")}})
        with self.assertRaises(rpc.RemoteError) as ctx:
            self.executor.execute(self.call, Signer(address=ALICE, index=0))
        self.assertIs(ctx.exception, self.node.send_error)


class EventExtractionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.abi = default_abi()

    def test_first_matching_transfer_wins(self) -> None:
        receipt = _receipt([transfer_log(5), transfer_log(6)])
        self.assertEqual(executor_mod.extract_event_arg(self.abi, receipt, "Transfer", "tokenId"), 5)

    def test_unrelated_and_malformed_logs_are_skipped(self) -> None:
        erc20_transfer = {
            "address": CONTRACT,
            "topics": [topic(self.abi.event("Transfer")), word(0), word(1)],
            "data": word(1000),
        }
        approval = {
            "address": CONTRACT,
            "topics": [topic(self.abi.event("Approval")), word(1), word(2), word(3)],
            "data": "0x",
        }
        malformed = {"address": CONTRACT, "topics": [topic(self.abi.event("Transfer")), "0xzz", word(1), word(2)], "data": "0x"}
        receipt = _receipt([erc20_transfer, approval, "junk", malformed, transfer_log(8)])
        self.assertEqual(list(executor_mod.iter_event_args(self.abi, receipt, "Transfer", "tokenId")), [8])

    def test_address_filter(self) -> None:
        receipt = _receipt([transfer_log(3, address="0x" + "dd" * 20), transfer_log(4)])
        self.assertEqual(executor_mod.extract_event_arg(self.abi, receipt, "Transfer", "tokenId", address=CONTRACT.upper().replace("0X", "0x")), 4)

    def test_missing_event_is_distinct_failure(self) -> None:
        with self.assertRaises(executor_mod.EventNotFoundError) as ctx:
            executor_mod.extract_event_arg(self.abi, _receipt([]), "Transfer", "tokenId")
        self.assertEqual(ctx.exception.tx_hash, TX_HASH)
        self.assertIn("Transfer", str(ctx.exception))

    def test_block_number(self) -> None:
        self.assertEqual(executor_mod.block_number(_receipt([])), 42)
        self.assertIsNone(executor_mod.block_number({}))


if __name__ == "__main__":
    unittest.main()

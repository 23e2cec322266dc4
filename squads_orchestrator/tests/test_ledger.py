import base64
import unittest
from unittest import TestCase, mock

import requests
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from squads_orchestrator.errors import (
    ConfigError,
    ConfirmationTimeoutError,
    RpcError,
    StaleTransactionIndexError,
    TransactionRejectedError,
)
from squads_orchestrator.ledger import RpcLedger


def rpc_response(payload):
    response = mock.MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestRpcLedger(TestCase):
    def setUp(self):
        self.ledger = RpcLedger("https://rpc.example", confirm_timeout=0, poll_interval=0)
        self.mock_post_patcher = mock.patch.object(self.ledger.session, "post")
        self.mock_post = self.mock_post_patcher.start()
        self.address = Keypair().pubkey()

    def tearDown(self):
        self.mock_post_patcher.stop()

    def signed_transaction(self):
        payer = Keypair()
        blockhash = Hash.new_unique()
        ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))
        return Transaction([payer], Message.new_with_blockhash([ix], payer.pubkey(), blockhash), blockhash)

    def test_get_account_info(self):
        self.mock_post.return_value = rpc_response({
            "jsonrpc": "2.0", "id": 1,
            "result": {"value": {
                "owner": "SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf",
                "lamports": 1000,
                "data": [base64.b64encode(b"\x01\x02").decode(), "base64"],
                "executable": False,
            }},
        })

        account = self.ledger.get_account_info(self.address)

        self.assertEqual(account.data, b"\x01\x02")
        self.assertEqual(account.lamports, 1000)
        self.mock_post.assert_called_once_with(
            "https://rpc.example",
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "getAccountInfo",
                "params": [str(self.address), {"encoding": "base64", "commitment": "confirmed"}],
            },
            timeout=30,
        )

    def test_missing_account_is_none(self):
        self.mock_post.return_value = rpc_response({"result": {"context": {}, "value": None}})
        self.assertIsNone(self.ledger.get_account_info(self.address))

    def test_rpc_error(self):
        self.mock_post.return_value = rpc_response({"error": {"code": -32602, "message": "Invalid param"}})
        with self.assertRaises(RpcError) as ctx:
            self.ledger.get_account_info(self.address)
        self.assertEqual(ctx.exception.code, -32602)

    def test_unknown_commitment_is_refused(self):
        with self.assertRaises(ConfigError):
            RpcLedger("https://rpc.example", commitment="recent")

    def test_transport_errors_propagate(self):
        self.mock_post.side_effect = requests.ConnectionError("down")
        with self.assertRaises(requests.ConnectionError):
            self.ledger.get_latest_blockhash()
        self.assertEqual(self.mock_post.call_count, 1)

    def test_get_latest_blockhash(self):
        blockhash = Hash.new_unique()
        self.mock_post.return_value = rpc_response({"result": {"value": {"blockhash": str(blockhash)}}})
        self.assertEqual(self.ledger.get_latest_blockhash(), blockhash)

    def test_send_transaction(self):
        tx = self.signed_transaction()
        self.mock_post.return_value = rpc_response({"result": str(tx.signatures[0])})

        signature = self.ledger.send_transaction(tx)

        self.assertEqual(signature, str(tx.signatures[0]))
        params = self.mock_post.call_args.kwargs["json"]["params"]
        self.assertEqual(base64.b64decode(params[0]), bytes(tx))
        self.assertEqual(params[1]["encoding"], "base64")

    def test_send_transaction_rejected_by_program(self):
        self.mock_post.return_value = rpc_response({"error": {
            "code": -32002,
            "message": "Transaction simulation failed: Error processing Instruction 0: custom program error: 0x7d6",
            "data": {
                "err": {"InstructionError": [0, {"Custom": 2006}]},
                "logs": ["Program log: AnchorError caused by account: transaction. Error Code: ConstraintSeeds."],
            },
        }})

        with self.assertRaises(TransactionRejectedError) as ctx:
            self.ledger.send_transaction(self.signed_transaction())

        self.assertEqual(ctx.exception.instruction_index, 0)
        self.assertEqual(ctx.exception.custom_code, 2006)
        self.assertTrue(ctx.exception.is_index_conflict)
        self.assertEqual(len(ctx.exception.logs), 1)

    def test_confirm_transaction(self):
        self.mock_post.side_effect = [
            rpc_response({"result": {"value": [None]}}),
            rpc_response({"result": {"value": [{"confirmationStatus": "processed", "err": None}]}}),
            rpc_response({"result": {"value": [{"confirmationStatus": "confirmed", "err": None}]}}),
        ]
        self.ledger.confirm_timeout = 60
        self.ledger.confirm_transaction("sig")
        self.assertEqual(self.mock_post.call_count, 3)

    def test_confirm_transaction_failed(self):
        self.mock_post.return_value = rpc_response({"result": {"value": [
            {"confirmationStatus": "confirmed", "err": {"InstructionError": [2, {"Custom": 6008}]}}
        ]}})
        with self.assertRaises(TransactionRejectedError) as ctx:
            self.ledger.confirm_transaction("sig")
        self.assertEqual(ctx.exception.program_error, "InvalidProposalStatus")

    def test_confirm_transaction_timeout(self):
        self.mock_post.return_value = rpc_response({"result": {"value": [None]}})
        with self.assertRaises(ConfirmationTimeoutError):
            self.ledger.confirm_transaction("sig")


class TestRejectionClassification(TestCase):
    def test_invalid_transaction_index_is_a_conflict(self):
        err = TransactionRejectedError("x", err={"InstructionError": [1, {"Custom": 6009}]})
        self.assertTrue(err.is_index_conflict)
        self.assertEqual(err.program_error, "InvalidTransactionIndex")

    def test_account_in_use_is_a_conflict(self):
        err = TransactionRejectedError(
            "x",
            err={"InstructionError": [1, {"Custom": 0}]},
            logs=["Allocate: account Address { address: abc, base: None } already in use"],
        )
        self.assertTrue(err.is_index_conflict)

    def test_other_errors_are_not_conflicts(self):
        err = TransactionRejectedError("x", err={"InstructionError": [0, {"Custom": 6005}]})
        self.assertFalse(err.is_index_conflict)
        self.assertIn("NotAMember", str(err))
        self.assertIsNone(TransactionRejectedError("x", err="AccountNotFound").custom_code)

    def test_stale_error_keeps_cause_details(self):
        cause = TransactionRejectedError("x", err={"InstructionError": [0, {"Custom": 2006}]}, logs=["l"])
        stale = StaleTransactionIndexError(4, cause)
        self.assertEqual(stale.transaction_index, 4)
        self.assertEqual(stale.custom_code, 2006)
        self.assertEqual(stale.logs, ["l"])


if __name__ == "__main__":
    unittest.main()

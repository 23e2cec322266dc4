import json
import os
import re
import sys
import unittest
from unittest import TestCase, mock

import base58
from click.testing import CliRunner
from solders.keypair import Keypair
from solders.pubkey import Pubkey

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from squads_fakes import FakeSquadsLedger

from squads_orchestrator.cli import cli
from squads_orchestrator.ledger import RpcLedger
from squads_orchestrator.types import AccountInfo, ProposalStatus

# Unpatched ledger factory, for tests that need real settings validation
build_rpc_ledger = RpcLedger.from_settings


def field(output, name):
    match = re.search(rf"^{name}:\s+(\S+)$", output, re.MULTILINE)
    return match.group(1) if match else None


class TestCli(TestCase):
    def setUp(self):
        self.ledger = FakeSquadsLedger()
        self.fee_payer = Keypair()
        self.agent = Keypair()
        self.env = {
            "SOLANA_RPC_URL": "http://localhost:8899",
            "HELIUS_API_KEY": None,
            "FEE_PAYER_SECRET_KEY": base58.b58encode(bytes(self.fee_payer)).decode(),
            "AGENT_SECRET_KEY": json.dumps(list(bytes(self.agent))),
        }
        self.runner = CliRunner()
        patcher = mock.patch("squads_orchestrator.cli.RpcLedger.from_settings", return_value=self.ledger)
        patcher.start()
        self.addCleanup(patcher.stop)

    def invoke(self, *args, env=None):
        return self.runner.invoke(cli, list(args), env=env or self.env)

    def create(self, *args):
        result = self.invoke("create", *args)
        self.assertEqual(result.exit_code, 0, result.output)
        return field(result.output, "Multisig")

    def test_create(self):
        multisig = self.create("--threshold", "1")

        state = self.ledger.multisig(Pubkey.from_string(multisig))
        self.assertEqual(state["threshold"], 1)
        self.assertEqual([key for key, _ in state["members"]], [self.fee_payer.pubkey(), self.agent.pubkey()])

    def test_create_key_out(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("create", "--create-key-out", "create_key.json")
            self.assertEqual(result.exit_code, 0, result.output)
            with open("create_key.json") as f:
                saved = Keypair.from_bytes(bytes(json.load(f)))
        self.assertEqual(str(saved.pubkey()), field(result.output, "Create Key"))

    def test_propose_then_execute(self):
        multisig = self.create()
        destination = Keypair().pubkey()

        result = self.invoke("propose", multisig, "--transfer-to", str(destination), "--lamports", "5000")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(field(result.output, "Transaction Index"), "1")

        result = self.invoke("execute", multisig, "1")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn((Pubkey.from_string(multisig), 1), self.ledger.executed)
        self.assertEqual(self.ledger.proposal(Pubkey.from_string(multisig), 1)["status"], ProposalStatus.EXECUTED)

    def test_spending_limit(self):
        multisig = self.create()
        result = self.invoke("spending-limit", multisig, "--amount", "250", "--period", "week")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(len(self.ledger.state["spending_limits"]), 1)

    def test_show_proposal_json(self):
        multisig = self.create()
        self.invoke("propose", multisig)

        result = self.invoke("proposal", multisig, "1", "--format", "json")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('"status": "APPROVED"', result.output)
        self.assertIn(str(self.agent.pubkey()), result.output)

    def test_show_multisig_table(self):
        multisig = self.create()
        result = self.invoke("multisig", multisig)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Threshold:          1 of 2", result.output)

    def test_program_rejection_exits_nonzero(self):
        multisig = self.create("--threshold", "2")
        self.invoke("propose", multisig)

        result = self.invoke("execute", multisig, "1")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Error:", result.output)
        self.assertEqual(self.ledger.executed, [])

    def test_missing_agent_key(self):
        env = dict(self.env, AGENT_SECRET_KEY=None)
        result = self.invoke("create", env=env)
        self.assertEqual(result.exit_code, 1)
        self.assertIn("AGENT_SECRET_KEY is not configured", result.output)

    def test_show_refuses_accounts_of_other_programs(self):
        multisig = self.create()
        foreign = AccountInfo(str(Keypair().pubkey()), 1, b"\x00" * 200)
        self.ledger.foreign_accounts[Pubkey.from_string(multisig)] = foreign

        for args in (("multisig", multisig), ("proposal", multisig, "1")):
            result = self.invoke(*args)
            self.assertEqual(result.exit_code, 1)
            self.assertIn("is not a Squads multisig", result.output)

    def test_unknown_commitment_is_refused(self):
        env = dict(self.env, SOLANA_COMMITMENT="recent")
        with mock.patch("squads_orchestrator.cli.RpcLedger.from_settings", side_effect=build_rpc_ledger):
            result = self.invoke("multisig", str(Keypair().pubkey()), env=env)
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("Unknown commitment 'recent'", result.output)

    def test_missing_multisig(self):
        result = self.invoke("multisig", str(Keypair().pubkey()))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Multisig account not found", result.output)


if __name__ == "__main__":
    unittest.main()

import struct
import unittest
from unittest import TestCase

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.system_program import ID as SYSTEM_PROGRAM_ID, TransferParams, transfer

from squads_orchestrator.message import (
    compile_vault_message,
    parse_transaction_message,
    serialize_transaction_message,
)


class TestCompileVaultMessage(TestCase):
    def setUp(self):
        self.vault = Keypair().pubkey()
        self.destination = Keypair().pubkey()

    def test_empty_message_holds_only_the_vault(self):
        message = compile_vault_message(self.vault, [])
        self.assertEqual(message.account_keys, [self.vault])
        self.assertEqual(message.num_signers, 1)
        self.assertEqual(message.num_writable_signers, 1)
        self.assertEqual(message.num_writable_non_signers, 0)
        self.assertEqual(message.instructions, [])
        self.assertEqual(serialize_transaction_message(message), bytes([1, 1, 0, 1]) + bytes(self.vault) + b"\x00\x00")

    def test_transfer_orders_keys_by_role(self):
        ix = transfer(TransferParams(from_pubkey=self.vault, to_pubkey=self.destination, lamports=10))
        message = compile_vault_message(self.vault, [ix])

        self.assertEqual(message.account_keys, [self.vault, self.destination, SYSTEM_PROGRAM_ID])
        self.assertEqual((message.num_signers, message.num_writable_signers, message.num_writable_non_signers), (1, 1, 1))
        compiled = message.instructions[0]
        self.assertEqual(compiled.program_id_index, 2)
        self.assertEqual(compiled.account_indexes, [0, 1])
        self.assertEqual(compiled.data, bytes(ix.data))

    def test_flags_are_merged_across_instructions(self):
        program = Keypair().pubkey()
        shared = Keypair().pubkey()
        first = Instruction(program, b"\x01", [AccountMeta(shared, is_signer=False, is_writable=False)])
        second = Instruction(program, b"\x02", [AccountMeta(shared, is_signer=False, is_writable=True)])

        message = compile_vault_message(self.vault, [first, second])

        self.assertEqual(message.account_keys, [self.vault, shared, program])
        self.assertTrue(message.is_static_writable_index(1))
        self.assertFalse(message.is_static_writable_index(2))
        self.assertEqual(message.instructions[0].account_indexes, [1])

    def test_readonly_signer_index(self):
        program = Keypair().pubkey()
        signer = Keypair().pubkey()
        ix = Instruction(program, b"", [AccountMeta(signer, is_signer=True, is_writable=False)])
        message = compile_vault_message(self.vault, [ix])

        self.assertEqual(message.account_keys, [self.vault, signer, program])
        self.assertTrue(message.is_signer_index(1))
        self.assertFalse(message.is_static_writable_index(1))
        self.assertFalse(message.is_signer_index(2))

    def test_serialized_data_uses_u16_length(self):
        program = Keypair().pubkey()
        payload = bytes(range(200)) * 2
        message = compile_vault_message(self.vault, [Instruction(program, payload, [])])
        raw = serialize_transaction_message(message)

        # header (3) + keys (1 + 64) + ix count (1) + program index (1) + accounts (1)
        offset = 3 + 1 + 64 + 1 + 1 + 1
        self.assertEqual(struct.unpack_from("<H", raw, offset)[0], 400)

        parsed = parse_transaction_message(raw)
        self.assertEqual(parsed.account_keys, message.account_keys)
        self.assertEqual(parsed.instructions[0].data, payload)
        self.assertEqual(parsed.address_table_lookups, [])


if __name__ == "__main__":
    unittest.main()

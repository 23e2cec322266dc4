"""
Compile caller instructions into the message wrapped by a vault transaction.

The Squads program takes the inner message in its own compact encoding:

    u8  num_signers
    u8  num_writable_signers
    u8  num_writable_non_signers
    u8-prefixed  account_keys            (32 bytes each)
    u8-prefixed  instructions
        u8 program_id_index
        u8-prefixed account_indexes
        u16-prefixed data
    u8-prefixed  address_table_lookups
        32-byte account key
        u8-prefixed writable_indexes
        u8-prefixed readonly_indexes
"""

import struct
from typing import Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from .types import AddressTableLookupInfo, CompiledInstructionInfo, VaultTransactionMessage


def compile_vault_message(payer: Pubkey, instructions: Sequence[Instruction]) -> VaultTransactionMessage:
    """
    Compile `instructions` with `payer` (normally the vault PDA) as the first
    writable signer. Keys keep first-seen order inside each signer/writable group.
    """
    metas: dict[Pubkey, list[bool]] = {payer: [True, True]}

    def _add(key: Pubkey, is_signer: bool, is_writable: bool):
        flags = metas.setdefault(key, [False, False])
        flags[0] = flags[0] or is_signer
        flags[1] = flags[1] or is_writable

    for ix in instructions:
        _add(ix.program_id, False, False)
        for meta in ix.accounts:
            _add(meta.pubkey, meta.is_signer, meta.is_writable)

    writable_signers = [k for k, (s, w) in metas.items() if s and w]
    readonly_signers = [k for k, (s, w) in metas.items() if s and not w]
    writable_non_signers = [k for k, (s, w) in metas.items() if not s and w]
    readonly_non_signers = [k for k, (s, w) in metas.items() if not s and not w]
    account_keys = writable_signers + readonly_signers + writable_non_signers + readonly_non_signers
    index_of = {key: i for i, key in enumerate(account_keys)}

    compiled = [
        CompiledInstructionInfo(
            program_id_index=index_of[ix.program_id],
            account_indexes=[index_of[meta.pubkey] for meta in ix.accounts],
            data=bytes(ix.data),
        )
        for ix in instructions
    ]

    return VaultTransactionMessage(
        num_signers=len(writable_signers) + len(readonly_signers),
        num_writable_signers=len(writable_signers),
        num_writable_non_signers=len(writable_non_signers),
        account_keys=account_keys,
        instructions=compiled,
        address_table_lookups=[],
    )


def _small_vec(items: Sequence[int]) -> bytes:
    return bytes([len(items)]) + bytes(items)


def serialize_transaction_message(message: VaultTransactionMessage) -> bytes:
    out = bytearray()
    out += bytes([message.num_signers, message.num_writable_signers, message.num_writable_non_signers])

    out += bytes([len(message.account_keys)])
    for key in message.account_keys:
        out += bytes(key)

    out += bytes([len(message.instructions)])
    for ix in message.instructions:
        out += bytes([ix.program_id_index])
        out += _small_vec(ix.account_indexes)
        out += struct.pack("<H", len(ix.data)) + ix.data

    out += bytes([len(message.address_table_lookups)])
    for lookup in message.address_table_lookups:
        out += bytes(Pubkey.from_string(lookup.account_key))
        out += _small_vec(lookup.writable_indexes)
        out += _small_vec(lookup.readonly_indexes)

    return bytes(out)


def parse_transaction_message(data: bytes) -> VaultTransactionMessage:
    """Inverse of `serialize_transaction_message`."""
    offset = 3
    num_signers, num_writable_signers, num_writable_non_signers = data[0], data[1], data[2]

    def _read_small_vec():
        nonlocal offset
        length = data[offset]
        offset += 1
        items = list(data[offset:offset + length])
        offset += length
        return items

    key_count = data[offset]
    offset += 1
    account_keys = []
    for _ in range(key_count):
        account_keys.append(Pubkey(data[offset:offset + 32]))
        offset += 32

    ix_count = data[offset]
    offset += 1
    instructions = []
    for _ in range(ix_count):
        program_id_index = data[offset]
        offset += 1
        account_indexes = _read_small_vec()
        data_len = struct.unpack_from("<H", data, offset)[0]
        offset += 2
        instructions.append(CompiledInstructionInfo(
            program_id_index=program_id_index,
            account_indexes=account_indexes,
            data=bytes(data[offset:offset + data_len]),
        ))
        offset += data_len

    lookup_count = data[offset]
    offset += 1
    lookups = []
    for _ in range(lookup_count):
        account_key = str(Pubkey(data[offset:offset + 32]))
        offset += 32
        lookups.append(AddressTableLookupInfo(
            account_key=account_key,
            writable_indexes=_read_small_vec(),
            readonly_indexes=_read_small_vec(),
        ))

    return VaultTransactionMessage(
        num_signers=num_signers,
        num_writable_signers=num_writable_signers,
        num_writable_non_signers=num_writable_non_signers,
        account_keys=account_keys,
        instructions=instructions,
        address_table_lookups=lookups,
    )

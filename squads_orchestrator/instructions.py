"""
Squads v4 instruction builders.

Instruction data is an 8-byte Anchor discriminator (the first bytes of
sha256("global:<name>")) followed by the borsh-encoded arguments. Account
order follows the program's account structs.
"""

import hashlib
import struct
from typing import Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from .errors import UnsupportedTransactionError
from .message import serialize_transaction_message
from .pda import get_ephemeral_signer_pda, get_proposal_pda, get_transaction_pda, get_vault_pda
from .types import Period, VaultTransactionInfo, VaultTransactionMessage

PERMISSION_INITIATE = 1
PERMISSION_VOTE = 2
PERMISSION_EXECUTE = 4
PERMISSIONS_ALL = PERMISSION_INITIATE | PERMISSION_VOTE | PERMISSION_EXECUTE


def discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


# borsh helpers

def _u8(value: int) -> bytes:
    return struct.pack("<B", value)


def _u16(value: int) -> bytes:
    return struct.pack("<H", value)


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def _bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def _bytes_vec(value: bytes) -> bytes:
    return _u32(len(value)) + value


def _pubkey_vec(keys: Sequence[Pubkey]) -> bytes:
    return _u32(len(keys)) + b"".join(bytes(k) for k in keys)


def _option_pubkey(key: Optional[Pubkey]) -> bytes:
    if key is None:
        return b"\x00"
    return b"\x01" + bytes(key)


def _option_string(value: Optional[str]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + _bytes_vec(value.encode())


def multisig_create_v2(
    program_config: Pubkey,
    treasury: Pubkey,
    multisig_pda: Pubkey,
    create_key: Pubkey,
    creator: Pubkey,
    members: Sequence[tuple[Pubkey, int]],
    threshold: int,
    config_authority: Optional[Pubkey],
    time_lock: int,
    rent_collector: Optional[Pubkey],
    program_id: Pubkey,
    memo: Optional[str] = None,
) -> Instruction:
    """`members` is a list of (key, permission mask) pairs."""
    data = discriminator("multisig_create_v2")
    data += _option_pubkey(config_authority)
    data += _u16(threshold)
    data += _u32(len(members))
    for key, mask in members:
        data += bytes(key) + _u8(mask)
    data += _u32(time_lock)
    data += _option_pubkey(rent_collector)
    data += _option_string(memo)

    accounts = [
        AccountMeta(program_config, is_signer=False, is_writable=False),
        AccountMeta(treasury, is_signer=False, is_writable=True),
        AccountMeta(multisig_pda, is_signer=False, is_writable=True),
        AccountMeta(create_key, is_signer=True, is_writable=False),
        AccountMeta(creator, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def multisig_add_spending_limit(
    multisig_pda: Pubkey,
    config_authority: Pubkey,
    spending_limit: Pubkey,
    rent_payer: Pubkey,
    create_key: Pubkey,
    vault_index: int,
    mint: Pubkey,
    amount: int,
    period: Period,
    members: Sequence[Pubkey],
    destinations: Sequence[Pubkey],
    program_id: Pubkey,
    memo: Optional[str] = None,
) -> Instruction:
    data = discriminator("multisig_add_spending_limit")
    data += bytes(create_key)
    data += _u8(vault_index)
    data += bytes(mint)
    data += _u64(amount)
    data += _u8(int(period))
    data += _pubkey_vec(members)
    data += _pubkey_vec(destinations)
    data += _option_string(memo)

    accounts = [
        AccountMeta(multisig_pda, is_signer=False, is_writable=False),
        AccountMeta(config_authority, is_signer=True, is_writable=False),
        AccountMeta(spending_limit, is_signer=False, is_writable=True),
        AccountMeta(rent_payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def vault_transaction_create(
    multisig_pda: Pubkey,
    transaction_index: int,
    creator: Pubkey,
    rent_payer: Pubkey,
    vault_index: int,
    message: VaultTransactionMessage,
    program_id: Pubkey,
    ephemeral_signers: int = 0,
    memo: Optional[str] = None,
) -> Instruction:
    transaction_pda, _ = get_transaction_pda(multisig_pda, transaction_index, program_id)

    data = discriminator("vault_transaction_create")
    data += _u8(vault_index)
    data += _u8(ephemeral_signers)
    data += _bytes_vec(serialize_transaction_message(message))
    data += _option_string(memo)

    accounts = [
        AccountMeta(multisig_pda, is_signer=False, is_writable=True),
        AccountMeta(transaction_pda, is_signer=False, is_writable=True),
        AccountMeta(creator, is_signer=True, is_writable=False),
        AccountMeta(rent_payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def proposal_create(
    multisig_pda: Pubkey,
    transaction_index: int,
    creator: Pubkey,
    rent_payer: Pubkey,
    program_id: Pubkey,
    draft: bool = False,
) -> Instruction:
    proposal_pda, _ = get_proposal_pda(multisig_pda, transaction_index, program_id)

    data = discriminator("proposal_create") + _u64(transaction_index) + _bool(draft)

    accounts = [
        AccountMeta(multisig_pda, is_signer=False, is_writable=False),
        AccountMeta(proposal_pda, is_signer=False, is_writable=True),
        AccountMeta(creator, is_signer=True, is_writable=False),
        AccountMeta(rent_payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def _proposal_vote(
    name: str,
    multisig_pda: Pubkey,
    member: Pubkey,
    transaction_index: int,
    program_id: Pubkey,
    memo: Optional[str],
) -> Instruction:
    proposal_pda, _ = get_proposal_pda(multisig_pda, transaction_index, program_id)
    data = discriminator(name) + _option_string(memo)
    accounts = [
        AccountMeta(multisig_pda, is_signer=False, is_writable=False),
        AccountMeta(member, is_signer=True, is_writable=True),
        AccountMeta(proposal_pda, is_signer=False, is_writable=True),
    ]
    return Instruction(program_id, data, accounts)


def proposal_approve(multisig_pda, member, transaction_index, program_id, memo=None) -> Instruction:
    return _proposal_vote("proposal_approve", multisig_pda, member, transaction_index, program_id, memo)


def proposal_reject(multisig_pda, member, transaction_index, program_id, memo=None) -> Instruction:
    return _proposal_vote("proposal_reject", multisig_pda, member, transaction_index, program_id, memo)


def proposal_cancel(multisig_pda, member, transaction_index, program_id, memo=None) -> Instruction:
    return _proposal_vote("proposal_cancel", multisig_pda, member, transaction_index, program_id, memo)


def vault_transaction_execute(
    multisig_pda: Pubkey,
    transaction_index: int,
    member: Pubkey,
    transaction: VaultTransactionInfo,
    program_id: Pubkey,
) -> Instruction:
    """
    Build the execute instruction. The wrapped message's accounts are passed
    as remaining accounts; the vault and ephemeral signer PDAs sign inside the
    program, so they are marked as non-signers here.
    """
    message = transaction.message
    if message.address_table_lookups:
        raise UnsupportedTransactionError(
            f"Vault transaction {transaction_index} uses address lookup tables"
        )

    proposal_pda, _ = get_proposal_pda(multisig_pda, transaction_index, program_id)
    transaction_pda, _ = get_transaction_pda(multisig_pda, transaction_index, program_id)
    vault_pda, _ = get_vault_pda(multisig_pda, transaction.vault_index, program_id)
    program_signers = {vault_pda}
    for i in range(len(transaction.ephemeral_signer_bumps)):
        program_signers.add(get_ephemeral_signer_pda(transaction_pda, i, program_id)[0])

    accounts = [
        AccountMeta(multisig_pda, is_signer=False, is_writable=False),
        AccountMeta(proposal_pda, is_signer=False, is_writable=True),
        AccountMeta(transaction_pda, is_signer=False, is_writable=False),
        AccountMeta(member, is_signer=True, is_writable=False),
    ]
    for i, key in enumerate(message.account_keys):
        accounts.append(AccountMeta(
            key,
            is_signer=message.is_signer_index(i) and key not in program_signers,
            is_writable=message.is_static_writable_index(i),
        ))

    return Instruction(program_id, discriminator("vault_transaction_execute"), accounts)

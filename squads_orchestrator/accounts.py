"""Decoders for Squads v4 account data."""

import struct

from solders.pubkey import Pubkey

from .errors import AccountDecodeError, AccountNotFoundError
from .types import (
    AccountInfo,
    AddressTableLookupInfo,
    CompiledInstructionInfo,
    MemberInfo,
    MultisigInfo,
    ProgramConfigInfo,
    ProposalInfo,
    ProposalStatus,
    VaultTransactionInfo,
    VaultTransactionMessage,
)

SYSTEM_PROGRAM = "11111111111111111111111111111111"

# Proposal status variants that carry no timestamp.
_STATUS_WITHOUT_TIMESTAMP = {ProposalStatus.EXECUTING}


def parse_permissions(mask: int) -> list[str]:
    """Parse permission mask to list of permission names."""
    perms = []
    if mask & 1:
        perms.append("Proposer")
    if mask & 2:
        perms.append("Voter")
    if mask & 4:
        perms.append("Executor")
    return perms if perms else ["Unknown"]


def fetch_program_account(ledger, address: Pubkey, program_id: str, kind: str) -> AccountInfo:
    """Read an account and check that the Squads program owns it."""
    account = ledger.get_account_info(address)
    if account is None:
        raise AccountNotFoundError(f"{kind.capitalize()} account not found: {address}")
    if account.owner != program_id:
        raise AccountDecodeError(f"Account {address} is not a Squads {kind}. Owner: {account.owner}")
    return account


class _Reader:
    """Sequential little-endian reader over borsh account data."""

    def __init__(self, data: bytes, offset: int = 8):
        self.data = data
        self.offset = offset

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise AccountDecodeError(f"Account data too short: need {end} bytes, have {len(self.data)}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self) -> int:
        return self._take(1)[0]

    def u16(self) -> int:
        return struct.unpack("<H", self._take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def i64(self) -> int:
        return struct.unpack("<q", self._take(8))[0]

    def pubkey(self) -> Pubkey:
        return Pubkey(self._take(32))

    def option_pubkey(self):
        if self.u8() == 1:
            return self.pubkey()
        return None

    def bytes_vec(self) -> bytes:
        return self._take(self.u32())

    def pubkey_vec(self) -> list[Pubkey]:
        return [self.pubkey() for _ in range(self.u32())]


def decode_program_config(address: str, data: bytes) -> ProgramConfigInfo:
    """
    ProgramConfig layout:
    - bytes 0-7: discriminator
    - authority (32), multisig_creation_fee (u64), treasury (32), reserved (64)
    """
    reader = _Reader(data)
    authority = reader.pubkey()
    fee = reader.u64()
    treasury = reader.pubkey()
    return ProgramConfigInfo(
        address=address,
        authority=str(authority),
        multisig_creation_fee=fee,
        treasury=str(treasury),
    )


def decode_multisig(address: str, data: bytes) -> MultisigInfo:
    """
    Squads v4 Multisig Account Layout:
    - bytes 0-7: discriminator
    - byte 8: createKey (32 bytes)
    - byte 40: configAuthority (32 bytes)
    - byte 72: threshold (u16)
    - byte 74: timeLock (u32)
    - byte 78: transactionIndex (u64)
    - byte 86: staleTransactionIndex (u64)
    - byte 94: rentCollector (optional, 1 + 32 bytes)
    - then bump (u8) and members (4 bytes length + 33 bytes each)
    """
    reader = _Reader(data)

    create_key = str(reader.pubkey())

    config_authority = str(reader.pubkey())
    if config_authority == SYSTEM_PROGRAM:
        config_authority = None

    threshold = reader.u16()
    time_lock = reader.u32()
    transaction_index = reader.u64()
    stale_transaction_index = reader.u64()

    # No padding when the Option is None
    rent_collector = reader.option_pubkey()
    bump = reader.u8()

    members = []
    for _ in range(reader.u32()):
        member_key = str(reader.pubkey())
        mask = reader.u8()
        members.append(MemberInfo(
            address=member_key,
            permissions=parse_permissions(mask),
            mask=mask,
        ))

    return MultisigInfo(
        address=address,
        threshold=threshold,
        member_count=len(members),
        threshold_display=f"{threshold} of {len(members)}",
        time_lock_seconds=time_lock,
        create_key=create_key,
        config_authority=config_authority,
        rent_collector=str(rent_collector) if rent_collector else None,
        bump=bump,
        transaction_index=transaction_index,
        stale_transaction_index=stale_transaction_index,
        members=members,
    )


def decode_proposal(address: str, data: bytes) -> ProposalInfo:
    reader = _Reader(data)
    multisig = str(reader.pubkey())
    transaction_index = reader.u64()

    variant = reader.u8()
    try:
        status = ProposalStatus(variant)
    except ValueError as e:
        raise AccountDecodeError(f"Unknown proposal status variant {variant}") from e
    timestamp = None if status in _STATUS_WITHOUT_TIMESTAMP else reader.i64()

    bump = reader.u8()
    approved = [str(k) for k in reader.pubkey_vec()]
    rejected = [str(k) for k in reader.pubkey_vec()]
    cancelled = [str(k) for k in reader.pubkey_vec()]

    return ProposalInfo(
        address=address,
        multisig=multisig,
        transaction_index=transaction_index,
        status=status,
        status_timestamp=timestamp,
        bump=bump,
        approved=approved,
        rejected=rejected,
        cancelled=cancelled,
    )


def decode_vault_transaction(address: str, data: bytes) -> VaultTransactionInfo:
    reader = _Reader(data)
    multisig = str(reader.pubkey())
    creator = str(reader.pubkey())
    index = reader.u64()
    bump = reader.u8()
    vault_index = reader.u8()
    vault_bump = reader.u8()
    ephemeral_signer_bumps = list(reader.bytes_vec())

    num_signers = reader.u8()
    num_writable_signers = reader.u8()
    num_writable_non_signers = reader.u8()
    account_keys = reader.pubkey_vec()

    instructions = []
    for _ in range(reader.u32()):
        program_id_index = reader.u8()
        account_indexes = list(reader.bytes_vec())
        ix_data = reader.bytes_vec()
        instructions.append(CompiledInstructionInfo(program_id_index, account_indexes, ix_data))

    lookups = []
    for _ in range(reader.u32()):
        account_key = str(reader.pubkey())
        writable = list(reader.bytes_vec())
        readonly = list(reader.bytes_vec())
        lookups.append(AddressTableLookupInfo(account_key, writable, readonly))

    return VaultTransactionInfo(
        address=address,
        multisig=multisig,
        creator=creator,
        index=index,
        bump=bump,
        vault_index=vault_index,
        vault_bump=vault_bump,
        ephemeral_signer_bumps=ephemeral_signer_bumps,
        message=VaultTransactionMessage(
            num_signers=num_signers,
            num_writable_signers=num_writable_signers,
            num_writable_non_signers=num_writable_non_signers,
            account_keys=account_keys,
            instructions=instructions,
            address_table_lookups=lookups,
        ),
    )

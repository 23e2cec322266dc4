"""Type definitions for the Squads multisig orchestrator."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey


class Period(IntEnum):
    """Spending limit reset period."""
    ONE_TIME = 0
    DAY = 1
    WEEK = 2
    MONTH = 3


class ProposalStatus(IntEnum):
    """Proposal status variants in on-chain order."""
    DRAFT = 0
    ACTIVE = 1
    REJECTED = 2
    APPROVED = 3
    EXECUTING = 4
    EXECUTED = 5
    CANCELLED = 6


@dataclass
class AccountInfo:
    """Raw account as returned by the ledger."""
    owner: str
    lamports: int
    data: bytes
    executable: bool = False


@dataclass
class MemberInfo:
    """Multisig member information."""
    address: str
    permissions: list[str]
    mask: int = 0


@dataclass
class MultisigInfo:
    """Squads v4 multisig account information."""
    address: str
    threshold: int
    member_count: int
    threshold_display: str  # "1 of 2" format
    time_lock_seconds: int
    create_key: str
    config_authority: Optional[str]
    rent_collector: Optional[str]
    bump: int
    transaction_index: int
    stale_transaction_index: int
    members: list[MemberInfo]


@dataclass
class ProgramConfigInfo:
    """Squads v4 global program config."""
    address: str
    authority: str
    multisig_creation_fee: int
    treasury: str


@dataclass
class ProposalInfo:
    """Squads v4 proposal account."""
    address: str
    multisig: str
    transaction_index: int
    status: ProposalStatus
    status_timestamp: Optional[int]
    bump: int
    approved: list[str]
    rejected: list[str]
    cancelled: list[str]


@dataclass
class CompiledInstructionInfo:
    program_id_index: int
    account_indexes: list[int]
    data: bytes


@dataclass
class AddressTableLookupInfo:
    account_key: str
    writable_indexes: list[int]
    readonly_indexes: list[int]


@dataclass
class VaultTransactionMessage:
    """Compiled inner message of a vault transaction."""
    num_signers: int
    num_writable_signers: int
    num_writable_non_signers: int
    account_keys: list[Pubkey]
    instructions: list[CompiledInstructionInfo]
    address_table_lookups: list[AddressTableLookupInfo] = field(default_factory=list)

    def is_signer_index(self, index: int) -> bool:
        return index < self.num_signers

    def is_static_writable_index(self, index: int) -> bool:
        num_keys = len(self.account_keys)
        if index >= num_keys:
            return False
        if index < self.num_writable_signers:
            return True
        if index >= self.num_signers:
            return index - self.num_signers < self.num_writable_non_signers
        return False


@dataclass
class VaultTransactionInfo:
    """Squads v4 vault transaction account."""
    address: str
    multisig: str
    creator: str
    index: int
    bump: int
    vault_index: int
    vault_bump: int
    ephemeral_signer_bumps: list[int]
    message: VaultTransactionMessage


@dataclass
class CreateMultisigResult:
    instruction: Instruction
    create_key: Keypair
    multisig_pda: Pubkey


@dataclass
class SpendingLimitResult:
    instruction: Instruction
    create_key: Pubkey
    spending_limit_pda: Pubkey


@dataclass
class ProposalInstructions:
    """The three instructions that open and approve one proposal."""
    transaction_index: int
    vault_transaction_ix: Instruction
    proposal_ix: Instruction
    approve_ix: Instruction

    @property
    def instructions(self) -> list[Instruction]:
        return [self.vault_transaction_ix, self.proposal_ix, self.approve_ix]


@dataclass
class ProposalSubmission:
    transaction_index: int
    signature: str
    attempts: int = 1

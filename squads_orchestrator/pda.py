"""Program-derived addresses used by the Squads v4 program."""

import struct

from solders.pubkey import Pubkey

SEED_PREFIX = b"multisig"
SEED_PROGRAM_CONFIG = b"program_config"
SEED_MULTISIG = b"multisig"
SEED_VAULT = b"vault"
SEED_TRANSACTION = b"transaction"
SEED_PROPOSAL = b"proposal"
SEED_SPENDING_LIMIT = b"spending_limit"
SEED_EPHEMERAL_SIGNER = b"ephemeral_signer"


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def get_program_config_pda(program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address([SEED_PREFIX, SEED_PROGRAM_CONFIG], program_id)


def get_multisig_pda(create_key: Pubkey, program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [SEED_PREFIX, SEED_MULTISIG, bytes(create_key)], program_id
    )


def get_vault_pda(multisig_pda: Pubkey, index: int, program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig_pda), SEED_VAULT, bytes([index])], program_id
    )


def get_transaction_pda(multisig_pda: Pubkey, index: int, program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig_pda), SEED_TRANSACTION, _u64(index)], program_id
    )


def get_proposal_pda(multisig_pda: Pubkey, transaction_index: int, program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig_pda), SEED_TRANSACTION, _u64(transaction_index), SEED_PROPOSAL],
        program_id,
    )


def get_spending_limit_pda(multisig_pda: Pubkey, create_key: Pubkey, program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig_pda), SEED_SPENDING_LIMIT, bytes(create_key)], program_id
    )


def get_ephemeral_signer_pda(transaction_pda: Pubkey, index: int, program_id: Pubkey) -> tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(transaction_pda), SEED_EPHEMERAL_SIGNER, bytes([index])], program_id
    )

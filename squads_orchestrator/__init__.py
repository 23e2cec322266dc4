"""Squads Multisig Orchestrator - create, propose, approve and execute Squads v4 multisig transactions."""

from .config import Settings, load_config, load_keypair
from .errors import (
    OrchestratorError,
    RpcError,
    StaleTransactionIndexError,
    TransactionRejectedError,
)
from .ledger import Ledger, RpcLedger
from .orchestrator import MultisigOrchestrator
from .tracker import ProposalTracker, TrackedProposal
from .types import (
    MultisigInfo,
    MemberInfo,
    Period,
    ProposalInfo,
    ProposalStatus,
    ProposalInstructions,
    ProposalSubmission,
    VaultTransactionInfo,
)

__version__ = "1.0.0"
__all__ = [
    "Settings",
    "load_config",
    "load_keypair",
    "OrchestratorError",
    "RpcError",
    "StaleTransactionIndexError",
    "TransactionRejectedError",
    "Ledger",
    "RpcLedger",
    "MultisigOrchestrator",
    "ProposalTracker",
    "TrackedProposal",
    "MultisigInfo",
    "MemberInfo",
    "Period",
    "ProposalInfo",
    "ProposalStatus",
    "ProposalInstructions",
    "ProposalSubmission",
    "VaultTransactionInfo",
]

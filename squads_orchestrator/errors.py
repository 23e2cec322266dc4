"""Error types raised by the Squads orchestrator."""

from typing import Optional

# Anchor framework error raised when a PDA does not match its seeds.
ANCHOR_CONSTRAINT_SEEDS = 2006

# Squads v4 MultisigError codes (Anchor offsets them from 6000).
SQUADS_ERRORS = {
    6000: "DuplicateMember",
    6001: "EmptyMembers",
    6002: "TooManyMembers",
    6003: "InvalidThreshold",
    6004: "Unauthorized",
    6005: "NotAMember",
    6006: "InvalidTransactionMessage",
    6007: "StaleProposal",
    6008: "InvalidProposalStatus",
    6009: "InvalidTransactionIndex",
    6010: "AlreadyApproved",
    6011: "AlreadyRejected",
    6012: "AlreadyCancelled",
    6013: "InvalidNumberOfAccounts",
    6014: "InvalidAccount",
    6015: "RemoveLastMember",
    6016: "NoVoters",
    6017: "NoProposers",
    6018: "NoExecutors",
    6019: "InvalidStaleTransactionIndex",
    6020: "NotSupportedForControlled",
    6021: "TimeLockNotReleased",
    6022: "NoActions",
    6023: "MissingAccount",
    6024: "InvalidMint",
    6025: "InvalidDestination",
    6026: "SpendingLimitExceeded",
}

INDEX_CONFLICT_CODES = {ANCHOR_CONSTRAINT_SEEDS, 6009}


class OrchestratorError(Exception):
    """Base class for orchestrator errors."""


class ConfigError(OrchestratorError):
    """Missing or malformed configuration."""


class RpcError(OrchestratorError):
    """JSON-RPC level error returned by the ledger endpoint."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class AccountNotFoundError(OrchestratorError):
    """An account the orchestrator needs to read does not exist."""


class AccountDecodeError(OrchestratorError):
    """Account data could not be decoded into the expected layout."""


class UnsupportedTransactionError(OrchestratorError):
    """The vault transaction uses a feature this package cannot execute."""


class ConfirmationTimeoutError(OrchestratorError):
    """A submitted transaction was not confirmed in time."""

    def __init__(self, signature: str, timeout: float):
        super().__init__(f"Transaction {signature} not confirmed after {timeout}s")
        self.signature = signature


class TransactionRejectedError(OrchestratorError):
    """
    The ledger (or the program it runs) refused a submitted transaction.

    `err` is the raw transaction error object as returned by the RPC, e.g.
    ``{"InstructionError": [1, {"Custom": 2006}]}``.
    """

    def __init__(self, message: str, err=None, logs: Optional[list[str]] = None, signature: Optional[str] = None):
        super().__init__(message)
        self.err = err
        self.logs = logs or []
        self.signature = signature

    @property
    def instruction_index(self) -> Optional[int]:
        if isinstance(self.err, dict) and "InstructionError" in self.err:
            return self.err["InstructionError"][0]
        return None

    @property
    def custom_code(self) -> Optional[int]:
        if isinstance(self.err, dict) and "InstructionError" in self.err:
            detail = self.err["InstructionError"][1]
            if isinstance(detail, dict) and "Custom" in detail:
                return detail["Custom"]
        return None

    @property
    def program_error(self) -> Optional[str]:
        code = self.custom_code
        if code is None:
            return None
        if code == ANCHOR_CONSTRAINT_SEEDS:
            return "ConstraintSeeds"
        return SQUADS_ERRORS.get(code)

    @property
    def is_index_conflict(self) -> bool:
        """True when the rejection is caused by a stale transaction index."""
        if self.custom_code in INDEX_CONFLICT_CODES:
            return True
        return any("already in use" in line for line in self.logs)

    def __str__(self):
        base = super().__str__()
        name = self.program_error
        if name:
            return f"{base} ({name})"
        return base


class StaleTransactionIndexError(TransactionRejectedError):
    """A proposal was built against a transaction index that is no longer current."""

    def __init__(self, transaction_index: int, cause: TransactionRejectedError):
        super().__init__(
            f"Transaction index {transaction_index} is stale: {cause}",
            err=cause.err,
            logs=cause.logs,
            signature=cause.signature,
        )
        self.transaction_index = transaction_index

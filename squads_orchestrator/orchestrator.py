"""
Sequencing of Squads v4 calls: create a multisig, attach a spending limit,
propose/approve vault transactions and execute them.

All authoritative state lives on the ledger. Every operation that depends on
it (program config, transaction index, a vault transaction) performs exactly
one read; the program enforces thresholds and approvals, nothing is checked
locally.
"""

import logging
from typing import Optional, Sequence, Union

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import instructions as ixs
from .accounts import (
    decode_multisig,
    decode_program_config,
    decode_proposal,
    decode_vault_transaction,
    fetch_program_account,
)
from .config import Settings
from .errors import (
    ConfirmationTimeoutError,
    OrchestratorError,
    StaleTransactionIndexError,
    TransactionRejectedError,
)
from .ledger import Ledger
from .message import compile_vault_message
from .pda import (
    get_multisig_pda,
    get_program_config_pda,
    get_proposal_pda,
    get_spending_limit_pda,
    get_transaction_pda,
    get_vault_pda,
)
from .tracker import ProposalTracker
from .types import (
    AccountInfo,
    CreateMultisigResult,
    MultisigInfo,
    Period,
    ProgramConfigInfo,
    ProposalInfo,
    ProposalInstructions,
    ProposalSubmission,
    SpendingLimitResult,
    VaultTransactionInfo,
)

Principal = Union[Keypair, Pubkey]


def _key(principal: Principal) -> Pubkey:
    return principal.pubkey() if isinstance(principal, Keypair) else principal


def _signers(*principals) -> list[Keypair]:
    return [p for p in principals if isinstance(p, Keypair)]


class MultisigOrchestrator:
    def __init__(
        self,
        ledger: Ledger,
        fee_payer: Keypair,
        agent: Keypair,
        settings: Optional[Settings] = None,
        create_key: Optional[Keypair] = None,
        multisig_pda: Optional[Pubkey] = None,
        tracker: Optional[ProposalTracker] = None,
    ):
        """
        Either pass `multisig_pda` to drive an existing multisig, or let the
        orchestrator derive one from `create_key` (a fresh keypair by default).
        """
        self.ledger = ledger
        self.fee_payer = fee_payer
        self.agent = agent
        self.settings = settings or Settings()
        self.program_id = self.settings.program_pubkey
        self.tracker = tracker or ProposalTracker()

        if multisig_pda is not None:
            self.create_key = create_key
            self.multisig_pda = multisig_pda
        else:
            self.create_key = create_key or Keypair()
            self.multisig_pda = get_multisig_pda(self.create_key.pubkey(), self.program_id)[0]

        self.vault_pda = self.get_vault(0)

    def get_vault(self, vault_index: int) -> Pubkey:
        return get_vault_pda(self.multisig_pda, vault_index, self.program_id)[0]

    # Reads

    def _fetch(self, address: Pubkey, kind: str) -> AccountInfo:
        return fetch_program_account(self.ledger, address, self.settings.program_id, kind)

    def fetch_program_config(self) -> ProgramConfigInfo:
        address = get_program_config_pda(self.program_id)[0]
        return decode_program_config(str(address), self._fetch(address, "program config").data)

    def fetch_multisig(self) -> MultisigInfo:
        return decode_multisig(str(self.multisig_pda), self._fetch(self.multisig_pda, "multisig").data)

    def fetch_proposal(self, transaction_index: int) -> ProposalInfo:
        address = get_proposal_pda(self.multisig_pda, transaction_index, self.program_id)[0]
        return decode_proposal(str(address), self._fetch(address, "proposal").data)

    def fetch_vault_transaction(self, transaction_index: int) -> VaultTransactionInfo:
        address = get_transaction_pda(self.multisig_pda, transaction_index, self.program_id)[0]
        return decode_vault_transaction(str(address), self._fetch(address, "vault transaction").data)

    def refresh(self, transaction_index: int) -> ProposalInfo:
        """Reread a proposal and sync the tracker with it."""
        proposal = self.fetch_proposal(transaction_index)
        self.tracker.update_from_account(proposal)
        return proposal

    # Instruction builders

    def initialize(
        self,
        members: Optional[Sequence[Principal]] = None,
        threshold: int = 1,
        time_lock: int = 0,
        memo: Optional[str] = None,
    ) -> CreateMultisigResult:
        """Build the create instruction; every member gets full permissions."""
        if self.create_key is None:
            raise OrchestratorError("initialize needs the create key of the multisig")

        program_config = self.fetch_program_config()
        member_keys = [_key(m) for m in (members or [self.fee_payer, self.agent])]

        ix = ixs.multisig_create_v2(
            program_config=get_program_config_pda(self.program_id)[0],
            treasury=Pubkey.from_string(program_config.treasury),
            multisig_pda=self.multisig_pda,
            create_key=self.create_key.pubkey(),
            creator=self.fee_payer.pubkey(),
            members=[(k, ixs.PERMISSIONS_ALL) for k in member_keys],
            threshold=threshold,
            config_authority=self.fee_payer.pubkey(),
            time_lock=time_lock,
            rent_collector=self.fee_payer.pubkey(),
            program_id=self.program_id,
            memo=memo,
        )
        logging.info(f"Built multisig create for {self.multisig_pda} ({threshold} of {len(member_keys)})")
        return CreateMultisigResult(instruction=ix, create_key=self.create_key, multisig_pda=self.multisig_pda)

    def attach_spending_limit(
        self,
        mint: Pubkey,
        amount: int,
        authorized_members: Optional[Sequence[Principal]] = None,
        period: Period = Period.DAY,
        destinations: Sequence[Pubkey] = (),
        vault_index: int = 0,
        memo: Optional[str] = None,
    ) -> SpendingLimitResult:
        """Each call uses a new create key, so repeated calls add separate limits."""
        create_key = Keypair().pubkey()
        spending_limit = get_spending_limit_pda(self.multisig_pda, create_key, self.program_id)[0]
        members = [_key(m) for m in (authorized_members or [self.agent])]

        ix = ixs.multisig_add_spending_limit(
            multisig_pda=self.multisig_pda,
            config_authority=self.fee_payer.pubkey(),
            spending_limit=spending_limit,
            rent_payer=self.fee_payer.pubkey(),
            create_key=create_key,
            vault_index=vault_index,
            mint=mint,
            amount=amount,
            period=period,
            members=members,
            destinations=list(destinations),
            program_id=self.program_id,
            memo=memo,
        )
        logging.info(f"Built spending limit {spending_limit}: {amount} of {mint} per {Period(period).name.lower()}")
        return SpendingLimitResult(instruction=ix, create_key=create_key, spending_limit_pda=spending_limit)

    def _build_proposal(self, instructions, proposer, vault_index, memo) -> tuple[ProposalInstructions, MultisigInfo]:
        proposer_key = _key(proposer)
        multisig = self.fetch_multisig()
        transaction_index = multisig.transaction_index + 1
        logging.debug(f"Multisig {self.multisig_pda} at index {multisig.transaction_index}, proposing {transaction_index}")

        message = compile_vault_message(self.get_vault(vault_index), instructions)
        proposal = ProposalInstructions(
            transaction_index=transaction_index,
            vault_transaction_ix=ixs.vault_transaction_create(
                multisig_pda=self.multisig_pda,
                transaction_index=transaction_index,
                creator=proposer_key,
                rent_payer=self.fee_payer.pubkey(),
                vault_index=vault_index,
                message=message,
                program_id=self.program_id,
                memo=memo,
            ),
            proposal_ix=ixs.proposal_create(
                multisig_pda=self.multisig_pda,
                transaction_index=transaction_index,
                creator=proposer_key,
                rent_payer=self.fee_payer.pubkey(),
                program_id=self.program_id,
            ),
            approve_ix=ixs.proposal_approve(self.multisig_pda, proposer_key, transaction_index, self.program_id),
        )
        return proposal, multisig

    def propose_and_approve(
        self,
        instructions: Sequence[Instruction],
        proposer: Optional[Principal] = None,
        vault_index: int = 0,
        memo: Optional[str] = None,
    ) -> ProposalInstructions:
        """
        Wrap `instructions` in a vault transaction at the next transaction
        index, open a proposal for it and approve it as `proposer`.

        The index is read once; if another proposal lands first, the program
        rejects the submission. Use `submit_proposal` to retry on that.
        """
        proposal, _ = self._build_proposal(instructions, proposer or self.agent, vault_index, memo)
        self.tracker.track(str(self.multisig_pda), proposal.transaction_index)
        return proposal

    def approve(self, transaction_index: int, member: Optional[Principal] = None) -> Instruction:
        member_key = _key(member or self.agent)
        return ixs.proposal_approve(self.multisig_pda, member_key, transaction_index, self.program_id)

    def reject(self, transaction_index: int, member: Optional[Principal] = None) -> Instruction:
        member_key = _key(member or self.agent)
        return ixs.proposal_reject(self.multisig_pda, member_key, transaction_index, self.program_id)

    def cancel(self, transaction_index: int, member: Optional[Principal] = None) -> Instruction:
        member_key = _key(member or self.agent)
        return ixs.proposal_cancel(self.multisig_pda, member_key, transaction_index, self.program_id)

    def execute(self, transaction_index: int, member: Optional[Principal] = None) -> Instruction:
        """Build the execute instruction; the program checks the threshold."""
        transaction = self.fetch_vault_transaction(transaction_index)
        return ixs.vault_transaction_execute(
            multisig_pda=self.multisig_pda,
            transaction_index=transaction_index,
            member=_key(member or self.agent),
            transaction=transaction,
            program_id=self.program_id,
        )

    # Submission

    def submit(self, instructions: Sequence[Instruction], extra_signers: Sequence[Keypair] = ()) -> str:
        """Sign with exactly the required signers, send, and optionally confirm."""
        blockhash = self.ledger.get_latest_blockhash()
        message = Message.new_with_blockhash(list(instructions), self.fee_payer.pubkey(), blockhash)
        required = list(message.account_keys[:message.header.num_required_signatures])

        available = {}
        for kp in [self.fee_payer, self.agent, self.create_key, *extra_signers]:
            if kp is not None:
                available.setdefault(kp.pubkey(), kp)
        missing = [str(k) for k in required if k not in available]
        if missing:
            raise OrchestratorError(f"Missing signer(s): {', '.join(missing)}")

        transaction = Transaction([available[k] for k in required], message, blockhash)
        signature = self.ledger.send_transaction(transaction)
        logging.info(f"Submitted transaction {signature}")
        if self.settings.confirm:
            self.ledger.confirm_transaction(signature)
            logging.info(f"Confirmed transaction {signature}")
        return signature

    def create_multisig(self, members=None, threshold: int = 1, time_lock: int = 0) -> tuple[CreateMultisigResult, str]:
        result = self.initialize(members, threshold=threshold, time_lock=time_lock)
        return result, self.submit([result.instruction])

    def add_spending_limit(self, mint: Pubkey, amount: int, **kwargs) -> tuple[SpendingLimitResult, str]:
        result = self.attach_spending_limit(mint, amount, **kwargs)
        return result, self.submit([result.instruction])

    def _submit_proposal_once(self, instructions, proposer, vault_index, memo) -> ProposalSubmission:
        proposal, multisig = self._build_proposal(instructions, proposer, vault_index, memo)
        def _record(signature):
            self.tracker.mark_submitted(
                str(self.multisig_pda),
                proposal.transaction_index,
                signature,
                approvals=(str(_key(proposer)),),
                threshold=multisig.threshold,
                member_count=multisig.member_count,
            )

        # Tracked only once the ledger has accepted the transaction
        try:
            signature = self.submit(proposal.instructions, extra_signers=_signers(proposer))
        except TransactionRejectedError as e:
            if e.is_index_conflict:
                raise StaleTransactionIndexError(proposal.transaction_index, e) from e
            raise
        except ConfirmationTimeoutError as e:
            # Sent but unconfirmed; it may still land
            _record(e.signature)
            raise

        _record(signature)
        return ProposalSubmission(transaction_index=proposal.transaction_index, signature=signature)

    def submit_proposal(
        self,
        instructions: Sequence[Instruction],
        proposer: Optional[Principal] = None,
        vault_index: int = 0,
        memo: Optional[str] = None,
    ) -> ProposalSubmission:
        """
        Propose and approve, retrying with a fresh index read when the program
        rejects the transaction index as stale. Other failures propagate.
        """
        proposer = proposer or self.agent

        def _log_retry(retry_state):
            logging.warning(
                f"Stale transaction index on attempt {retry_state.attempt_number}, "
                f"re-reading multisig {self.multisig_pda}"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.settings.max_propose_attempts),
            wait=wait_exponential(
                multiplier=self.settings.retry_wait_min,
                min=self.settings.retry_wait_min,
                max=self.settings.retry_wait_max,
            ),
            retry=retry_if_exception_type(StaleTransactionIndexError),
            before_sleep=_log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                submission = self._submit_proposal_once(instructions, proposer, vault_index, memo)
                submission.attempts = attempt.retry_state.attempt_number
        logging.info(f"Proposal {submission.transaction_index} submitted in {submission.signature}")
        return submission

    def _record_vote(self, mark, transaction_index: int, member: Principal, signature: str) -> None:
        entry = mark(str(self.multisig_pda), transaction_index, str(_key(member)), signature)
        if entry.threshold is None and self.settings.confirm:
            # Proposed elsewhere: only the ledger knows where the votes stand
            self.refresh(transaction_index)

    def approve_proposal(self, transaction_index: int, member: Optional[Principal] = None) -> str:
        member = member or self.agent
        signature = self.submit([self.approve(transaction_index, member)], extra_signers=_signers(member))
        self._record_vote(self.tracker.mark_approved, transaction_index, member, signature)
        return signature

    def reject_proposal(self, transaction_index: int, member: Optional[Principal] = None) -> str:
        member = member or self.agent
        signature = self.submit([self.reject(transaction_index, member)], extra_signers=_signers(member))
        self._record_vote(self.tracker.mark_rejected, transaction_index, member, signature)
        return signature

    def cancel_proposal(self, transaction_index: int, member: Optional[Principal] = None) -> str:
        member = member or self.agent
        signature = self.submit([self.cancel(transaction_index, member)], extra_signers=_signers(member))
        self._record_vote(self.tracker.mark_cancelled, transaction_index, member, signature)
        return signature

    def execute_proposal(self, transaction_index: int, member: Optional[Principal] = None) -> str:
        member = member or self.agent
        signature = self.submit([self.execute(transaction_index, member)], extra_signers=_signers(member))
        self.tracker.mark_executed(str(self.multisig_pda), transaction_index, signature)
        logging.info(f"Executed transaction {transaction_index} of {self.multisig_pda}")
        return signature

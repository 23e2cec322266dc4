"""In-memory bookkeeping of proposals keyed by (multisig address, transaction index)."""

from dataclasses import dataclass, field
from typing import Optional

from .types import ProposalInfo, ProposalStatus

FINAL_STATUSES = {ProposalStatus.EXECUTED, ProposalStatus.REJECTED, ProposalStatus.CANCELLED}


@dataclass
class TrackedProposal:
    multisig: str
    transaction_index: int
    status: ProposalStatus = ProposalStatus.DRAFT
    approvals: set[str] = field(default_factory=set)
    rejections: set[str] = field(default_factory=set)
    cancellations: set[str] = field(default_factory=set)
    signatures: list[str] = field(default_factory=list)
    submitted: bool = False
    # Multisig shape at proposal time; None when the proposal was not submitted here
    threshold: Optional[int] = None
    member_count: Optional[int] = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.multisig, self.transaction_index)

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES


class ProposalTracker:
    """
    Records what this process built, submitted and observed for each proposal.
    The ledger stays authoritative; nothing here gates an operation.

    Vote methods apply the program's transition rules locally when the
    threshold is known, so the status reflects the votes this process sent.
    `update_from_account` replaces that guess with what the ledger reports.
    """

    def __init__(self):
        self._proposals: dict[tuple[str, int], TrackedProposal] = {}

    def __len__(self):
        return len(self._proposals)

    def __contains__(self, key):
        return key in self._proposals

    def get(self, multisig: str, transaction_index: int) -> Optional[TrackedProposal]:
        return self._proposals.get((multisig, transaction_index))

    def track(self, multisig: str, transaction_index: int) -> TrackedProposal:
        key = (multisig, transaction_index)
        if key not in self._proposals:
            self._proposals[key] = TrackedProposal(multisig, transaction_index)
        return self._proposals[key]

    def forget(self, multisig: str, transaction_index: int) -> None:
        self._proposals.pop((multisig, transaction_index), None)

    def mark_submitted(self, multisig: str, transaction_index: int, signature: str,
                       approvals: tuple[str, ...] = (), threshold: Optional[int] = None,
                       member_count: Optional[int] = None) -> TrackedProposal:
        entry = self.track(multisig, transaction_index)
        entry.submitted = True
        entry.signatures.append(signature)
        entry.approvals.update(approvals)
        if threshold is not None:
            entry.threshold = threshold
        if member_count is not None:
            entry.member_count = member_count
        if entry.status == ProposalStatus.DRAFT:
            entry.status = ProposalStatus.ACTIVE
        if entry.threshold is not None and len(entry.approvals) >= entry.threshold:
            entry.status = ProposalStatus.APPROVED
        return entry

    def mark_approved(self, multisig: str, transaction_index: int, member: str, signature: str) -> TrackedProposal:
        entry = self.track(multisig, transaction_index)
        entry.signatures.append(signature)
        entry.approvals.add(member)
        if (entry.status in (ProposalStatus.DRAFT, ProposalStatus.ACTIVE)
                and entry.threshold is not None and len(entry.approvals) >= entry.threshold):
            self.mark_status(multisig, transaction_index, ProposalStatus.APPROVED)
        return entry

    def mark_rejected(self, multisig: str, transaction_index: int, member: str, signature: str) -> TrackedProposal:
        """A proposal is rejected once approval can no longer reach the threshold."""
        entry = self.track(multisig, transaction_index)
        entry.signatures.append(signature)
        entry.rejections.add(member)
        if entry.threshold is not None and entry.member_count is not None:
            if len(entry.rejections) > entry.member_count - entry.threshold:
                self.mark_status(multisig, transaction_index, ProposalStatus.REJECTED)
        return entry

    def mark_cancelled(self, multisig: str, transaction_index: int, member: str, signature: str) -> TrackedProposal:
        entry = self.track(multisig, transaction_index)
        entry.signatures.append(signature)
        entry.cancellations.add(member)
        if entry.threshold is not None and len(entry.cancellations) >= entry.threshold:
            self.mark_status(multisig, transaction_index, ProposalStatus.CANCELLED)
        return entry

    def mark_executed(self, multisig: str, transaction_index: int, signature: str) -> TrackedProposal:
        return self.mark_status(multisig, transaction_index, ProposalStatus.EXECUTED, signature)

    def mark_status(self, multisig: str, transaction_index: int, status: ProposalStatus,
                    signature: Optional[str] = None) -> TrackedProposal:
        entry = self.track(multisig, transaction_index)
        if signature:
            entry.signatures.append(signature)
        entry.status = status
        return entry

    def update_from_account(self, proposal: ProposalInfo) -> TrackedProposal:
        """Replace local state with what the ledger reports."""
        entry = self.track(proposal.multisig, proposal.transaction_index)
        entry.status = proposal.status
        entry.approvals = set(proposal.approved)
        entry.rejections = set(proposal.rejected)
        entry.cancellations = set(proposal.cancelled)
        entry.submitted = True
        return entry

    def pending(self, multisig: Optional[str] = None) -> list[TrackedProposal]:
        """Non-final proposals, oldest index first."""
        entries = [
            p for p in self._proposals.values()
            if not p.is_final and (multisig is None or p.multisig == multisig)
        ]
        return sorted(entries, key=lambda p: p.key)

    def all(self) -> list[TrackedProposal]:
        return sorted(self._proposals.values(), key=lambda p: p.key)

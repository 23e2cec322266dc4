"""Output formatters for multisig and proposal state."""

import json
from enum import Enum
from typing import Optional

from .types import MultisigInfo, ProposalInfo


def to_dict(obj):
    if hasattr(obj, "__dataclass_fields__"):
        return {k: to_dict(v) for k, v in obj.__dict__.items()}
    elif isinstance(obj, Enum):
        return obj.name
    elif isinstance(obj, (list, tuple)):
        return [to_dict(item) for item in obj]
    elif isinstance(obj, set):
        return sorted(to_dict(item) for item in obj)
    elif isinstance(obj, bytes):
        return obj.hex()
    elif isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    else:
        return str(obj)


def format_json(obj, pretty: bool = True) -> str:
    """Format any result dataclass as JSON."""
    data = to_dict(obj)
    if pretty:
        return json.dumps(data, indent=2)
    return json.dumps(data)


def format_multisig_table(multisig: MultisigInfo) -> str:
    """Format a multisig account as a table."""
    lines = []
    divider = "─" * 70

    lines.append(divider)
    lines.append(f"MULTISIG: {multisig.address}")
    lines.append(divider)
    lines.append(f"Threshold:          {multisig.threshold_display}")
    lines.append(f"Timelock (seconds): {multisig.time_lock_seconds}")
    lines.append(f"Transaction Index:  {multisig.transaction_index}")
    lines.append(f"Stale Index:        {multisig.stale_transaction_index}")
    lines.append(f"Create Key:         {multisig.create_key}")
    if multisig.config_authority:
        lines.append(f"Config Authority:   {multisig.config_authority}")
    if multisig.rent_collector:
        lines.append(f"Rent Collector:     {multisig.rent_collector}")

    lines.append("")
    lines.append("Members:")
    for member in multisig.members:
        lines.append(f"  {member.address}")
        lines.append(f"    Permissions: {', '.join(member.permissions)}")

    lines.append(divider)

    return "\n".join(lines)


def format_proposal_table(proposal: ProposalInfo, threshold: Optional[int] = None) -> str:
    """Format a proposal account as a table."""
    lines = []
    divider = "─" * 70

    lines.append(divider)
    lines.append(f"PROPOSAL: {proposal.address}")
    lines.append(divider)
    lines.append(f"Multisig:           {proposal.multisig}")
    lines.append(f"Transaction Index:  {proposal.transaction_index}")
    lines.append(f"Status:             {proposal.status.name.title()}")
    if threshold is not None:
        lines.append(f"Approvals:          {len(proposal.approved)} of {threshold} required")

    for title, members in (
        ("Approved", proposal.approved),
        ("Rejected", proposal.rejected),
        ("Cancelled", proposal.cancelled),
    ):
        if members:
            lines.append("")
            lines.append(f"{title}:")
            for member in members:
                lines.append(f"  {member}")

    lines.append(divider)

    return "\n".join(lines)

"""Transaction identifiers, lifecycle models and errors."""

from .exceptions import (
    CommitInvalid,
    CommitTimeout,
    EndorsementMismatch,
    EndorsementRejected,
    EndorsementTimeout,
    InvalidTransition,
    ProposalConsumed,
    SubmissionFailed,
    SubmissionTimeout,
    TransactionError,
    TransactionIDReused,
)
from .models import (
    CommitEvent,
    InvocationState,
    InvocationStatus,
    OrdererResponse,
    Proposal,
    ProposalKind,
    ProposalResponse,
)
from .txid import TransactionID, compute_tx_id, new_transaction_id

__all__ = [
    "TransactionError",
    "EndorsementTimeout",
    "EndorsementRejected",
    "EndorsementMismatch",
    "SubmissionFailed",
    "SubmissionTimeout",
    "CommitTimeout",
    "CommitInvalid",
    "TransactionIDReused",
    "ProposalConsumed",
    "InvalidTransition",
    "CommitEvent",
    "InvocationState",
    "InvocationStatus",
    "OrdererResponse",
    "Proposal",
    "ProposalKind",
    "ProposalResponse",
    "TransactionID",
    "compute_tx_id",
    "new_transaction_id",
]

"""Transaction lifecycle errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from ..exceptions import FabtxError

if TYPE_CHECKING:
    from .models import InvocationStatus


class TransactionError(FabtxError):
    """Base class for failures of a single transaction.

    Every subclass carries the transaction id, the phase that failed and,
    where one is to blame, the peer. ``status`` is attached by the
    operation layer so callers can inspect how far the invocation got.
    """

    tx_id: str
    phase: str
    peer: Optional[str]
    status: Optional["InvocationStatus"] = None


@dataclass
class EndorsementTimeout(TransactionError):
    tx_id: str
    peers: List[str]
    timeout: float
    phase: str = field(default="endorse", init=False)

    def __post_init__(self) -> None:
        self.peer = self.peers[0] if self.peers else None
        names = ", ".join(self.peers)
        super().__init__(
            f"{self.tx_id}: no endorsement from {names} within {self.timeout:g}s"
        )


@dataclass
class EndorsementRejected(TransactionError):
    tx_id: str
    peers: List[str]
    message: str
    phase: str = field(default="endorse", init=False)

    def __post_init__(self) -> None:
        self.peer = self.peers[0] if self.peers else None
        super().__init__(f"{self.tx_id}: endorsement rejected ({self.message})")


@dataclass
class EndorsementMismatch(TransactionError):
    tx_id: str
    peer: Optional[str]
    message: str
    phase: str = field(default="endorse", init=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.tx_id}: inconsistent endorsements ({self.message})")


@dataclass
class SubmissionFailed(TransactionError):
    tx_id: str
    peer: Optional[str]
    message: str
    orderer_status: Optional[str] = None
    phase: str = field(default="order", init=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.tx_id}: ordering failed ({self.message})")


@dataclass
class SubmissionTimeout(TransactionError):
    tx_id: str
    peer: Optional[str]
    timeout: float
    phase: str = field(default="order", init=False)

    def __post_init__(self) -> None:
        super().__init__(
            f"{self.tx_id}: no ordering response from {self.peer} within {self.timeout:g}s"
        )


@dataclass
class CommitTimeout(TransactionError):
    tx_id: str
    timeout: Optional[float]
    reason: str = "deadline elapsed"
    phase: str = field(default="commit", init=False)

    def __post_init__(self) -> None:
        self.peer = None
        window = f" within {self.timeout:g}s" if self.timeout is not None else ""
        super().__init__(f"{self.tx_id}: commit not observed{window} ({self.reason})")


@dataclass
class CommitInvalid(TransactionError):
    tx_id: str
    peer: Optional[str]
    code: str
    phase: str = field(default="commit", init=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.tx_id}: {self.peer} reported commit code {self.code}")


@dataclass
class TransactionIDReused(FabtxError):
    tx_id: str

    def __post_init__(self) -> None:
        super().__init__(f"transaction id {self.tx_id} has already been used")


@dataclass
class ProposalConsumed(FabtxError):
    tx_id: str

    def __post_init__(self) -> None:
        super().__init__(f"proposal {self.tx_id} has already been sent")


@dataclass
class InvalidTransition(FabtxError):
    tx_id: str
    current: str
    target: str

    def __post_init__(self) -> None:
        super().__init__(
            f"{self.tx_id}: cannot move invocation status from {self.current} to {self.target}"
        )

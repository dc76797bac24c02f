"""Data models for the transaction lifecycle."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .exceptions import InvalidTransition, ProposalConsumed
from .txid import TransactionID

SUCCESS_STATUS = 200
ORDERER_SUCCESS = "SUCCESS"
VALID_CODE = "VALID"


class ProposalKind(str, Enum):
    INSTALL = "install"
    INSTANTIATE = "instantiate"
    UPGRADE = "upgrade"
    INVOKE = "invoke"
    QUERY = "query"


@dataclass
class Proposal:
    kind: ProposalKind
    channel: str
    chaincode_id: str
    tx_id: TransactionID
    fcn: str = "invoke"
    args: List[str] = field(default_factory=list)
    chaincode_version: Optional[str] = None
    chaincode_path: Optional[str] = None
    transient_map: Dict[str, bytes] = field(default_factory=dict)
    endorsement_policy: Optional[dict] = None
    _consumed: bool = field(default=False, init=False, repr=False, compare=False)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def consume(self) -> None:
        """Mark the proposal as sent; a proposal is only ever sent once."""

        if self._consumed:
            raise ProposalConsumed(tx_id=self.tx_id.value)
        self._consumed = True

    def header_bytes(self) -> bytes:
        parts = [
            self.kind.value,
            self.channel,
            self.chaincode_id,
            self.chaincode_version or "",
            self.fcn,
            *self.args,
        ]
        return "\x00".join(parts).encode("utf-8") + self.tx_id.nonce + self.tx_id.creator


@dataclass(frozen=True)
class ProposalResponse:
    peer: str
    status: int
    payload: bytes = b""
    rwset_digest: bytes = b""
    message: str = ""
    endorsement: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS_STATUS

    @classmethod
    def failed(cls, peer: str, exc: BaseException) -> "ProposalResponse":
        return cls(peer=peer, status=500, message=f"{type(exc).__name__}: {exc}")


@dataclass(frozen=True)
class OrdererResponse:
    status: str
    info: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ORDERER_SUCCESS


@dataclass(frozen=True)
class CommitEvent:
    tx_id: str
    code: str
    stream: str
    block_number: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self.code == VALID_CODE


class InvocationState(str, Enum):
    CREATED = "created"
    ENDORSED = "endorsed"
    ORDERED = "ordered"
    VALID = "valid"
    INVALID = "invalid"

    @property
    def terminal(self) -> bool:
        return self in (InvocationState.VALID, InvocationState.INVALID)


_STATE_ORDER = {
    InvocationState.CREATED: 0,
    InvocationState.ENDORSED: 1,
    InvocationState.ORDERED: 2,
    InvocationState.VALID: 3,
    InvocationState.INVALID: 3,
}


@dataclass
class InvocationStatus:
    """Progress record of one invocation, mutated in place as phases complete."""

    id: str
    status: InvocationState = InvocationState.CREATED
    time_create: float = field(default_factory=time.monotonic)
    time_endorse: float = 0.0
    time_order: float = 0.0
    time_valid: float = 0.0
    result: Optional[bytes] = None

    @property
    def terminal(self) -> bool:
        return self.status.terminal

    def advance(self, target: InvocationState) -> None:
        if self.terminal or _STATE_ORDER[target] <= _STATE_ORDER[self.status]:
            raise InvalidTransition(
                tx_id=self.id, current=self.status.value, target=target.value
            )
        now = time.monotonic()
        if target is InvocationState.ENDORSED:
            self.time_endorse = now
        elif target is InvocationState.ORDERED:
            self.time_order = now
        elif target is InvocationState.VALID:
            self.time_valid = now
        self.status = target

    def mark_endorsed(self, result: Optional[bytes]) -> None:
        self.advance(InvocationState.ENDORSED)
        self.result = result

    def mark_ordered(self) -> None:
        self.advance(InvocationState.ORDERED)

    def mark_valid(self) -> None:
        self.advance(InvocationState.VALID)

    def mark_invalid(self) -> None:
        self.advance(InvocationState.INVALID)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "time_create": self.time_create,
            "time_endorse": self.time_endorse,
            "time_order": self.time_order,
            "time_valid": self.time_valid,
            "result": self.result.decode("utf-8", "replace") if self.result is not None else None,
        }

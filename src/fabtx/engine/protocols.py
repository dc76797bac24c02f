"""Contracts for the network collaborators driven by the engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from ..config import OrdererConfig, PeerConfig
from ..transactions.models import CommitEvent, OrdererResponse, Proposal, ProposalResponse

if TYPE_CHECKING:
    from .submit import TransactionEnvelope

EventCallback = Callable[[CommitEvent], None]
ErrorCallback = Callable[[BaseException], None]


@runtime_checkable
class SigningIdentity(Protocol):
    mspid: str
    certificate: bytes

    def sign(self, message: bytes) -> bytes: ...


@runtime_checkable
class PeerClient(Protocol):
    name: str

    async def send_proposal(self, proposal: Proposal, signature: bytes) -> ProposalResponse: ...

    async def close(self) -> None: ...


@runtime_checkable
class OrdererClient(Protocol):
    name: str

    async def broadcast(self, envelope: "TransactionEnvelope") -> OrdererResponse: ...

    async def close(self) -> None: ...


@runtime_checkable
class EventStream(Protocol):
    name: str

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...

    def register_tx_event(
        self, tx_id: str, on_event: EventCallback, on_error: ErrorCallback
    ) -> None: ...

    def unregister_tx_event(self, tx_id: str) -> None: ...


class Connector(Protocol):
    """Builds network clients from configuration entries."""

    def peer(self, name: str, config: PeerConfig) -> PeerClient: ...

    def orderer(self, config: OrdererConfig) -> OrdererClient: ...

    def event_stream(self, name: str, config: PeerConfig) -> EventStream: ...


"""Session context holding the connections for a unit of work."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

from ..config import EngineConfig, NetworkConfig
from ..exceptions import SessionError
from ..transactions.exceptions import TransactionIDReused
from ..transactions.txid import TransactionID, new_transaction_id
from .endorsement import EndorsementMode
from .events import CommitPolicy, EventCorrelator
from .protocols import Connector, EventStream, OrdererClient, PeerClient, SigningIdentity
from .submit import TransactionSubmitter

logger = logging.getLogger(__name__)


class SessionContext:
    """Identity, channel and live connections shared by many operations.

    Operations only read from the session; each keeps its own invocation
    status. ``release`` tears down every subscription and connection and
    may be called more than once.
    """

    def __init__(
        self,
        *,
        network: NetworkConfig,
        org: str,
        channel: str,
        identity: SigningIdentity,
        connector: Connector,
        peers: Dict[str, PeerClient],
        orderer: OrdererClient,
        event_streams: List[EventStream],
    ) -> None:
        self.network = network
        self.org = org
        self.channel = channel
        self.identity = identity
        self.connector = connector
        self.peers = peers
        self.orderer = orderer
        self.event_streams = event_streams
        self.settings: EngineConfig = network.engine
        self.endorsement_mode = EndorsementMode(self.settings.endorsement_mode)
        self.correlator = EventCorrelator(event_streams, CommitPolicy(self.settings.commit_policy))
        self.submitter = TransactionSubmitter(orderer, identity)
        self._issued: Set[str] = set()
        self._extra_peers: Dict[str, PeerClient] = {}
        self._released = False

    @classmethod
    async def open(
        cls,
        network: NetworkConfig,
        identity: SigningIdentity,
        connector: Connector,
        *,
        channel: str,
        org: Optional[str] = None,
    ) -> "SessionContext":
        try:
            channel_config = network.channel(channel)
        except KeyError as exc:
            raise SessionError(str(exc.args[0])) from exc
        org = org or channel_config.organizations[0]
        if org not in channel_config.organizations:
            raise SessionError(f"organization {org} is not a member of channel {channel}")

        # an event listener can only register with a peer in its own org
        event_peers = network.organization(org).event_peers()
        if not event_peers:
            raise SessionError(f"organization {org} has no peer with an events endpoint")

        peers: Dict[str, PeerClient] = {}
        orderer: Optional[OrdererClient] = None
        streams: List[EventStream] = []
        try:
            for name, peer_config in network.channel_peers(channel).items():
                peers[name] = connector.peer(name, peer_config)
            orderer = connector.orderer(network.orderer)
            for key, peer_config in event_peers.items():
                streams.append(connector.event_stream(f"{org}.{key}", peer_config))
        except BaseException:
            closers = [peer.close() for peer in peers.values()]
            if orderer is not None:
                closers.append(orderer.close())
            _log_release_errors(org, await asyncio.gather(*closers, return_exceptions=True))
            raise

        session = cls(
            network=network,
            org=org,
            channel=channel,
            identity=identity,
            connector=connector,
            peers=peers,
            orderer=orderer,
            event_streams=streams,
        )
        try:
            await asyncio.gather(*(stream.connect() for stream in streams))
        except BaseException:
            await session.release_quietly()
            raise
        logger.debug(
            "opened session for %s on %s with %d peers and %d event streams",
            org,
            channel,
            len(peers),
            len(streams),
        )
        return session

    @property
    def released(self) -> bool:
        return self._released

    def endorsing_peers(self) -> List[PeerClient]:
        return list(self.peers.values())

    def peers_for_org(self, org: str) -> List[PeerClient]:
        """Peer clients for every peer of *org*, connecting any not yet known."""

        self._ensure_open()
        try:
            organization = self.network.organization(org)
        except KeyError as exc:
            raise SessionError(str(exc.args[0])) from exc
        clients: List[PeerClient] = []
        for key, peer_config in organization.peers.items():
            name = f"{org}.{key}"
            client = self.peers.get(name) or self._extra_peers.get(name)
            if client is None:
                client = self.connector.peer(name, peer_config)
                self._extra_peers[name] = client
            clients.append(client)
        return clients

    def new_transaction_id(self, *, nonce: Optional[bytes] = None) -> TransactionID:
        self._ensure_open()
        tx_id = new_transaction_id(self.identity.mspid, self.identity.certificate, nonce=nonce)
        if tx_id.value in self._issued:
            raise TransactionIDReused(tx_id=tx_id.value)
        self._issued.add(tx_id.value)
        return tx_id

    async def release(self) -> None:
        """Abandon pending commit waits and close every connection.

        Raises ``SessionError`` if any connection fails to close; the others
        are still closed.
        """

        errors = await self._close()
        if errors:
            raise SessionError(f"failed to release session for {self.org}: {errors[0]}") from errors[0]

    async def release_quietly(self) -> None:
        """Release the session while another error is propagating; close errors are logged."""

        _log_release_errors(self.org, await self._close())

    async def _close(self) -> List[BaseException]:
        if self._released:
            return []
        self._released = True
        self.correlator.cancel_all()

        closers = [stream.disconnect() for stream in self.event_streams if stream.is_connected()]
        closers.extend(peer.close() for peer in self.peers.values())
        closers.extend(peer.close() for peer in self._extra_peers.values())
        closers.append(self.orderer.close())
        results = await asyncio.gather(*closers, return_exceptions=True)
        self._extra_peers.clear()
        logger.debug("released session for %s on %s", self.org, self.channel)
        return [result for result in results if isinstance(result, BaseException)]

    def _ensure_open(self) -> None:
        if self._released:
            raise SessionError("session has been released")


def _log_release_errors(org: str, results: Sequence[object]) -> None:
    for result in results:
        if isinstance(result, BaseException):
            logger.warning("error while releasing session for %s: %s", org, result, exc_info=result)


@asynccontextmanager
async def open_session(
    network: NetworkConfig,
    identity: SigningIdentity,
    connector: Connector,
    *,
    channel: str,
    org: Optional[str] = None,
) -> AsyncIterator[SessionContext]:
    """Open a session and release it on every exit path.

    When the body raises, release errors are logged and the body's error
    propagates unchanged.
    """

    session = await SessionContext.open(
        network, identity, connector, channel=channel, org=org
    )
    try:
        yield session
    except BaseException:
        await session.release_quietly()
        raise
    await session.release()

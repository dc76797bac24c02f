"""Concurrent collection of proposal endorsements."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Sequence

from ..transactions.exceptions import EndorsementTimeout
from ..transactions.models import Proposal, ProposalResponse
from .protocols import PeerClient

logger = logging.getLogger(__name__)


class EndorsementMode(str, Enum):
    """How the collector reacts to a peer missing the deadline.

    ``FAIL_FAST`` cancels the outstanding calls as soon as one peer times
    out. ``WAIT_ALL`` lets every peer run to its own deadline and reports
    all late peers together. Both fail the collection on any timeout.
    """

    FAIL_FAST = "fail_fast"
    WAIT_ALL = "wait_all"


async def collect_endorsements(
    proposal: Proposal,
    peers: Sequence[PeerClient],
    signature: bytes,
    *,
    timeout: float,
    mode: EndorsementMode = EndorsementMode.FAIL_FAST,
) -> List[ProposalResponse]:
    """Send *proposal* to every peer concurrently and return responses in peer order."""

    if not peers:
        raise ValueError("at least one target peer is required")
    if timeout <= 0:
        raise ValueError("timeout must be positive")

    proposal.consume()
    tx_id = proposal.tx_id.value
    logger.debug("sending proposal %s to %d peers", tx_id, len(peers))

    tasks = [
        asyncio.create_task(_endorse(peer, proposal, signature, timeout), name=peer.name)
        for peer in peers
    ]
    try:
        if mode is EndorsementMode.FAIL_FAST:
            await _wait_fail_fast(tx_id, tasks, timeout)
        else:
            await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    late = [task.get_name() for task in tasks if task.result() is None]
    if late:
        logger.debug("proposal %s timed out on %s", tx_id, ", ".join(late))
        raise EndorsementTimeout(tx_id=tx_id, peers=late, timeout=timeout)

    responses = [task.result() for task in tasks]
    logger.debug("collected %d responses for %s", len(responses), tx_id)
    return responses


async def _wait_fail_fast(tx_id: str, tasks: List[asyncio.Task], timeout: float) -> None:
    pending = set(tasks)
    while pending:
        done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.result() is None:
                raise EndorsementTimeout(tx_id=tx_id, peers=[task.get_name()], timeout=timeout)


async def _endorse(
    peer: PeerClient, proposal: Proposal, signature: bytes, timeout: float
) -> Optional[ProposalResponse]:
    """Return the peer's response, ``None`` on timeout, or an error response."""

    try:
        return await asyncio.wait_for(peer.send_proposal(proposal, signature), timeout)
    except asyncio.TimeoutError:
        return None
    except Exception as exc:
        logger.warning("peer %s failed to endorse %s: %s", peer.name, proposal.tx_id, exc)
        return ProposalResponse.failed(peer.name, exc)

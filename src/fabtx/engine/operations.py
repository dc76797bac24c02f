"""Chaincode operations built on the endorsement, ordering and commit stages."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from ..config import ChaincodeConfig
from ..transactions.exceptions import CommitInvalid, TransactionError
from ..transactions.models import (
    InvocationStatus,
    Proposal,
    ProposalKind,
    ProposalResponse,
)
from .endorsement import collect_endorsements
from .protocols import PeerClient
from .session import SessionContext
from .validation import (
    ValidatedEndorsements,
    check_statuses,
    validate_endorsements,
    validate_query_responses,
)

logger = logging.getLogger(__name__)

UPGRADE_TRANSIENT_MAP = {"test": b"transientValue"}


@dataclass
class InvokeCall:
    chaincode_id: str
    args: List[str]
    transient_map: Dict[str, bytes] = field(default_factory=dict)


async def invoke(
    session: SessionContext,
    chaincode_id: str,
    args: Sequence[str],
    *,
    timeout: Optional[float] = None,
    transient_map: Optional[Dict[str, bytes]] = None,
) -> InvocationStatus:
    """Invoke *chaincode_id* and wait until the transaction is committed.

    ``args[0]`` names the chaincode function; the remaining items are its
    arguments. Endorsement is bounded by ``engine.request_timeout`` and the
    broadcast by ``engine.submit_timeout``. *timeout* (default
    ``engine.invoke_timeout``) is a budget measured from the start of the
    call; the commit wait gets whatever is left of it once endorsement is
    done, but never less than ``engine.min_event_timeout``. The whole call
    can therefore run longer than *timeout*.
    """

    if not args:
        raise ValueError("args must start with the chaincode function name")
    started = time.monotonic()
    budget = timeout if timeout is not None else session.settings.invoke_timeout

    tx_id = session.new_transaction_id()
    status = InvocationStatus(id=tx_id.value)
    proposal = Proposal(
        kind=ProposalKind.INVOKE,
        channel=session.channel,
        chaincode_id=chaincode_id,
        tx_id=tx_id,
        fcn=args[0],
        args=list(args[1:]),
        transient_map=dict(transient_map or {}),
    )

    try:
        endorsements = await _endorse(session, proposal, session.endorsing_peers())
        status.mark_endorsed(endorsements.payload)
        remaining = budget - (time.monotonic() - started)
        if remaining < session.settings.min_event_timeout:
            logger.warning(
                "timeout for %s is too small (%.3fs left), using %.3fs instead",
                tx_id,
                remaining,
                session.settings.min_event_timeout,
            )
            remaining = session.settings.min_event_timeout
        await _order_and_commit(session, proposal, endorsements, status, remaining)
    except TransactionError as exc:
        exc.status = status
        logger.info("invoke %s failed in %s phase: %s", tx_id, exc.phase, exc)
        raise
    return status


async def invoke_all(
    session: SessionContext,
    calls: Sequence[InvokeCall],
    *,
    timeout: Optional[float] = None,
) -> List[Union[InvocationStatus, TransactionError]]:
    """Run *calls* concurrently, returning each status or transaction error in order.

    Only ``TransactionError`` is collected; anything else propagates.
    """

    async def run(call: InvokeCall) -> Union[InvocationStatus, TransactionError]:
        try:
            return await invoke(
                session,
                call.chaincode_id,
                call.args,
                timeout=timeout,
                transient_map=call.transient_map,
            )
        except TransactionError as exc:
            return exc

    return list(await asyncio.gather(*(run(call) for call in calls)))


async def query(
    session: SessionContext,
    chaincode_id: str,
    args: Sequence[str],
    *,
    version: Optional[str] = None,
) -> InvocationStatus:
    """Evaluate a chaincode function on every endorsing peer without ordering it."""

    if not args:
        raise ValueError("args must start with the chaincode function name")
    tx_id = session.new_transaction_id()
    status = InvocationStatus(id=tx_id.value)
    proposal = Proposal(
        kind=ProposalKind.QUERY,
        channel=session.channel,
        chaincode_id=chaincode_id,
        chaincode_version=version,
        tx_id=tx_id,
        fcn=args[0],
        args=list(args[1:]),
    )
    try:
        responses = await _collect(session, proposal, session.endorsing_peers())
        payload = validate_query_responses(tx_id.value, responses)
    except TransactionError as exc:
        exc.status = status
        raise
    status.mark_endorsed(payload)
    status.mark_valid()
    return status


async def install_chaincode(
    session: SessionContext, org: str, chaincode: ChaincodeConfig
) -> List[ProposalResponse]:
    """Install *chaincode* on every peer of *org*; nothing is ordered."""

    tx_id = session.new_transaction_id()
    proposal = Proposal(
        kind=ProposalKind.INSTALL,
        channel=chaincode.channel,
        chaincode_id=chaincode.id,
        chaincode_version=chaincode.version,
        chaincode_path=chaincode.path,
        tx_id=tx_id,
        fcn="install",
    )
    responses = await _collect(session, proposal, session.peers_for_org(org))
    check_statuses(tx_id.value, responses)
    logger.info("installed %s %s on %d peers of %s", chaincode.id, chaincode.version, len(responses), org)
    return responses


async def instantiate_chaincode(
    session: SessionContext,
    chaincode: ChaincodeConfig,
    *,
    endorsement_policy: Optional[dict] = None,
    upgrade: bool = False,
) -> InvocationStatus:
    """Instantiate (or upgrade) *chaincode* on the session channel."""

    tx_id = session.new_transaction_id()
    status = InvocationStatus(id=tx_id.value)
    proposal = Proposal(
        kind=ProposalKind.UPGRADE if upgrade else ProposalKind.INSTANTIATE,
        channel=session.channel,
        chaincode_id=chaincode.id,
        chaincode_version=chaincode.version,
        chaincode_path=chaincode.path,
        tx_id=tx_id,
        fcn="init",
        transient_map=dict(UPGRADE_TRANSIENT_MAP) if upgrade else {},
        endorsement_policy=endorsement_policy,
    )
    try:
        endorsements = await _endorse(session, proposal, session.endorsing_peers())
        status.mark_endorsed(endorsements.payload)
        await _order_and_commit(
            session, proposal, endorsements, status, session.settings.instantiate_timeout
        )
    except TransactionError as exc:
        exc.status = status
        raise
    logger.info("%s of %s %s committed", proposal.kind.value, chaincode.id, chaincode.version)
    return status


async def _collect(
    session: SessionContext, proposal: Proposal, peers: Sequence[PeerClient]
) -> List[ProposalResponse]:
    signature = session.identity.sign(proposal.header_bytes())
    return await collect_endorsements(
        proposal,
        peers,
        signature,
        timeout=session.settings.request_timeout,
        mode=session.endorsement_mode,
    )


async def _endorse(
    session: SessionContext, proposal: Proposal, peers: Sequence[PeerClient]
) -> ValidatedEndorsements:
    responses = await _collect(session, proposal, peers)
    return validate_endorsements(proposal.tx_id.value, responses)


async def _order_and_commit(
    session: SessionContext,
    proposal: Proposal,
    endorsements: ValidatedEndorsements,
    status: InvocationStatus,
    commit_timeout: float,
) -> None:
    # Subscribe before broadcasting so an early commit event is not missed.
    waiter = session.correlator.register(proposal.tx_id.value)
    try:
        await session.submitter.submit(
            proposal, endorsements, timeout=session.settings.submit_timeout
        )
    except BaseException:
        waiter.discard()
        raise
    status.mark_ordered()

    try:
        await waiter.wait(commit_timeout)
    except CommitInvalid:
        status.mark_invalid()
        raise
    status.mark_valid()

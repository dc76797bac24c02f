"""Assembly and single-shot broadcast of endorsed transactions."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import List

from ..transactions.exceptions import SubmissionFailed, SubmissionTimeout
from ..transactions.models import OrdererResponse, Proposal
from .protocols import OrdererClient, SigningIdentity
from .validation import ValidatedEndorsements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionEnvelope:
    tx_id: str
    proposal: Proposal
    endorsements: List[bytes]
    payload: bytes
    digest: bytes
    signature: bytes


def build_envelope(
    proposal: Proposal, endorsements: ValidatedEndorsements, identity: SigningIdentity
) -> TransactionEnvelope:
    hasher = hashlib.sha256(proposal.header_bytes())
    hasher.update(endorsements.responses[0].rwset_digest)
    hasher.update(endorsements.payload)
    for response in endorsements.responses:
        hasher.update(response.endorsement)
    digest = hasher.digest()
    return TransactionEnvelope(
        tx_id=proposal.tx_id.value,
        proposal=proposal,
        endorsements=[response.endorsement for response in endorsements.responses],
        payload=endorsements.payload,
        digest=digest,
        signature=identity.sign(digest),
    )


class TransactionSubmitter:
    """Send endorsed transactions to the ordering service.

    The orderer is the only sequencing authority, so a broadcast is never
    repeated here: after an ambiguous failure the transaction may or may
    not have been ordered, and only the caller can decide what to do.
    """

    def __init__(self, orderer: OrdererClient, identity: SigningIdentity) -> None:
        self.orderer = orderer
        self.identity = identity

    async def submit(
        self,
        proposal: Proposal,
        endorsements: ValidatedEndorsements,
        *,
        timeout: float,
    ) -> OrdererResponse:
        envelope = build_envelope(proposal, endorsements, self.identity)
        tx_id = envelope.tx_id
        logger.debug("broadcasting %s to %s", tx_id, self.orderer.name)
        try:
            response = await asyncio.wait_for(self.orderer.broadcast(envelope), timeout)
        except asyncio.TimeoutError as exc:
            raise SubmissionTimeout(tx_id=tx_id, peer=self.orderer.name, timeout=timeout) from exc
        except Exception as exc:
            raise SubmissionFailed(
                tx_id=tx_id,
                peer=self.orderer.name,
                message=f"{type(exc).__name__}: {exc}",
            ) from exc

        if not response.ok:
            message = f"status {response.status}"
            if response.info:
                message += f" ({response.info})"
            raise SubmissionFailed(
                tx_id=tx_id,
                peer=self.orderer.name,
                message=message,
                orderer_status=response.status,
            )
        logger.debug("%s accepted by %s", tx_id, self.orderer.name)
        return response

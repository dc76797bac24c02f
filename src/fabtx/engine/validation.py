"""Cross-checks of proposal responses before they are used."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from ..transactions.exceptions import EndorsementMismatch, EndorsementRejected
from ..transactions.models import ProposalResponse


@dataclass(frozen=True)
class ValidatedEndorsements:
    responses: List[ProposalResponse]
    payload: bytes

    @property
    def peers(self) -> List[str]:
        return [response.peer for response in self.responses]


def validate_endorsements(
    tx_id: str, responses: Sequence[ProposalResponse]
) -> ValidatedEndorsements:
    """Accept *responses* only if all succeeded with identical read/write sets.

    Rejections are reported before mismatches so a caller can tell a refusal
    (abort) from divergent simulation results (retry).
    """

    check_statuses(tx_id, responses)
    first = responses[0]
    for response in responses[1:]:
        if response.rwset_digest != first.rwset_digest:
            raise EndorsementMismatch(
                tx_id=tx_id,
                peer=response.peer,
                message=f"read/write set of {response.peer} differs from {first.peer}",
            )
    return ValidatedEndorsements(responses=list(responses), payload=first.payload)


def validate_query_responses(tx_id: str, responses: Sequence[ProposalResponse]) -> bytes:
    """Return the payload all peers agree on."""

    check_statuses(tx_id, responses)
    first = responses[0]
    for response in responses[1:]:
        if response.payload != first.payload:
            raise EndorsementMismatch(
                tx_id=tx_id,
                peer=response.peer,
                message=f"query result of {response.peer} differs from {first.peer}",
            )
    return first.payload


def check_statuses(tx_id: str, responses: Sequence[ProposalResponse]) -> None:
    if not responses:
        raise EndorsementRejected(tx_id=tx_id, peers=[], message="no proposal responses")
    rejected = [response for response in responses if not response.ok]
    if rejected:
        details = "; ".join(
            f"{response.peer}: status {response.status}"
            + (f" {response.message}" if response.message else "")
            for response in rejected
        )
        raise EndorsementRejected(
            tx_id=tx_id,
            peers=[response.peer for response in rejected],
            message=details,
        )

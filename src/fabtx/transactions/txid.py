"""Transaction identifiers derived from the submitter identity and a nonce."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Optional

NONCE_SIZE = 24


@dataclass(frozen=True)
class TransactionID:
    value: str
    nonce: bytes
    creator: bytes

    def __str__(self) -> str:
        return self.value


def serialize_identity(mspid: str, certificate: bytes) -> bytes:
    """Serialize an identity the way it is embedded in a proposal header."""

    return mspid.encode("utf-8") + b"\n" + certificate


def compute_tx_id(nonce: bytes, creator: bytes) -> str:
    """Return the hex SHA256 of ``nonce || creator``."""

    return hashlib.sha256(nonce + creator).hexdigest()


def new_transaction_id(
    mspid: str, certificate: bytes, *, nonce: Optional[bytes] = None
) -> TransactionID:
    if nonce is None:
        nonce = os.urandom(NONCE_SIZE)
    creator = serialize_identity(mspid, certificate)
    return TransactionID(value=compute_tx_id(nonce, creator), nonce=nonce, creator=creator)

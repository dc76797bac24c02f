"""Transaction engine orchestration."""

from .endorsement import EndorsementMode, collect_endorsements
from .events import CommitPolicy, CommitWaiter, EventCorrelator, WaiterState
from .operations import (
    InvokeCall,
    install_chaincode,
    instantiate_chaincode,
    invoke,
    invoke_all,
    query,
)
from .protocols import Connector, EventStream, OrdererClient, PeerClient, SigningIdentity
from .session import SessionContext, open_session
from .submit import TransactionEnvelope, TransactionSubmitter, build_envelope
from .validation import ValidatedEndorsements, validate_endorsements, validate_query_responses

__all__ = [
    "EndorsementMode",
    "collect_endorsements",
    "ValidatedEndorsements",
    "validate_endorsements",
    "validate_query_responses",
    "TransactionEnvelope",
    "TransactionSubmitter",
    "build_envelope",
    "CommitPolicy",
    "CommitWaiter",
    "EventCorrelator",
    "WaiterState",
    "SessionContext",
    "open_session",
    "InvokeCall",
    "invoke",
    "invoke_all",
    "query",
    "install_chaincode",
    "instantiate_chaincode",
    "Connector",
    "EventStream",
    "OrdererClient",
    "PeerClient",
    "SigningIdentity",
]

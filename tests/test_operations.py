"""End-to-end tests for chaincode operations against in-memory collaborators."""

from __future__ import annotations

import asyncio
import gc
import logging

import pytest

from fakes import FakeConnector, FakeIdentity, FakeOrderer, FakePeer, make_network
from fabtx.engine import (
    InvokeCall,
    install_chaincode,
    instantiate_chaincode,
    invoke,
    invoke_all,
    open_session,
    query,
)
from fabtx.transactions import (
    CommitInvalid,
    CommitTimeout,
    EndorsementMismatch,
    EndorsementRejected,
    InvocationState,
    ProposalKind,
    SubmissionFailed,
    TransactionError,
)

PAYLOAD = b"0123456789"


def _session(connector: FakeConnector, **engine):
    return open_session(make_network(**engine), FakeIdentity(), connector, channel="mychannel")


@pytest.mark.asyncio
async def test_invoke_commits_with_order_timestamp() -> None:
    connector = FakeConnector()
    async with _session(connector) as session:
        status = await invoke(session, "simple", ["move", "a", "b", "10"])
        assert session.correlator.pending == frozenset()

    assert status.status is InvocationState.VALID
    assert status.time_order > 0
    assert status.time_create <= status.time_endorse <= status.time_order <= status.time_valid
    assert status.result == b"result"
    proposal = connector.peers["org1.peer1"].proposals[0]
    assert proposal.fcn == "move"
    assert proposal.args == ["a", "b", "10"]
    assert proposal.kind is ProposalKind.INVOKE
    assert len(connector.orderer_client.envelopes) == 1


@pytest.mark.asyncio
async def test_invoke_does_not_mutate_caller_args() -> None:
    args = ["move", "a", "b", "10"]
    async with _session(FakeConnector()) as session:
        await invoke(session, "simple", args)
    assert args == ["move", "a", "b", "10"]


@pytest.mark.asyncio
async def test_invoke_times_out_in_ordered_state() -> None:
    connector = FakeConnector(orderer=FakeOrderer(commit_code=None))
    async with _session(connector) as session:
        with pytest.raises(CommitTimeout) as exc:
            await invoke(session, "simple", ["move", "a", "b", "10"], timeout=0.1)

        status = exc.value.status
        assert status is not None
        assert status.status is InvocationState.ORDERED
        assert status.time_valid == 0.0
        assert session.correlator.pending == frozenset()
        assert all(stream.registrations == {} for stream in connector.streams.values())


@pytest.mark.asyncio
async def test_invoke_with_two_peers_agreeing_on_digest() -> None:
    peers = {
        "org1.peer1": FakePeer("org1.peer1", payload=b"first", digest=PAYLOAD),
        "org1.peer2": FakePeer("org1.peer2", payload=b"second", digest=PAYLOAD),
        "org2.peer1": FakePeer("org2.peer1", payload=b"third", digest=PAYLOAD),
    }
    async with _session(FakeConnector(peers=peers)) as session:
        status = await invoke(session, "simple", ["move", "a", "b", "1"])
    assert status.result == b"first"


@pytest.mark.asyncio
async def test_invoke_mismatch_stops_before_ordering() -> None:
    connector = FakeConnector(peers={"org2.peer1": FakePeer("org2.peer1", digest=b"different!")})
    async with _session(connector) as session:
        with pytest.raises(EndorsementMismatch) as exc:
            await invoke(session, "simple", ["move", "a", "b", "1"])

    assert exc.value.peer == "org2.peer1"
    assert exc.value.status.status is InvocationState.CREATED
    assert connector.orderer_client.envelopes == []


@pytest.mark.asyncio
async def test_invoke_rejected_endorsement() -> None:
    connector = FakeConnector(peers={"org1.peer2": FakePeer("org1.peer2", status=500)})
    async with _session(connector) as session:
        with pytest.raises(EndorsementRejected):
            await invoke(session, "simple", ["move", "a", "b", "1"])
    assert connector.orderer_client.envelopes == []


@pytest.mark.asyncio
async def test_failed_submission_cancels_commit_waiter() -> None:
    connector = FakeConnector(orderer=FakeOrderer(status="SERVICE_UNAVAILABLE"))
    async with _session(connector) as session:
        with pytest.raises(SubmissionFailed) as exc:
            await invoke(session, "simple", ["move", "a", "b", "1"])

        assert exc.value.status.status is InvocationState.ENDORSED
        assert session.correlator.pending == frozenset()
        assert all(stream.registrations == {} for stream in connector.streams.values())


@pytest.mark.asyncio
async def test_invalid_commit_marks_status_invalid() -> None:
    connector = FakeConnector(orderer=FakeOrderer(commit_code="MVCC_READ_CONFLICT"))
    async with _session(connector) as session:
        with pytest.raises(CommitInvalid) as exc:
            await invoke(session, "simple", ["move", "a", "b", "1"])

    assert exc.value.code == "MVCC_READ_CONFLICT"
    assert exc.value.status.status is InvocationState.INVALID


@pytest.mark.asyncio
async def test_small_remaining_budget_is_floored(caplog: pytest.LogCaptureFixture) -> None:
    connector = FakeConnector(
        peers={"org1.peer1": FakePeer("org1.peer1", delay=0.05)},
        orderer=FakeOrderer(commit_delay=0.02),
    )
    async with _session(connector) as session:
        with caplog.at_level(logging.WARNING, logger="fabtx.engine.operations"):
            status = await invoke(session, "simple", ["move", "a", "b", "1"], timeout=0.01)

    assert status.status is InvocationState.VALID
    assert "too small" in caplog.text


@pytest.mark.asyncio
async def test_invoke_all_returns_errors_explicitly() -> None:
    connector = FakeConnector()
    async with _session(connector) as session:
        results = await invoke_all(
            session,
            [
                InvokeCall("simple", ["move", "a", "b", "1"]),
                InvokeCall("simple", ["move", "b", "a", "2"]),
            ],
        )
    assert [result.status for result in results] == [InvocationState.VALID, InvocationState.VALID]
    assert results[0].id != results[1].id

    failing = FakeConnector(orderer=FakeOrderer(commit_code=None))
    async with _session(failing) as session:
        results = await invoke_all(session, [InvokeCall("simple", ["move", "a", "b", "1"])], timeout=0.05)
    assert isinstance(results[0], TransactionError)
    assert isinstance(results[0], CommitTimeout)


@pytest.mark.asyncio
async def test_query_returns_agreed_payload() -> None:
    peers = {name: FakePeer(name, payload=b"90", digest=name.encode()) for name in ("org1.peer1", "org1.peer2", "org2.peer1")}
    connector = FakeConnector(peers=peers)
    async with _session(connector) as session:
        status = await query(session, "simple", ["query", "a"], version="v0")

    assert status.status is InvocationState.VALID
    assert status.result == b"90"
    assert connector.orderer_client.envelopes == []
    proposal = peers["org1.peer1"].proposals[0]
    assert proposal.kind is ProposalKind.QUERY
    assert proposal.chaincode_version == "v0"


@pytest.mark.asyncio
async def test_query_conflicting_results() -> None:
    connector = FakeConnector(peers={"org2.peer1": FakePeer("org2.peer1", payload=b"80")})
    async with _session(connector) as session:
        with pytest.raises(EndorsementMismatch) as exc:
            await query(session, "simple", ["query", "a"])
    assert exc.value.status.status is InvocationState.CREATED


@pytest.mark.asyncio
async def test_install_targets_every_peer_of_org() -> None:
    connector = FakeConnector()
    async with _session(connector) as session:
        chaincode = session.network.chaincode("simple")
        responses = await install_chaincode(session, "org1", chaincode)

    assert [response.peer for response in responses] == ["org1.peer1", "org1.peer2"]
    assert connector.peers["org2.peer1"].proposals == []
    proposal = connector.peers["org1.peer1"].proposals[0]
    assert proposal.kind is ProposalKind.INSTALL
    assert proposal.chaincode_path == "contract/fabric/simple"
    assert connector.orderer_client.envelopes == []


@pytest.mark.asyncio
async def test_install_rejected_by_a_peer() -> None:
    connector = FakeConnector(peers={"org1.peer2": FakePeer("org1.peer2", status=500)})
    async with _session(connector) as session:
        with pytest.raises(EndorsementRejected) as exc:
            await install_chaincode(session, "org1", session.network.chaincode("simple"))
    assert exc.value.peers == ["org1.peer2"]


@pytest.mark.asyncio
async def test_instantiate_and_upgrade() -> None:
    connector = FakeConnector()
    policy = {"identities": [{"role": {"name": "member", "mspId": "Org1MSP"}}]}
    async with _session(connector) as session:
        chaincode = session.network.chaincode("simple")
        created = await instantiate_chaincode(session, chaincode, endorsement_policy=policy)
        upgraded = await instantiate_chaincode(session, chaincode, upgrade=True)

    assert created.status is InvocationState.VALID
    assert upgraded.status is InvocationState.VALID
    first, second = connector.peers["org2.peer1"].proposals
    assert first.kind is ProposalKind.INSTANTIATE
    assert first.fcn == "init"
    assert first.args == []
    assert first.transient_map == {}
    assert first.endorsement_policy == policy
    assert second.kind is ProposalKind.UPGRADE
    assert second.transient_map == {"test": b"transientValue"}


class _StreamKillingOrderer(FakeOrderer):
    """Drops every event stream for the transaction, then fails the broadcast."""

    async def broadcast(self, envelope):
        for stream in self.streams.values():
            stream.fail(envelope.tx_id, ConnectionResetError("stream closed"))
        return await super().broadcast(envelope)


@pytest.mark.asyncio
async def test_invoke_released_mid_wait_raises_commit_timeout() -> None:
    connector = FakeConnector(orderer=FakeOrderer(commit_code=None))
    async with _session(connector) as session:
        task = asyncio.create_task(invoke(session, "simple", ["move", "a", "b", "1"], timeout=5.0))
        await asyncio.sleep(0.1)
        await session.release()

        with pytest.raises(CommitTimeout) as exc:
            await task

    assert exc.value.reason == "session released"
    assert exc.value.status.status is InvocationState.ORDERED
    assert all(stream.registrations == {} for stream in connector.streams.values())


@pytest.mark.asyncio
async def test_invoke_all_collects_commit_timeout_on_release() -> None:
    connector = FakeConnector(orderer=FakeOrderer(commit_code=None))
    async with _session(connector) as session:
        batch = asyncio.create_task(
            invoke_all(
                session,
                [
                    InvokeCall("simple", ["move", "a", "b", "1"]),
                    InvokeCall("simple", ["move", "b", "a", "2"]),
                ],
                timeout=5.0,
            )
        )
        await asyncio.sleep(0.1)
        await session.release()
        results = await batch

    assert all(isinstance(result, CommitTimeout) for result in results)


@pytest.mark.asyncio
async def test_failed_submission_after_stream_loss_leaves_no_unretrieved_error(
    caplog: pytest.LogCaptureFixture,
) -> None:
    connector = FakeConnector(orderer=_StreamKillingOrderer(error=OSError("broken pipe")))
    async with _session(connector) as session:
        with pytest.raises(SubmissionFailed) as exc:
            await invoke(session, "simple", ["move", "a", "b", "1"])
        assert exc.value.status.status is InvocationState.ENDORSED
        assert session.correlator.pending == frozenset()

    del exc
    with caplog.at_level(logging.ERROR, logger="asyncio"):
        gc.collect()
    assert "never retrieved" not in caplog.text

"""
Unit Tests for the Usage Ledger
===============================

Tests for fetch_node/app/usage/ledger.py

Test Coverage:
--------------
1. Flush submits every pending record as one batch
2. Failed flushes re-queue the exact batch, without duplication
3. Crossing the cap forces a single background flush
4. Periodic flush runs on its interval
5. Shutdown flush does not re-queue
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fetch_node.app.clients.identity import IdentityServiceError
from fetch_node.app.models import UsageMetadata, UsageRecord
from fetch_node.app.usage.ledger import UsageLedger


def make_record(agent_id: str = "agent-1", status: int = 200) -> UsageRecord:
    return UsageRecord(
        agent_id=agent_id,
        metadata=UsageMetadata(
            region="eu-frankfurt",
            target_domain="example.com",
            latency_ms=12,
            status=status,
            bytes=42,
        ),
    )


@pytest.fixture
def mock_client():
    client = AsyncMock()
    client.submit_usage.return_value = {"processed": 1, "total_credits_deducted": 0.01}
    return client


# ============================================================================
# Flush
# ============================================================================

class TestFlush:

    @pytest.mark.asyncio
    async def test_empty_flush_is_noop(self, mock_client):
        ledger = UsageLedger(mock_client)

        assert await ledger.flush() == 0
        mock_client.submit_usage.assert_not_called()

    @pytest.mark.asyncio
    async def test_flush_submits_batch(self, mock_client):
        ledger = UsageLedger(mock_client)
        records = [make_record(), make_record("agent-2")]
        for record in records:
            ledger.record(record)

        assert await ledger.flush() == 2
        mock_client.submit_usage.assert_awaited_once_with(records)
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_failed_flushes_requeue_without_duplication(self, mock_client):
        ledger = UsageLedger(mock_client)
        records = [make_record(), make_record(), make_record("agent-2")]
        for record in records:
            ledger.record(record)

        mock_client.submit_usage.side_effect = IdentityServiceError("down", status_code=503)
        assert await ledger.flush() == 0
        assert await ledger.flush() == 0
        assert len(ledger) == 3

        mock_client.submit_usage.side_effect = None
        assert await ledger.flush() == 3

        submitted = mock_client.submit_usage.await_args.args[0]
        assert submitted == records
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_records_added_during_failed_flush_are_kept(self, mock_client):
        ledger = UsageLedger(mock_client)
        ledger.record(make_record("agent-1"))

        async def fail_after_new_record(batch):
            ledger.record(make_record("agent-2"))
            raise IdentityServiceError("down")

        mock_client.submit_usage.side_effect = fail_after_new_record
        await ledger.flush()

        assert len(ledger) == 2
        assert ledger.pending_for("agent-1") == 1
        assert ledger.pending_for("agent-2") == 1

    def test_pending_for_counts_one_agent(self, mock_client):
        ledger = UsageLedger(mock_client)
        ledger._pending = [make_record("a"), make_record("b"), make_record("a")]

        assert ledger.pending_for("a") == 2
        assert ledger.pending_for("c") == 0
        assert len(ledger.snapshot()) == 3


# ============================================================================
# Forced Flush
# ============================================================================

class TestForcedFlush:

    @pytest.mark.asyncio
    async def test_cap_forces_one_flush(self, mock_client):
        ledger = UsageLedger(mock_client, max_pending=2)

        for _ in range(5):
            ledger.record(make_record())

        assert len(ledger._forced_flushes) == 1

        for _ in range(3):
            await asyncio.sleep(0)

        assert mock_client.submit_usage.await_count == 1
        assert len(mock_client.submit_usage.await_args.args[0]) == 5
        assert len(ledger) == 0
        assert not ledger._forced_flushes

    @pytest.mark.asyncio
    async def test_under_cap_does_not_flush(self, mock_client):
        ledger = UsageLedger(mock_client, max_pending=2)

        ledger.record(make_record())
        ledger.record(make_record())
        await asyncio.sleep(0)

        mock_client.submit_usage.assert_not_called()
        assert len(ledger) == 2


# ============================================================================
# Lifecycle
# ============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_periodic_flush(self, mock_client):
        ledger = UsageLedger(mock_client, interval_seconds=0.01)
        ledger.start()
        assert ledger.running

        ledger.record(make_record())
        await asyncio.sleep(0.1)

        assert mock_client.submit_usage.await_count >= 1
        assert len(ledger) == 0

        await ledger.stop()
        assert not ledger.running

    @pytest.mark.asyncio
    async def test_periodic_flush_survives_unexpected_error(self, mock_client):
        mock_client.submit_usage.side_effect = RuntimeError("boom")
        ledger = UsageLedger(mock_client, interval_seconds=0.01)
        ledger.start()

        ledger.record(make_record())
        await asyncio.sleep(0.05)

        assert ledger.running
        assert len(ledger) == 1

        mock_client.submit_usage.side_effect = None
        assert await ledger.stop() == 1
        assert mock_client.submit_usage.await_args.args[0][0].agent_id == "agent-1"

    @pytest.mark.asyncio
    async def test_unexpected_error_requeues_and_propagates(self, mock_client):
        mock_client.submit_usage.side_effect = RuntimeError("boom")
        ledger = UsageLedger(mock_client)
        records = [make_record(), make_record("agent-2")]
        for record in records:
            ledger.record(record)

        with pytest.raises(RuntimeError):
            await ledger.flush()

        assert ledger.snapshot() == records

    @pytest.mark.asyncio
    async def test_cancelled_flush_keeps_batch(self, mock_client):
        started = asyncio.Event()

        async def hang(batch):
            started.set()
            await asyncio.sleep(10)

        mock_client.submit_usage.side_effect = hang
        ledger = UsageLedger(mock_client)
        ledger.record(make_record())

        task = asyncio.create_task(ledger.flush())
        await started.wait()
        assert len(ledger) == 0
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(ledger) == 1

    @pytest.mark.asyncio
    async def test_stop_runs_final_flush(self, mock_client):
        ledger = UsageLedger(mock_client, interval_seconds=60)
        ledger.start()
        ledger.record(make_record())
        ledger.record(make_record())

        assert await ledger.stop() == 2
        mock_client.submit_usage.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_does_not_requeue(self, mock_client):
        mock_client.submit_usage.side_effect = IdentityServiceError("down")
        ledger = UsageLedger(mock_client, interval_seconds=60)
        ledger.start()
        ledger.record(make_record())

        assert await ledger.stop() == 0
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, mock_client):
        ledger = UsageLedger(mock_client)
        ledger.record(make_record())

        assert await ledger.stop() == 1

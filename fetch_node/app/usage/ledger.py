"""
Usage Ledger
============

In-memory queue of usage records produced by completed proxy calls, flushed
to the identity service's usage-ingestion endpoint:

- every USAGE_REPORT_INTERVAL by a background task,
- immediately (not awaited by the request) when the queue exceeds its cap,
- once more during shutdown, awaited, without re-queueing on failure.

A flush drains the whole queue into a batch before its first await, so a
record is either pending or owned by exactly one flush. A failed batch goes
back onto the queue for the next flush; billing is additive, so order does
not matter.
"""

import asyncio
import logging
from typing import List, Optional, Set

from ..clients.identity import IdentityClient, IdentityServiceError
from ..models import UsageRecord

logger = logging.getLogger(__name__)


class UsageLedger:
    """
    Pending usage records plus the tasks that flush them.

    record() and the drain inside flush() never await, so on one event loop
    they cannot interleave with each other.
    """

    def __init__(
        self,
        client: IdentityClient,
        interval_seconds: float = 30.0,
        max_pending: int = 10000,
    ):
        """
        Args:
            client: Identity client used to submit batches
            interval_seconds: Period of the background flush
            max_pending: Queue length above which a flush is forced
        """
        self._client = client
        self._interval_seconds = interval_seconds
        self._max_pending = max_pending
        self._pending: List[UsageRecord] = []
        self._periodic_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._forced_flushes: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    def snapshot(self) -> List[UsageRecord]:
        return list(self._pending)

    def pending_for(self, agent_id: str) -> int:
        """Number of pending records belonging to one agent."""
        return sum(1 for record in self._pending if record.agent_id == agent_id)

    # =========================================================================
    # Request path
    # =========================================================================

    def record(self, usage_record: UsageRecord) -> None:
        """
        Append a record. Never fails and never waits on the network.

        Crossing the cap schedules a flush on the running loop; the caller
        does not await it.
        """
        self._pending.append(usage_record)

        if len(self._pending) > self._max_pending and not self._forced_flushes:
            logger.warning(
                "Pending usage queue too large, forcing report",
                extra={"pending": len(self._pending), "max_pending": self._max_pending},
            )
            task = asyncio.get_running_loop().create_task(self.flush())
            self._forced_flushes.add(task)
            task.add_done_callback(self._forced_flushes.discard)

    # =========================================================================
    # Flushing
    # =========================================================================

    def _drain(self) -> List[UsageRecord]:
        batch = self._pending
        self._pending = []
        return batch

    async def flush(self, requeue: bool = True) -> int:
        """
        Submit every pending record as one batch.

        Args:
            requeue: Put the batch back on failure (False only at shutdown)

        Returns:
            Number of records acknowledged (0 on failure or empty queue)
        """
        batch = self._drain()
        if not batch:
            return 0

        try:
            ack = await self._client.submit_usage(batch)
        except IdentityServiceError as e:
            if requeue:
                self._pending.extend(batch)
                logger.error(
                    f"Failed to report usage, re-queued {len(batch)} records: {e}",
                    extra={"status_code": e.status_code, "batch_size": len(batch)},
                )
            else:
                logger.error(
                    f"Failed to report usage, dropping {len(batch)} records: {e}",
                    extra={"status_code": e.status_code, "batch_size": len(batch)},
                )
            return 0
        except BaseException:
            # Unexpected failure or cancellation: the batch must not vanish
            if requeue:
                self._pending.extend(batch)
            logger.error(
                f"Usage report aborted with {len(batch)} records in flight "
                f"({'re-queued' if requeue else 'dropped'})",
                extra={"batch_size": len(batch)},
            )
            raise

        logger.info(
            f"Usage reported: {ack.get('processed')} records, "
            f"{ack.get('total_credits_deducted')} credits deducted",
            extra={"batch_size": len(batch)},
        )
        return len(batch)

    async def _run_periodic(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                try:
                    await self.flush()
                except Exception as e:
                    logger.error(f"Unexpected error in periodic usage flush: {e}", exc_info=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the periodic flush task on the running loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._periodic_task = asyncio.get_running_loop().create_task(
            self._run_periodic(self._stop_event)
        )
        logger.info(
            "Started usage reporter",
            extra={"interval_seconds": self._interval_seconds},
        )

    async def stop(self) -> int:
        """
        Stop the periodic task and run the final flush.

        Returns:
            Number of records acknowledged by the final flush
        """
        if self._periodic_task is not None and self._stop_event is not None:
            self._stop_event.set()
            await self._periodic_task
            self._periodic_task = None

        if self._forced_flushes:
            await asyncio.gather(*self._forced_flushes, return_exceptions=True)

        logger.info(
            "Reporting remaining usage before shutdown",
            extra={"pending": len(self._pending)},
        )
        return await self.flush(requeue=False)

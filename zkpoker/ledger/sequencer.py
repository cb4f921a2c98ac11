"""
Ledger write sequencing.

All writes signed by one identity share that identity's sequence number, so
they must be built and sent one at a time. The sequencer gives every signer a
single-writer lane (an asyncio queue drained by one worker task); the rest of
the code only ever hands operations to a lane.

Per operation the lane:
1. reads the account's current sequence number and signs at the next one
   (or past the last number the ledger accepted from this lane, if that is
   higher);
2. on a stale-sequence rejection, forgets the accepted number, backs off
   and starts over from step 1 (a rejected number is never reused);
3. on "try again later", backs off and resends at the same sequence;
4. for confirm=True operations, polls until the ledger reports the write
   settled before taking the next operation from the queue.

Fire-and-forget operations (confirm=False) free the lane as soon as they are
accepted. Lanes of different signers never wait on each other.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Tuple

from zkpoker.errors import LedgerBusy, LedgerRejected, RemoteUnavailable, SequenceConflict
from zkpoker.ledger.client import LedgerClient
from zkpoker.ledger.operations import LedgerOperation, OperationResult, OperationStatus, TxStatus
from zkpoker.retry import RetryPolicy


logger = logging.getLogger(__name__)

DEFAULT_SEQUENCE_RETRY = RetryPolicy(max_attempts=3, base_delay=4.0)
DEFAULT_BUSY_RETRY = RetryPolicy(max_attempts=4, base_delay=2.0)


@dataclass
class _Lane:
    signer: str
    queue: "asyncio.Queue[Tuple[LedgerOperation, asyncio.Future]]"
    worker: "asyncio.Task[None]"


class LedgerSequencer:
    """
    Serializes ledger writes per signing identity.

    Usage:
        sequencer = LedgerSequencer(client)
        result = await sequencer.submit(init_hand(...))
        await sequencer.close()
    """

    def __init__(
        self,
        client: LedgerClient,
        sequence_retry: RetryPolicy = DEFAULT_SEQUENCE_RETRY,
        busy_retry: RetryPolicy = DEFAULT_BUSY_RETRY,
        poll_interval: float = 3.0,
        max_polls: int = 15,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.sequence_retry = sequence_retry
        self.busy_retry = busy_retry
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._sleep = sleep
        self._lanes: Dict[str, _Lane] = {}
        # Highest sequence the ledger accepted per signer, cleared on conflict
        self._accepted: Dict[str, int] = {}

    async def submit(self, operation: LedgerOperation) -> OperationResult:
        """
        Queue an operation on its signer's lane and wait for the outcome.

        For confirm=True operations the result is CONFIRMED or an exception
        (SequenceConflict after retries, LedgerRejected, RemoteUnavailable).
        Fire-and-forget operations never raise; failures come back as FAILED.
        """
        return await self.submit_nowait(operation)

    def submit_nowait(self, operation: LedgerOperation) -> "asyncio.Future[OperationResult]":
        """Queue an operation and return the future of its result."""
        future = asyncio.get_running_loop().create_future()
        self._lane(operation.signer).queue.put_nowait((operation, future))
        return future

    def _lane(self, signer: str) -> _Lane:
        lane = self._lanes.get(signer)
        if lane is None or lane.worker.done():
            queue: asyncio.Queue = asyncio.Queue()
            worker = asyncio.get_running_loop().create_task(self._run_lane(signer, queue))
            lane = _Lane(signer=signer, queue=queue, worker=worker)
            self._lanes[signer] = lane
            logger.debug(f"Opened ledger lane for {signer}")
        return lane

    async def _run_lane(self, signer: str, queue: asyncio.Queue) -> None:
        while True:
            operation, future = await queue.get()
            try:
                result = await self._process(operation)
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as e:
                if operation.confirm:
                    if not future.done():
                        future.set_exception(e)
                else:
                    logger.error(f"Fire-and-forget {operation.kind.value} for {signer} failed: {e}")
                    if not future.done():
                        future.set_result(OperationResult(operation, OperationStatus.FAILED, error=str(e)))
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                queue.task_done()

    async def _process(self, operation: LedgerOperation) -> OperationResult:
        attempts = 0
        label = f"{operation.kind.value} ({operation.signer}, hand {operation.hand_id})"

        async def attempt() -> Tuple[int, str]:
            nonlocal attempts
            attempts += 1
            current = await self.client.get_sequence(operation.signer)
            # Accepted-but-unsettled writes are not visible in the ledger's count yet
            sequence = max(current, self._accepted.get(operation.signer, 0)) + 1

            async def send() -> str:
                return await self.client.submit(operation, sequence)

            try:
                reference = await self.busy_retry.run(
                    send, retry_on=(LedgerBusy,), sleep=self._sleep, label=label
                )
            except SequenceConflict:
                self._accepted.pop(operation.signer, None)
                raise
            self._accepted[operation.signer] = sequence
            return sequence, reference

        sequence, reference = await self.sequence_retry.run(
            attempt, retry_on=(SequenceConflict,), sleep=self._sleep, label=label
        )
        logger.debug(f"{label} accepted at sequence {sequence} as {reference}")

        if not operation.confirm:
            return OperationResult(operation, OperationStatus.SUBMITTED, sequence, reference, attempts)

        await self._await_settled(operation, reference)
        logger.info(f"{label} confirmed at sequence {sequence}")
        return OperationResult(operation, OperationStatus.CONFIRMED, sequence, reference, attempts)

    async def _await_settled(self, operation: LedgerOperation, reference: str) -> None:
        for _ in range(self.max_polls):
            status = await self.client.get_status(reference)
            if status == TxStatus.SUCCESS:
                return
            if status == TxStatus.FAILED:
                raise LedgerRejected(
                    f"{operation.kind.value} failed on ledger ({reference})",
                    hand_id=operation.hand_id,
                )
            await self._sleep(self.poll_interval)
        raise RemoteUnavailable(
            f"{operation.kind.value} not confirmed after {self.max_polls} polls ({reference}); "
            f"it may still land",
            hand_id=operation.hand_id,
        )

    async def drain(self) -> None:
        """Wait until every queued operation has been processed."""
        await asyncio.gather(*(lane.queue.join() for lane in self._lanes.values()))

    async def close(self) -> None:
        """Stop all lane workers. Queued operations are dropped."""
        lanes = list(self._lanes.values())
        self._lanes.clear()
        for lane in lanes:
            lane.worker.cancel()
        await asyncio.gather(*(lane.worker for lane in lanes), return_exceptions=True)
        for lane in lanes:
            while not lane.queue.empty():
                _, future = lane.queue.get_nowait()
                if not future.done():
                    future.cancel()

    async def __aenter__(self) -> LedgerSequencer:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

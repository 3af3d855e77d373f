"""
Cart Synchronization

Optimistic local-first persistence. Local mutations are applied to the
engine immediately and queued here; at most one persist request is in
flight per cart, and operations queued meanwhile are coalesced into the
next request. Server responses are reconciled against the engine's
operation counter so a slow, stale answer never overwrites newer edits.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..errors import CartError, GatewayError, GatewayRejectedError, GatewayTransientError
from ..models.cart import Cart
from ..models.operations import MutationOp
from ..models.remote import PersistResult
from .engine import CartEngine
from .gateway import CartGateway

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    RETRYING = "retrying"
    FAILED = "failed"


class CartSynchronizer:
    """
    Keeps one engine in step with the persistence gateway.

    Usage:
        sync = CartSynchronizer(engine, gateway)
        await sync.load()
        engine.add_item(product, seller, 2)   # queued and sent in background
        await sync.flush()
    """

    def __init__(
        self,
        engine: CartEngine,
        gateway: CartGateway,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 30.0,
        max_attempts: int = 5,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.engine = engine
        self.gateway = gateway
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep

        self._pending: list[MutationOp] = []
        self._in_flight: list[MutationOp] = []
        self._task: Optional[asyncio.Task] = None
        self.status = SyncStatus.IDLE
        self.last_error: Optional[str] = None

        engine.subscribe(self.enqueue)

    @property
    def pending(self) -> list[MutationOp]:
        """Operations waiting for the next request"""
        return list(self._pending)

    @property
    def in_flight(self) -> list[MutationOp]:
        """Operations of the request currently awaiting a response"""
        return list(self._in_flight)

    @property
    def is_busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based), doubling up to the cap"""
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)

    async def load(self) -> Cart:
        """Fetch the server copy, keeping any local edits not yet persisted"""
        remote = await self.gateway.fetch_cart()
        if self._pending or self._in_flight:
            self._pending = self.engine.rebase(remote, self._pending)
            return self.engine.get_snapshot()
        return self.engine.replace_from_server(remote)

    def enqueue(self, op: MutationOp) -> None:
        """Queue an applied local mutation for persistence"""
        self._pending.append(op)
        logger.debug(f"Cart {self.engine.cart_id}: queued op #{op.seq} ({len(self._pending)} pending)")
        self._start()

    def _start(self) -> None:
        if self.is_busy:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"Cart {self.engine.cart_id}: no running loop, ops wait for flush()")
            return
        self._task = loop.create_task(self._run())

    async def flush(self) -> Cart:
        """Wait until every queued operation has been sent (or has failed)"""
        if self._pending and not self.is_busy:
            self._task = asyncio.get_running_loop().create_task(self._run())
        if self._task is not None:
            await self._task
        return self.engine.get_snapshot()

    async def close(self) -> None:
        await self.flush()

    async def _run(self) -> None:
        while self._pending:
            batch, self._pending = self._pending, []
            if not await self._send(batch):
                return
        self.status = SyncStatus.IDLE

    async def _send(self, batch: list[MutationOp]) -> bool:
        """
        Send one batch, retrying transient failures. Returns False when giving up.

        Operations queued while waiting to retry ride along with the retry;
        if the server then refuses the batch, only the operations of the
        first attempt count as refused and the later ones are replayed.
        """
        first_through = batch[-1].seq
        self.status = SyncStatus.SYNCING
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda retry_state: self.backoff_delay(retry_state.attempt_number),
            retry=retry_if_exception_type(GatewayTransientError),
            sleep=self._sleep,
            before_sleep=self._before_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        batch, self._pending = batch + self._pending, []
                    self._in_flight = batch
                    result = await self.gateway.persist(batch)
        except GatewayTransientError as e:
            logger.error(
                f"Cart {self.engine.cart_id}: giving up after {self.max_attempts} attempts, "
                f"{len(batch)} op(s) stay queued: {e}"
            )
            self._pending = batch + self._pending
            self._in_flight = []
            self.last_error = str(e)
            self.status = SyncStatus.FAILED
            return False
        except GatewayRejectedError as e:
            self._in_flight = []
            rejected = [op for op in batch if op.seq <= first_through]
            self._pending = [op for op in batch if op.seq > first_through] + self._pending
            return await self._rollback(e, rejected)

        self._in_flight = []
        self.last_error = None
        try:
            self._reconcile(result, batch[-1].seq)
        except (CartError, ValidationError) as e:
            logger.error(f"Cart {self.engine.cart_id}: could not apply server cart, keeping local copy: {e}")
            self.last_error = f"Could not apply server cart: {e}"
            self.status = SyncStatus.FAILED
            return False
        return True

    def _before_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        self.last_error = str(error)
        self.status = SyncStatus.RETRYING
        logger.warning(
            f"Cart {self.engine.cart_id}: persist failed ({error}), "
            f"retry {retry_state.attempt_number} in {retry_state.next_action.sleep:.2f}s"
        )

    def _reconcile(self, result: PersistResult, sent_through: int) -> None:
        """Adopt the server snapshot unless newer local edits exist"""
        engine = self.engine
        stale = engine.last_op_seq > sent_through or result.cart.revision < engine.state.revision

        if stale:
            logger.info(
                f"Cart {engine.cart_id}: discarding stale response "
                f"(covers op #{sent_through}, local at #{engine.last_op_seq}, "
                f"revision {result.cart.revision} vs {engine.state.revision})"
            )
            if result.rejections:
                engine.apply_rejections(result.rejections)
            return

        engine.replace_from_server(result.cart, result.rejections)

    async def _rollback(self, error: GatewayRejectedError, rejected: list[MutationOp]) -> bool:
        """Server refused the batch: return to its copy and replay later edits"""
        logger.warning(f"Cart {self.engine.cart_id}: batch rejected ({error}), rolling back to server copy")
        self.last_error = str(error)
        try:
            remote = await self.gateway.fetch_cart()
        except GatewayError as e:
            logger.error(f"Cart {self.engine.cart_id}: could not fetch server copy after rejection: {e}")
            self.last_error = str(e)
            self.status = SyncStatus.FAILED
            return False

        try:
            self._pending = self.engine.rebase(
                remote,
                self._pending,
                rejected=rejected,
                detail=error.detail or str(error),
            )
        except (CartError, ValidationError) as e:
            logger.error(f"Cart {self.engine.cart_id}: could not apply server copy after rejection: {e}")
            self.last_error = f"Could not apply server cart: {e}"
            self.status = SyncStatus.FAILED
            return False
        return True

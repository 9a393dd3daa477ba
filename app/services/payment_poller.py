"""
Background polling of pending payments

One cancellable asyncio task per watched order. A task also ends by itself
when the payment settles, when the order has no payment link to look up,
or after PAYMENT_POLL_MAX_ATTEMPTS lookups.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from app.config import settings
from app.database import SessionLocal
from app.exceptions import OrderError, OrderNotFoundError, ReconciliationLookupError
from app.services.payment_reconciliation import PaymentReconciliationService, ReconciliationOutcome

logger = logging.getLogger(__name__)

Reconciler = Callable[[str], Awaitable[ReconciliationOutcome]]


async def reconcile_in_new_session(order_id: str) -> ReconciliationOutcome:
    """Run one reconciliation with its own database session"""
    db = SessionLocal()
    try:
        result = await PaymentReconciliationService(db).reconcile(order_id)
        return result.outcome
    finally:
        db.close()


class PaymentPoller:
    """Watches pending orders until their payment settles"""

    def __init__(
        self,
        reconcile: Reconciler = reconcile_in_new_session,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.reconcile = reconcile
        self.interval = interval if interval is not None else settings.PAYMENT_POLL_INTERVAL
        self.max_attempts = max_attempts if max_attempts is not None else settings.PAYMENT_POLL_MAX_ATTEMPTS
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_watching(self, order_id: str) -> bool:
        task = self._tasks.get(order_id)
        return task is not None and not task.done()

    def watched_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def start(self, order_id: str) -> asyncio.Task:
        """Start watching an order; returns the running task if already watched"""
        if self.is_watching(order_id):
            return self._tasks[order_id]
        task = asyncio.create_task(self._watch(order_id), name=f"payment-poll-{order_id}")
        self._tasks[order_id] = task
        task.add_done_callback(lambda done: self._forget(order_id, done))
        logger.info(f"Watching payment of order {order_id}")
        return task

    def _forget(self, order_id: str, task: asyncio.Task):
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"✗ Payment poll for order {order_id} stopped with error: {task.exception()!r}")

    async def stop(self, order_id: str) -> bool:
        """Stop watching an order; False if it was not watched"""
        task = self._tasks.pop(order_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        # wait() never raises the task's CancelledError but lets our own through
        await asyncio.wait([task])
        logger.info(f"Stopped watching payment of order {order_id}")
        return True

    async def stop_all(self):
        for order_id in list(self._tasks):
            await self.stop(order_id)

    async def _watch(self, order_id: str) -> Optional[ReconciliationOutcome]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                outcome = await self.reconcile(order_id)
            except ReconciliationLookupError as e:
                logger.warning(f"Payment poll {attempt} for order {order_id} failed: {e}")
            except OrderNotFoundError:
                logger.warning(f"✗ Order {order_id} disappeared, stopping payment poll")
                return None
            except OrderError as e:
                logger.error(f"✗ Payment poll {attempt} for order {order_id} failed: {e}")
            else:
                if outcome is ReconciliationOutcome.NO_PAYMENT_LINK:
                    logger.info(f"Order {order_id} has no payment link, stopping payment poll")
                    return outcome
                if outcome is not ReconciliationOutcome.UNCHANGED:
                    logger.info(f"✓ Order {order_id} payment poll finished: {outcome.value}")
                    return outcome
            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval)

        logger.info(f"Payment of order {order_id} still pending after {self.max_attempts} polls")
        return ReconciliationOutcome.UNCHANGED

import asyncio
import logging

import pytest

from app.exceptions import OrderNotFoundError, PersistenceError, ReconciliationLookupError
from app.services.payment_poller import PaymentPoller
from app.services.payment_reconciliation import ReconciliationOutcome


class ScriptedReconciler:
    """Returns (or raises) the scripted results in order, then repeats the last one"""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self, order_id):
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(result, BaseException):
            raise result
        return result


async def test_polling_stops_once_payment_settles():
    reconcile = ScriptedReconciler(
        ReconciliationOutcome.UNCHANGED,
        ReconciliationOutcome.UNCHANGED,
        ReconciliationOutcome.PAID,
    )
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=10)

    result = await poller.start("order-1")

    assert result is ReconciliationOutcome.PAID
    assert reconcile.calls == 3
    assert not poller.is_watching("order-1")


async def test_lookup_errors_do_not_stop_polling():
    reconcile = ScriptedReconciler(
        ReconciliationLookupError("timeout", order_id="order-1"),
        ReconciliationOutcome.FAILED,
    )
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=5)

    assert await poller.start("order-1") is ReconciliationOutcome.FAILED
    assert reconcile.calls == 2


async def test_payment_settled_elsewhere_ends_polling():
    reconcile = ScriptedReconciler(ReconciliationOutcome.ALREADY_SETTLED)
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=5)

    assert await poller.start("order-1") is ReconciliationOutcome.ALREADY_SETTLED
    assert reconcile.calls == 1


async def test_order_without_payment_link_ends_polling():
    reconcile = ScriptedReconciler(ReconciliationOutcome.NO_PAYMENT_LINK)
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=50)

    assert await poller.start("order-1") is ReconciliationOutcome.NO_PAYMENT_LINK
    assert reconcile.calls == 1
    assert poller.watched_count() == 0


async def test_missing_order_ends_polling():
    reconcile = ScriptedReconciler(OrderNotFoundError("order-1"))
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=5)

    assert await poller.start("order-1") is None
    assert reconcile.calls == 1


async def test_database_errors_do_not_stop_polling(caplog):
    reconcile = ScriptedReconciler(
        PersistenceError("Failed to update payment: database is locked"),
        ReconciliationOutcome.PAID,
    )
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=5)

    assert await poller.start("order-1") is ReconciliationOutcome.PAID
    assert reconcile.calls == 2
    assert "database is locked" in caplog.text


async def test_unexpected_error_is_logged(caplog):
    reconcile = ScriptedReconciler(ValueError("boom"))
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=5)

    with caplog.at_level(logging.ERROR):
        task = poller.start("order-1")
        with pytest.raises(ValueError):
            await task
        await asyncio.sleep(0)

    assert not poller.is_watching("order-1")
    assert "order-1 stopped with error: ValueError('boom')" in caplog.text


async def test_polling_gives_up_after_max_attempts():
    reconcile = ScriptedReconciler(ReconciliationOutcome.UNCHANGED)
    poller = PaymentPoller(reconcile=reconcile, interval=0, max_attempts=3)

    assert await poller.start("order-1") is ReconciliationOutcome.UNCHANGED
    assert reconcile.calls == 3


async def test_start_is_idempotent_and_stop_cancels():
    reconcile = ScriptedReconciler(ReconciliationOutcome.UNCHANGED)
    poller = PaymentPoller(reconcile=reconcile, interval=60, max_attempts=10)

    task = poller.start("order-1")
    assert poller.start("order-1") is task
    await asyncio.sleep(0)
    assert poller.is_watching("order-1")

    assert await poller.stop("order-1") is True
    assert task.cancelled()
    assert not poller.is_watching("order-1")
    assert await poller.stop("order-1") is False
    assert reconcile.calls == 1


async def test_cancelling_the_caller_of_stop_is_not_swallowed():
    started = asyncio.Event()

    async def slow_reconcile(order_id):
        started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            # slow to unwind, so the caller is cancelled while stop() waits
            await asyncio.sleep(0.05)
            raise
        return ReconciliationOutcome.UNCHANGED

    poller = PaymentPoller(reconcile=slow_reconcile, interval=60, max_attempts=10)
    poller.start("order-1")
    await started.wait()

    stopper = asyncio.create_task(poller.stop("order-1"))
    await asyncio.sleep(0.01)
    stopper.cancel()

    with pytest.raises(asyncio.CancelledError):
        await stopper
    assert stopper.cancelled()
    await asyncio.sleep(0.1)
    assert poller.watched_count() == 0


async def test_stop_all():
    poller = PaymentPoller(
        reconcile=ScriptedReconciler(ReconciliationOutcome.UNCHANGED), interval=60, max_attempts=10
    )
    tasks = [poller.start("order-1"), poller.start("order-2")]
    await asyncio.sleep(0)

    assert poller.watched_count() == 2

    await poller.stop_all()

    assert all(task.cancelled() for task in tasks)
    assert not poller.is_watching("order-1")
    assert not poller.is_watching("order-2")

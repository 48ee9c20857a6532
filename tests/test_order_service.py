"""Tests for the print-then-finalize path and reconciliation."""
import asyncio
import threading

import pytest

from barprinter.services.order_service import OrderService, ProcessOutcome

from conftest import epson_printer, wait_until


@pytest.fixture
async def printer(usb_bus, sessions):
    usb_bus.attach(epson_printer())
    await sessions.initialize()
    return sessions.current_handle


@pytest.fixture
def clocked_orders(repository, print_jobs):
    return OrderService(repository, print_jobs, clock=lambda: 1700000123456)


async def test_printed_order_is_marked_done(printer, repository, clocked_orders, driver):
    order = repository.add("o1", "Mojito", "Ana", notify=False)

    outcome = await clocked_orders.process_order(order)

    assert outcome == ProcessOutcome.PRINTED
    assert driver.printed_drinks == ["Mojito"]
    assert repository.updates == [("o1", {"status": "done", "processedAt": 1700000123456})]


async def test_print_failure_leaves_order_pending(printer, repository, order_service, driver):
    driver.fail_write = True
    order = repository.add("o1", "Mojito", notify=False)

    outcome = await order_service.process_order(order)

    assert outcome == ProcessOutcome.PRINT_FAILED
    assert repository.status_of("o1") == "pending"
    assert repository.updates == []


async def test_missing_printer_leaves_order_pending(sessions, repository, order_service):
    await sessions.initialize()
    order = repository.add("o1", "Mojito", notify=False)

    assert await order_service.process_order(order) == ProcessOutcome.PRINT_FAILED
    assert repository.status_of("o1") == "pending"


async def test_non_pending_order_is_skipped(printer, repository, order_service, driver):
    order = repository.add("o1", "Mojito", status="done", notify=False)

    assert await order_service.process_order(order) == ProcessOutcome.SKIPPED
    assert driver.tickets == []


async def test_store_failure_after_print_never_reprints(printer, repository, order_service, driver):
    order = repository.add("o1", "Mojito", notify=False)
    repository.fail_writes = True

    assert await order_service.process_order(order) == ProcessOutcome.NOT_RECORDED
    assert order_service.unrecorded_orders() == {"o1"}
    assert repository.status_of("o1") == "pending"

    repository.fail_writes = False
    assert await order_service.process_order(order) == ProcessOutcome.RECORDED

    assert driver.printed_drinks == ["Mojito"]
    assert repository.status_of("o1") == "done"
    assert order_service.unrecorded_orders() == set()


async def test_finalized_order_is_not_printed_again(printer, repository, order_service, driver):
    order = repository.add("o1", "Mojito", notify=False)

    await order_service.process_order(order)
    assert await order_service.process_order(order) == ProcessOutcome.SKIPPED
    assert len(driver.tickets) == 1


async def test_printed_ledger_is_bounded(printer, repository, print_jobs):
    orders = OrderService(repository, print_jobs, ledger_size=2)
    repository.fail_writes = True

    for order_id in ("o1", "o2", "o3"):
        await orders.process_order(repository.add(order_id, "Beer", notify=False))

    assert orders.unrecorded_orders() == {"o2", "o3"}


async def test_reconcile_prints_pending_in_store_order(printer, repository, order_service, driver):
    repository.add("o1", "Mojito", notify=False)
    repository.add("o2", "Beer", status="done", notify=False)
    repository.add("o3", "Negroni", notify=False)

    summary = await order_service.reconcile_pending()

    assert driver.printed_drinks == ["Mojito", "Negroni"]
    assert summary.total == 2
    assert summary.printed == 2
    assert repository.status_of("o1") == "done"
    assert repository.status_of("o3") == "done"
    assert order_service.last_summary is summary


async def test_reconcile_isolates_per_order_failures(printer, repository, order_service, driver):
    repository.add("o1", "Mojito", notify=False)
    repository.add("o2", "Beer", notify=False)
    repository.add("o3", "Negroni", notify=False)
    repository.fail_write_ids.add("o2")

    summary = await order_service.reconcile_pending()

    assert driver.printed_drinks == ["Mojito", "Beer", "Negroni"]
    assert summary.printed == 2
    assert summary.store_errors == 1
    assert repository.status_of("o2") == "pending"


async def test_reconcile_without_printer_leaves_everything_pending(sessions, repository, order_service):
    await sessions.initialize()
    repository.add("o1", "Mojito", notify=False)
    repository.add("o2", "Beer", notify=False)

    summary = await order_service.reconcile_pending()

    assert summary.failed == 2
    assert repository.updates == []


async def test_reconcile_query_failure_is_reported(printer, repository, order_service):
    repository.fail_query = True

    summary = await order_service.reconcile_pending()

    assert summary.total == 0
    assert "deadline exceeded" in summary.query_error


async def test_overlapping_reconcile_requests_are_merged(printer, repository, order_service, driver):
    repository.add("o1", "Mojito", notify=False)
    repository.add("o2", "Beer", notify=False)

    first, second = await asyncio.gather(
        order_service.reconcile_pending(),
        order_service.reconcile_pending(),
    )

    assert first is not None
    assert second is None
    assert order_service.reconciliation_count == 2
    assert sorted(driver.printed_drinks) == ["Beer", "Mojito"]


async def test_listener_and_reconciler_print_once(printer, repository, order_service, driver):
    order = repository.add("o1", "Mojito", notify=False)

    await asyncio.gather(
        order_service.process_order(order),
        order_service.reconcile_pending(),
    )

    assert driver.printed_drinks == ["Mojito"]
    assert repository.status_of("o1") == "done"


async def test_reconcile_after_attach(printer, repository, order_service, driver):
    repository.add("o1", "Mojito", notify=False)

    summary = await order_service.reconcile_after_attach(printer)

    assert summary.printed == 1
    assert summary.to_dict()["printed"] == 1


async def test_processed_at_is_not_before_pass_start(printer, repository, order_service):
    repository.add("o1", "Mojito", notify=False)

    summary = await order_service.reconcile_pending()

    assert repository.documents["o1"]["processedAt"] >= summary.started_at


async def test_print_failure_mid_pass_does_not_stop_later_orders(printer, repository, order_service, driver):
    repository.add("o1", "Mojito", notify=False)
    repository.add("o2", "Beer", notify=False)
    repository.add("o3", "Negroni", notify=False)
    driver.fail_drinks = {"Beer"}

    summary = await order_service.reconcile_pending()

    assert driver.printed_drinks == ["Mojito", "Negroni"]
    assert summary.printed == 2
    assert summary.failed == 1
    assert repository.status_of("o2") == "pending"
    assert repository.status_of("o3") == "done"


async def test_cancelled_caller_does_not_abandon_printing_order(printer, repository, order_service, driver):
    driver.gate = threading.Event()
    order = repository.add("o1", "Mojito", notify=False)

    caller = asyncio.ensure_future(order_service.process_order(order))
    await wait_until(lambda: driver.opened)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    driver.gate.set()
    await order_service.drain()

    assert driver.printed_drinks == ["Mojito"]
    assert repository.status_of("o1") == "done"
    assert order_service.unrecorded_orders() == set()


async def test_retry_unrecorded_stores_status_without_printing(printer, repository, order_service, driver):
    order = repository.add("o1", "Mojito", notify=False)
    repository.fail_writes = True
    await order_service.process_order(order)

    repository.fail_writes = False

    assert await order_service.retry_unrecorded() == 1
    assert repository.status_of("o1") == "done"
    assert driver.printed_drinks == ["Mojito"]
    assert await order_service.retry_unrecorded() == 0


async def test_retry_loop_records_printed_orders_without_triggers(printer, repository, print_jobs, driver):
    orders = OrderService(repository, print_jobs, retry_interval=0.01)
    await orders.initialize()
    try:
        repository.fail_writes = True
        await orders.process_order(repository.add("o1", "Mojito", notify=False))
        repository.fail_writes = False

        await wait_until(lambda: repository.status_of("o1") == "done")
    finally:
        await orders.shutdown()

    assert driver.printed_drinks == ["Mojito"]
    assert orders.unrecorded_orders() == set()
    assert not orders.is_initialized


async def test_retry_loop_is_disabled_with_zero_interval(repository, print_jobs):
    orders = OrderService(repository, print_jobs, retry_interval=0)

    await orders.initialize()

    assert orders._tasks == []
    await orders.shutdown()

"""Tests for the live order listener."""
import pytest

from barprinter.database.repositories.base_repository import OrderChange, OrderChangeType
from barprinter.models.order import Order
from barprinter.services.order_listener_service import OrderListenerService
from barprinter.services.order_service import ProcessOutcome

from conftest import epson_printer, wait_until


@pytest.fixture
async def listener(usb_bus, sessions, repository, order_service):
    usb_bus.attach(epson_printer())
    await sessions.initialize()
    service = OrderListenerService(repository, order_service)
    yield service
    await service.shutdown()


def change(kind, order_id, drink):
    return OrderChange(type=kind, order=Order(id=order_id, drink=drink))


async def test_new_order_is_printed_and_finalized(listener, repository, driver):
    await listener.initialize()

    repository.add("o1", "Mojito", "Ana")
    await wait_until(lambda: repository.status_of("o1") == "done")

    assert driver.printed_drinks == ["Mojito"]
    assert listener.orders_seen == 1


async def test_only_added_changes_are_printed(listener, driver):
    outcomes = await listener.handle_batch([
        change(OrderChangeType.MODIFIED, "o1", "Beer"),
        change(OrderChangeType.ADDED, "o2", "Mojito"),
        change(OrderChangeType.REMOVED, "o3", "Gin"),
    ])

    assert outcomes == [ProcessOutcome.PRINTED]
    assert driver.printed_drinks == ["Mojito"]


async def test_batch_is_processed_in_delivery_order(listener, driver):
    await listener.handle_batch([
        change(OrderChangeType.ADDED, "o1", "Mojito"),
        change(OrderChangeType.ADDED, "o2", "Beer"),
        change(OrderChangeType.ADDED, "o3", "Negroni"),
    ])

    assert driver.printed_drinks == ["Mojito", "Beer", "Negroni"]


async def test_store_failure_does_not_stop_the_batch(listener, repository, driver):
    repository.fail_write_ids.add("o1")

    outcomes = await listener.handle_batch([
        change(OrderChangeType.ADDED, "o1", "Mojito"),
        change(OrderChangeType.ADDED, "o2", "Beer"),
    ])

    assert outcomes == [ProcessOutcome.NOT_RECORDED, ProcessOutcome.PRINTED]


async def test_shutdown_closes_the_stream(listener, repository):
    await listener.initialize()
    stream = repository.streams[0]

    await listener.shutdown()

    assert stream.closed
    assert not listener.is_initialized

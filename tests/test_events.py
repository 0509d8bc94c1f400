"""
Event bus and ownership event tests.
"""

from datetime import datetime, timezone

from carledger.contract import CarContract
from carledger.events import (
    DEFAULT_MAX_HISTORY,
    ChangeColorEvent,
    ChangeOwnerEvent,
    CreateCarEvent,
    DeleteCarEvent,
    EventBus,
    OwnershipEvent,
)
from carledger.observability import correlation_id_var, set_correlation_id
from carledger.store import InMemoryLedger


TX_DATE = datetime(2020, 1, 1, 9, 30, tzinfo=timezone.utc)


class TestWireForm:

    def test_create(self):
        event = CreateCarEvent(car_number="CAR1", new_owner="Alice", transaction_date=TX_DATE)
        assert event.to_wire() == {
            "docType": "createCarEvent",
            "carNumber": "CAR1",
            "transactionDate": "2020-01-01T09:30:00.000Z",
            "newOwner": "Alice",
        }
        assert event.previous_value is None
        assert event.new_value == "Alice"

    def test_change_owner(self):
        event = ChangeOwnerEvent(car_number="CAR1", previous_owner="Alice", new_owner="Bob")
        wire = event.to_wire()
        assert wire["docType"] == "changeOwnerEvent"
        assert (wire["previousOwner"], wire["newOwner"]) == ("Alice", "Bob")
        assert wire["transactionDate"] is None

    def test_change_color(self):
        event = ChangeColorEvent(car_number="CAR1", previous_color="red", new_color="blue")
        assert event.to_wire()["docType"] == "changeColorEvent"
        assert (event.previous_value, event.new_value) == ("red", "blue")

    def test_delete(self):
        event = DeleteCarEvent(car_number="CAR1", previous_owner="Alice")
        assert event.to_wire()["previousOwner"] == "Alice"
        assert event.new_value is None

    def test_digest_is_stable(self):
        event = CreateCarEvent(car_number="CAR1", new_owner="Alice", transaction_date=TX_DATE)
        assert event.digest() == event.digest()
        assert len(event.digest()) == 64


class TestEventBus:

    def test_subscribe_by_type(self):
        bus = EventBus()
        owners = []
        everything = []

        @bus.subscribe(ChangeOwnerEvent)
        def on_owner(event):
            owners.append(event.new_owner)

        @bus.subscribe()
        def on_any(event):
            everything.append(event.event_type)

        bus.publish(ChangeOwnerEvent(car_number="CAR1", previous_owner="A", new_owner="B"))
        bus.publish(ChangeColorEvent(car_number="CAR1", previous_color="red", new_color="blue"))

        assert owners == ["B"]
        assert everything == ["ChangeOwnerEvent", "ChangeColorEvent"]

    def test_base_type_subscription(self):
        bus = EventBus()
        seen = []
        bus.subscribe(OwnershipEvent)(lambda e: seen.append(e.car_number))
        bus.publish(DeleteCarEvent(car_number="CAR9", previous_owner="A"))
        assert seen == ["CAR9"]

    def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe(priority=1)(lambda e: order.append("low"))
        bus.subscribe(priority=10)(lambda e: order.append("high"))
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        assert order == ["high", "low"]

    def test_filter(self):
        bus = EventBus()
        seen = []
        bus.subscribe(filter_func=lambda e: e.car_number == "CAR2")(lambda e: seen.append(e.car_number))
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        bus.publish(CreateCarEvent(car_number="CAR2", new_owner="A"))
        assert seen == ["CAR2"]

    def test_failing_handler_is_isolated(self):
        errors = []
        bus = EventBus(on_error=errors.append)
        seen = []

        @bus.subscribe(priority=5)
        def broken(event):
            raise ValueError("boom")

        bus.subscribe()(lambda e: seen.append(e))
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))

        assert len(seen) == 1
        assert len(errors) == 1
        assert isinstance(errors[0].cause, ValueError)
        assert bus.metrics["error_count"] == 1
        assert bus.metrics["handled_count"] == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []

        def handler(event):
            seen.append(event)

        bus.subscribe()(handler)
        assert bus.unsubscribe(handler) is True
        assert bus.unsubscribe(handler) is False
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        assert seen == []

    def test_history_and_correlation(self):
        bus = EventBus(keep_history=True)
        set_correlation_id("corr-test")
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        assert bus.history[0].correlation_id == "corr-test"
        bus.clear_history()
        assert bus.history == []

    def test_history_disabled(self):
        bus = EventBus(keep_history=False)
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        assert bus.history == []
        assert bus.metrics["published_count"] == 1

    def test_history_off_by_default(self):
        bus = EventBus()
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        assert bus.history == []

    def test_history_is_bounded(self):
        bus = EventBus(keep_history=True, max_history=5)
        for i in range(12):
            bus.publish(ChangeColorEvent(car_number="CAR1", new_color=f"c{i}"))
        assert len(bus.history) == 5
        assert [e.new_color for e in bus.history] == ["c7", "c8", "c9", "c10", "c11"]

    def test_default_history_bound(self):
        bus = EventBus(keep_history=True)
        for i in range(DEFAULT_MAX_HISTORY + 10):
            bus.publish(ChangeColorEvent(car_number="CAR1", new_color=str(i)))
        assert len(bus.history) == DEFAULT_MAX_HISTORY
        assert bus.history[-1].new_color == str(DEFAULT_MAX_HISTORY + 9)

    def test_uncorrelated_publish_leaves_context_unset(self):
        bus = EventBus(keep_history=True)
        bus.publish(CreateCarEvent(car_number="CAR1", new_owner="A"))
        bus.publish(CreateCarEvent(car_number="CAR2", new_owner="A"))
        first, second = bus.history
        assert first.correlation_id and second.correlation_id
        assert first.correlation_id != second.correlation_id
        assert correlation_id_var.get() == ""


class TestContractEvents:

    def test_contract_bus_keeps_no_history_by_default(self, config, alice):
        contract = CarContract(InMemoryLedger(), config=config)
        contract.create("CAR1", "Toyota", "Prius", "blue", "Alice", alice)
        for i in range(20):
            contract.respray("CAR1", f"c{i}", alice)
        assert contract.events.history == []
        assert contract.events.metrics["published_count"] == 21

    def test_bounded_history_through_contract(self, config, alice):
        bus = EventBus(keep_history=True, max_history=5)
        contract = CarContract(InMemoryLedger(), events=bus, config=config)
        contract.create("CAR1", "Toyota", "Prius", "blue", "Alice", alice)
        for i in range(9):
            contract.respray("CAR1", f"c{i}", alice)
        assert len(bus.history) == 5
        assert bus.history[-1].new_color == "c8"

"""
Ownership audit events.

Every successful create, owner change, respray and delete publishes exactly
one event. Events are write-only from the core's point of view: nothing in
the ownership logic reads them back.

Usage
─────

    from carledger.events import ChangeOwnerEvent, EventBus

    bus = EventBus()

    @bus.subscribe(ChangeOwnerEvent)
    def on_transfer(event):
        print(f"{event.car_number}: {event.previous_owner} -> {event.new_owner}")

The wire form of each event (``to_wire``) keeps the ledger's own names:
``docType`` plus camelCase fields, which is what ledger listeners consume.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Deque, Dict, List, Optional, Set, Type

from carledger.core import canonical_json_bytes, to_iso8601
from carledger.observability import LedgerLayer, correlation_id_var, generate_correlation_id, get_logger

log = get_logger("events", LedgerLayer.EVENTS)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events.

    Events are immutable facts. Each has a unique ID, a creation timestamp
    and the correlation ID of the ledger call that produced it.
    """

    doc_type: ClassVar[str] = "event"

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON for display/transport (not for digest computation)."""
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of the event content."""
        return hashlib.sha256(canonical_json_bytes(self.to_dict())).hexdigest()

    def to_wire(self) -> Dict[str, Any]:
        return {"docType": self.doc_type}


# ════════════════════════════════════════════════════════════════════════════
# OWNERSHIP EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class OwnershipEvent(Event):
    """Common shape: which car, and when the transaction was stamped."""
    car_number: str = ""
    transaction_date: Optional[datetime] = None

    @property
    def previous_value(self) -> Optional[str]:
        return None

    @property
    def new_value(self) -> Optional[str]:
        return None

    def to_wire(self) -> Dict[str, Any]:
        d = super().to_wire()
        d["carNumber"] = self.car_number
        d["transactionDate"] = to_iso8601(self.transaction_date) if self.transaction_date else None
        return d


@dataclass
class CreateCarEvent(OwnershipEvent):
    """Emitted when a car is created."""
    doc_type: ClassVar[str] = "createCarEvent"
    new_owner: str = ""

    @property
    def new_value(self) -> Optional[str]:
        return self.new_owner

    def to_wire(self) -> Dict[str, Any]:
        d = super().to_wire()
        d["newOwner"] = self.new_owner
        return d


@dataclass
class ChangeOwnerEvent(OwnershipEvent):
    """Emitted when a car's owner name changes."""
    doc_type: ClassVar[str] = "changeOwnerEvent"
    previous_owner: str = ""
    new_owner: str = ""

    @property
    def previous_value(self) -> Optional[str]:
        return self.previous_owner

    @property
    def new_value(self) -> Optional[str]:
        return self.new_owner

    def to_wire(self) -> Dict[str, Any]:
        d = super().to_wire()
        d["previousOwner"] = self.previous_owner
        d["newOwner"] = self.new_owner
        return d


@dataclass
class ChangeColorEvent(OwnershipEvent):
    """Emitted when a car is resprayed."""
    doc_type: ClassVar[str] = "changeColorEvent"
    previous_color: str = ""
    new_color: str = ""

    @property
    def previous_value(self) -> Optional[str]:
        return self.previous_color

    @property
    def new_value(self) -> Optional[str]:
        return self.new_color

    def to_wire(self) -> Dict[str, Any]:
        d = super().to_wire()
        d["previousColor"] = self.previous_color
        d["newColor"] = self.new_color
        return d


@dataclass
class DeleteCarEvent(OwnershipEvent):
    """Emitted when a car is deleted; carries the owner at time of deletion."""
    doc_type: ClassVar[str] = "deleteCarEvent"
    previous_owner: str = ""

    @property
    def previous_value(self) -> Optional[str]:
        return self.previous_owner

    def to_wire(self) -> Dict[str, Any]:
        d = super().to_wire()
        d["previousOwner"] = self.previous_owner
        return d


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]

DEFAULT_MAX_HISTORY = 1000


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous event bus.

    Handlers run in priority order at publish time. A failing handler is
    isolated: the error is counted, logged and passed to ``on_error``, and the
    remaining handlers still run. With ``keep_history`` the most recent
    ``max_history`` published events are kept in ``history``.
    """

    def __init__(
        self,
        on_error: Optional[Callable[[EventHandlerError], None]] = None,
        keep_history: bool = False,
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._keep_history = keep_history
        self._history: Deque[Event] = deque(maxlen=max_history)
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        Args:
            event_types: Event types to subscribe to (all events if omitted)
            priority: Handler priority (higher = earlier)
            filter_func: Optional filter function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        if event.correlation_id is None:
            # an ID is minted per event when no ledger call is in progress
            event.correlation_id = correlation_id_var.get() or generate_correlation_id()

        with self._lock:
            self._published_count += 1
            if self._keep_history:
                self._history.append(event)
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        log.debug("Publishing event", event_type=event.event_type, event_id=event.event_id)
        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            log.error(str(error), error_code="event_handler_error", event_type=event.event_type)
            if self._on_error:
                self._on_error(error)

    @property
    def history(self) -> List[Event]:
        with self._lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }

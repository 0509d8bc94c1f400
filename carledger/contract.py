"""
Car ledger operation surface.

``CarContract`` is the transport-independent entry point a host binds to its
transaction interface. It wires the store, transfer protocol and provenance
reconstruction together, and owns the read-side operations: existence checks,
point reads and the three query flavours.

Query output options (``QueryOptions``):

    output_all   include each car's certOwner (stripped by default)
    by_owner     only cars whose owner name matches
    by_creator   only cars held by a given identity:
                   "true"          the caller's own identity
                   "x509::/..."    that identity verbatim
                   any other name  the caller's identity with its CN swapped
                                   for this name (same issuing CA assumed)

With no options ``query_all`` is a range scan over every valid key; with any
option it becomes a docType-scoped selector query.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from carledger.config import LedgerConfig, get_config
from carledger.errors import EmptyField
from carledger.events import EventBus
from carledger.identity import IDENTITY_SCHEME, Caller, replace_display_name
from carledger.keys import RANGE_END, RANGE_START
from carledger.models import DOC_TYPE_CAR, Car, PreviousOwnersResult, QueryResult
from carledger.observability import LedgerLayer, get_logger, timed_operation
from carledger.provenance import reconstruct
from carledger.store import KV, LedgerStore, ResultIterator
from carledger.transfer import TransferProtocol, decode_car

log = get_logger("contract", LedgerLayer.CONTRACT)

SAMPLE_CARS: List[Dict[str, str]] = [
    {"color": "blue", "make": "Toyota", "model": "Prius", "owner": "Tomoko"},
    {"color": "red", "make": "Ford", "model": "Mustang", "owner": "Brad"},
    {"color": "green", "make": "Hyundai", "model": "Tucson", "owner": "Jin Soo"},
    {"color": "yellow", "make": "Volkswagen", "model": "Passat", "owner": "Max"},
    {"color": "black", "make": "Tesla", "model": "S", "owner": "Adriana"},
    {"color": "purple", "make": "Peugeot", "model": "205", "owner": "Michel"},
    {"color": "white", "make": "Chery", "model": "S22L", "owner": "Aarav"},
    {"color": "violet", "make": "Fiat", "model": "Punto", "owner": "Pari"},
    {"color": "indigo", "make": "Tata", "model": "Nano", "owner": "Valeria"},
    {"color": "brown", "make": "Holden", "model": "Barina", "owner": "Shotaro"},
]


@dataclass(frozen=True)
class QueryOptions:
    output_all: bool = False
    by_owner: Optional[str] = None
    by_creator: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.output_all and self.by_owner is None and self.by_creator is None

    @classmethod
    def from_transient(cls, transient: Dict[str, Any]) -> "QueryOptions":
        """Build options from a host's transient map (``QueryOutput``, ``QueryByOwner``, ``QueryByCreator``)."""
        def text(name: str) -> Optional[str]:
            if name not in transient:
                return None
            value = transient[name]
            if isinstance(value, (bytes, bytearray)):
                value = value.decode("utf-8")
            return "" if value is None else str(value)

        return cls(
            output_all=text("QueryOutput") == "all",
            by_owner=text("QueryByOwner"),
            by_creator=text("QueryByCreator"),
        )


def resolve_creator(by_creator: str, caller: Caller) -> str:
    """Turn a ``by_creator`` option into the identity to match on."""
    if by_creator == "true":
        return caller.identity
    if by_creator.startswith(IDENTITY_SCHEME + "/"):
        return by_creator
    return replace_display_name(caller.identity, by_creator)


class CarContract:
    """All ledger operations over one store."""

    def __init__(
        self,
        store: LedgerStore,
        events: Optional[EventBus] = None,
        config: Optional[LedgerConfig] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.transfers = TransferProtocol(store, events=events, config=self.config)

    @property
    def events(self) -> EventBus:
        return self.transfers.events

    # -- seeding -------------------------------------------------------------

    @timed_operation(log, "init_ledger")
    def init_ledger(self, caller: Caller) -> List[str]:
        """Write the ten sample cars CAR0..CAR9, stamped with the caller's identity."""
        keys = []
        with self.store.transaction():
            for i, sample in enumerate(SAMPLE_CARS):
                key = f"CAR{i}"
                car = Car(cert_owner=caller.identity, doc_type=DOC_TYPE_CAR, **sample)
                self.store.put_state(key, car.to_bytes())
                log.info("Added sample car", key=key, owner=car.owner)
                keys.append(key)
        return keys

    # -- reads ---------------------------------------------------------------

    @timed_operation(log, "exists")
    def exists(self, key: str) -> bool:
        return self.transfers.exists(key)

    @timed_operation(log, "get")
    def get(self, key: str, include_cert_owner: bool = False) -> Car:
        car = self.transfers.load(key)
        return car if include_cert_owner else car.without_cert_owner()

    def _collect(self, results: ResultIterator[KV], output_all: bool) -> List[QueryResult]:
        out: List[QueryResult] = []
        with results:
            for key, raw in results:
                car = decode_car(key, raw)
                out.append(QueryResult(key, car if output_all else car.without_cert_owner()))
        return out

    @timed_operation(log, "query_by_owner")
    def query_by_owner(self, owner: str, output_all: bool = False) -> List[QueryResult]:
        if not owner:
            raise EmptyField("", "carOwner", "The query cannot be made as the 'carOwner' parameter is empty.")
        selector = {"docType": DOC_TYPE_CAR, "owner": owner}
        return self._collect(self.store.get_query_result(selector), output_all)

    @timed_operation(log, "query_all")
    def query_all(self, caller: Caller, options: Optional[QueryOptions] = None) -> List[QueryResult]:
        options = options or QueryOptions()
        if options.is_empty:
            return self._collect(self.store.get_state_by_range(RANGE_START, RANGE_END), False)

        selector: Dict[str, Any] = {}
        if options.by_owner is not None:
            selector["owner"] = options.by_owner
        if options.by_creator is not None:
            selector["certOwner"] = resolve_creator(options.by_creator, caller)
        selector["docType"] = DOC_TYPE_CAR
        log.debug("Query all", selector=selector)
        return self._collect(self.store.get_query_result(selector), options.output_all)

    @timed_operation(log, "find_mine")
    def find_mine(self, caller: Caller, output_all: bool = False) -> List[QueryResult]:
        selector = {"certOwner": caller.identity, "docType": DOC_TYPE_CAR}
        return self._collect(self.store.get_query_result(selector), output_all)

    @timed_operation(log, "get_provenance")
    def get_provenance(self, key: str) -> PreviousOwnersResult:
        self.transfers.load(key)
        with self.store.get_history_for_key(key) as history:
            return reconstruct(key, history)

    # -- writes --------------------------------------------------------------

    @timed_operation(log, "create")
    def create(self, key: str, make: str, model: str, color: str, owner: str, caller: Caller) -> Car:
        return self.transfers.create(key, make, model, color, owner, caller)

    @timed_operation(log, "change_owner")
    def change_owner(self, key: str, new_owner: str, caller: Caller) -> Car:
        return self.transfers.change_owner(key, new_owner, caller)

    @timed_operation(log, "respray")
    def respray(self, key: str, new_color: str, caller: Caller) -> Car:
        return self.transfers.respray(key, new_color, caller)

    @timed_operation(log, "delete")
    def delete(self, key: str, caller: Caller) -> None:
        self.transfers.delete(key, caller)

    @timed_operation(log, "confirm_transfer")
    def confirm_transfer(self, key: str, caller: Caller) -> bool:
        return self.transfers.confirm_transfer(key, caller)

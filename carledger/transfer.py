"""
Car transfer protocol.

Creates, mutates, transfers and deletes cars on top of a ``LedgerStore``.
Ownership state is never stored; it is inferred from each record:

    ABSENT            no entry for the key
    SETTLED           certOwner unset, or its display name equals owner
    PENDING_TRANSFER  certOwner set and its display name differs from owner

    create            ABSENT -> SETTLED
    change_owner      SETTLED | PENDING_TRANSFER -> PENDING_TRANSFER (until the new owner acts)
    respray / delete  same authorization path; a name-matched caller claims custody first
    confirm_transfer  PENDING_TRANSFER -> SETTLED, no other field changes

Every operation validates completely before its single write, so a failure
leaves the store and the event bus untouched. Each runs inside one store
transaction whose timestamp stamps the published event.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

from typing import Optional

from carledger.authorization import AuthorizationEngine
from carledger.config import LedgerConfig, get_config
from carledger.errors import AlreadyExists, CorruptHistory, EmptyField, NoOpRejected, NotFound, Unauthorized
from carledger.events import ChangeColorEvent, ChangeOwnerEvent, CreateCarEvent, DeleteCarEvent, EventBus
from carledger.identity import Caller, extract_display_name
from carledger.keys import verify_key
from carledger.models import DOC_TYPE_CAR, Car, RecordFormatError
from carledger.observability import LedgerLayer, get_logger
from carledger.quota import QuotaEnforcer
from carledger.store import LedgerStore

log = get_logger("transfer", LedgerLayer.TRANSFER)


def decode_car(key: str, raw: bytes) -> Car:
    """Parse a stored value, classifying anything unreadable as corrupt."""
    try:
        return Car.from_bytes(raw)
    except RecordFormatError as exc:
        log.error("Unparseable car record", error_code=CorruptHistory.code, key=key, reason=str(exc))
        raise CorruptHistory(key, raw.decode("utf-8", errors="replace")) from exc


class TransferProtocol:

    def __init__(
        self,
        store: LedgerStore,
        events: Optional[EventBus] = None,
        config: Optional[LedgerConfig] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.events = events if events is not None else EventBus()
        self.quota = QuotaEnforcer(store, self.config)
        self.auth = AuthorizationEngine(self.quota, self.config)

    # -- reads ---------------------------------------------------------------

    def exists(self, key: str) -> bool:
        verify_key(key)
        raw = self.store.get_state(key)
        return bool(raw)

    def load(self, key: str) -> Car:
        """Current record for ``key``; raises ``NotFound`` when absent."""
        verify_key(key)
        raw = self.store.get_state(key)
        if not raw:
            raise NotFound(key)
        return decode_car(key, raw)

    # -- writes --------------------------------------------------------------

    def create(self, key: str, make: str, model: str, color: str, owner: str, caller: Caller) -> Car:
        with self.store.transaction() as tx:
            if self.exists(key):
                raise AlreadyExists(key)

            if key in self.config.reserved_keys and caller.org != self.config.admin_org:
                caller_name = extract_display_name(caller.identity)
                raise Unauthorized(
                    key,
                    caller_name,
                    "",
                    f"The car {key} cannot be created. User {caller_name} not authorised to create "
                    f"a car with reserved ID '{key}'. Try a different car number.",
                )

            self.quota.check_capacity(caller, is_claim=False, key=key)

            for field_name, value in (("make", make), ("model", model), ("color", color), ("owner", owner)):
                if not value:
                    raise EmptyField(
                        key,
                        field_name,
                        f"The car {key} cannot be created as the '{field_name}' parameter is empty.",
                    )

            car = Car(
                owner=owner,
                make=make,
                model=model,
                color=color,
                cert_owner=caller.identity,
                doc_type=DOC_TYPE_CAR,
            )
            self.store.put_state(key, car.to_bytes())
            log.info("Car created", key=key, owner=owner)
            self.events.publish(CreateCarEvent(car_number=key, new_owner=owner, transaction_date=tx.timestamp))
            return car

    def change_owner(self, key: str, new_owner: str, caller: Caller) -> Car:
        with self.store.transaction() as tx:
            car = self.load(key)

            if not new_owner:
                raise EmptyField(
                    key,
                    "newOwner",
                    f"The ownership of car {key} cannot be changed as the 'newOwner' parameter is empty.",
                )

            if car.owner.lower() == new_owner.lower():
                raise NoOpRejected(
                    key,
                    "owner",
                    car.owner,
                    f"The ownership of car {key} cannot be changed as the current owner "
                    f"'{car.owner}' and the new owner are the same.",
                )

            decision = self.auth.require_mutation(
                key, car, caller, f"The ownership of car {key} cannot be changed"
            )
            if decision.must_claim:
                car = car.with_changes(cert_owner=caller.identity)

            previous_owner = car.owner
            car = car.with_changes(owner=new_owner)
            self.store.put_state(key, car.to_bytes())
            log.info("Owner changed", key=key, previous_owner=previous_owner, new_owner=new_owner,
                     claimed=decision.must_claim)
            self.events.publish(ChangeOwnerEvent(
                car_number=key,
                previous_owner=previous_owner,
                new_owner=new_owner,
                transaction_date=tx.timestamp,
            ))
            return car

    def respray(self, key: str, new_color: str, caller: Caller) -> Car:
        with self.store.transaction() as tx:
            car = self.load(key)

            if not new_color:
                raise EmptyField(
                    key,
                    "newColor",
                    f"The car {key} cannot be resprayed as the 'newColor' parameter is empty.",
                )

            if car.color.lower() == new_color.lower():
                raise NoOpRejected(
                    key,
                    "color",
                    car.color,
                    f"The color of car {key} cannot be changed as the current color "
                    f"'{car.color}' and the new color are the same.",
                )

            decision = self.auth.require_mutation(
                key, car, caller, f"The color of car {key} cannot be changed"
            )
            if decision.must_claim:
                car = car.with_changes(cert_owner=caller.identity)

            previous_color = car.color
            car = car.with_changes(color=new_color)
            self.store.put_state(key, car.to_bytes())
            log.info("Car resprayed", key=key, previous_color=previous_color, new_color=new_color,
                     claimed=decision.must_claim)
            self.events.publish(ChangeColorEvent(
                car_number=key,
                previous_color=previous_color,
                new_color=new_color,
                transaction_date=tx.timestamp,
            ))
            return car

    def delete(self, key: str, caller: Caller) -> None:
        with self.store.transaction() as tx:
            car = self.load(key)

            # a claim has nothing to persist on delete, but its quota check still applies
            self.auth.require_mutation(key, car, caller, f"The car {key} cannot be deleted")

            self.store.delete_state(key)
            log.info("Car deleted", key=key, owner=car.owner)
            self.events.publish(DeleteCarEvent(
                car_number=key,
                previous_owner=car.owner,
                transaction_date=tx.timestamp,
            ))

    def confirm_transfer(self, key: str, caller: Caller) -> bool:
        """Take custody of a car handed to the caller's display name.

        Returns False, writing nothing, when the caller already has custody.
        """
        with self.store.transaction():
            car = self.load(key)

            if car.cert_owner == caller.identity:
                return False

            caller_name = extract_display_name(caller.identity)
            if not caller_name or caller_name != car.owner:
                custodian_name = extract_display_name(car.cert_owner)
                raise Unauthorized(
                    key,
                    caller_name,
                    custodian_name,
                    f"The ownership of car {key} cannot be changed. "
                    f"User {custodian_name} has not authorised {caller_name} to take ownership.",
                )

            self.quota.check_capacity(caller, is_claim=True, key=key)

            self.store.put_state(key, car.with_changes(cert_owner=caller.identity).to_bytes())
            log.info("Transfer confirmed", key=key, owner=car.owner)
            return True

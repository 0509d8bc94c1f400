"""Ledger record types.

``Car`` is the world-state value for one key. ``HistoryRecord`` is one version
of a key as returned by the store's history facility. ``PreviousOwnersResult``
is the provenance projection. Wire forms use the camelCase field names of the
stored JSON documents.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from carledger.core import to_iso8601
from carledger.identity import extract_display_name
from carledger.schema import validate_against_schema

DOC_TYPE_CAR = "car"


class RecordFormatError(ValueError):
    """Raw bytes or dict do not describe a car."""


class AssetState(Enum):
    """Ownership state inferred from ``(cert_owner, owner)``; never stored."""
    ABSENT = "absent"
    SETTLED = "settled"
    PENDING_TRANSFER = "pending_transfer"


@dataclass(frozen=True)
class Car:
    """One car as held in world state."""
    owner: str
    make: str
    model: str
    color: str
    cert_owner: Optional[str] = None
    doc_type: Optional[str] = DOC_TYPE_CAR

    @property
    def state(self) -> AssetState:
        if not self.cert_owner or extract_display_name(self.cert_owner) == self.owner:
            return AssetState.SETTLED
        return AssetState.PENDING_TRANSFER

    def with_changes(self, **changes: Any) -> "Car":
        return replace(self, **changes)

    def without_cert_owner(self) -> "Car":
        return replace(self, cert_owner=None)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.doc_type is not None:
            d["docType"] = self.doc_type
        d["owner"] = self.owner
        d["make"] = self.make
        d["model"] = self.model
        d["color"] = self.color
        if self.cert_owner is not None:
            d["certOwner"] = self.cert_owner
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    def to_bytes(self) -> bytes:
        return self.to_json().encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> "Car":
        errors = validate_against_schema(data)
        if errors:
            raise RecordFormatError(errors[0])
        return cls(
            owner=data["owner"],
            make=data["make"],
            model=data["model"],
            color=data["color"],
            cert_owner=data.get("certOwner"),
            doc_type=data.get("docType"),
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Car":
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RecordFormatError(str(exc)) from exc
        return cls.from_dict(data)


def asset_state(car: Optional[Car]) -> AssetState:
    if car is None:
        return AssetState.ABSENT
    return car.state


@dataclass(frozen=True)
class HistoryRecord:
    """One immutable version of a key."""
    tx_id: str
    timestamp: datetime
    is_delete: bool
    value: Optional[bytes] = None


@dataclass(frozen=True)
class QueryResult:
    key: str
    car: Car

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "car": self.car.to_dict()}


@dataclass
class PreviousOwnersResult:
    """Deduplicated ownership timeline of one car."""
    current_owner: str
    current_ownership_change_date: datetime
    previous_owner_count: int = 0
    previous_owners: List[str] = field(default_factory=list)
    previous_ownership_change_dates: List[datetime] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"previousOwnerCount": self.previous_owner_count}
        if self.previous_owner_count > 0:
            d["previousOwners"] = list(self.previous_owners)
            d["previousOwnershipChangeDates"] = [to_iso8601(t) for t in self.previous_ownership_change_dates]
        d["currentOwner"] = self.current_owner
        d["currentOwnershipChangeDate"] = to_iso8601(self.current_ownership_change_date)
        return d

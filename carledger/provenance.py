"""
Provenance reconstruction.

Derives a car's ownership timeline from its full version history. The store
returns history newest first; the first record is the current state and every
later (older) record is folded through a deduplication rule so that writes
which did not change the real-world owner do not show up as extra owners:

    record kind                              listed?
    ─────────────────────────────────────    ───────
    delete                                   always
    owner name differs from previous step    yes
    owner name equals previous step          no  (respray, confirm_transfer,
                                                  any certOwner-only write)

The comparison baseline advances on every record, listed or not. Deletes
carry the sentinel name ``DELETED_OWNER`` instead of a parsed owner.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from carledger.errors import CorruptHistory, NotFound
from carledger.models import HistoryRecord, PreviousOwnersResult
from carledger.observability import LedgerLayer, get_logger
from carledger.transfer import decode_car

log = get_logger("provenance", LedgerLayer.PROVENANCE)

DELETED_OWNER = "CAR KEY DELETED"


@dataclass(frozen=True)
class _Step:
    owner: str
    cert_owner: str


def _step_for(key: str, record: HistoryRecord) -> _Step:
    if record.is_delete:
        return _Step(DELETED_OWNER, "")
    if record.value is None:
        raise CorruptHistory(key, "", f"The car {key} has a history record without a value.")
    car = decode_car(key, record.value)
    return _Step(car.owner, car.cert_owner or "")


def reconstruct(key: str, history: Iterable[HistoryRecord]) -> PreviousOwnersResult:
    """Fold newest-first history records into a ``PreviousOwnersResult``.

    Closing the history iterator is the caller's job.
    """
    result: Optional[PreviousOwnersResult] = None
    previous: Optional[_Step] = None

    for record in history:
        step = _step_for(key, record)

        if result is None:
            # the newest record is the current owner and never counts as a previous one
            result = PreviousOwnersResult(
                current_owner=step.owner,
                current_ownership_change_date=record.timestamp,
            )
        elif record.is_delete or previous is None or step.owner != previous.owner:
            result.previous_owner_count += 1
            result.previous_owners.append(step.owner)
            result.previous_ownership_change_dates.append(record.timestamp)
        else:
            log.debug(
                "Skipping non-transfer record",
                key=key,
                owner=step.owner,
                cert_owner_changed=step.cert_owner != previous.cert_owner,
                timestamp=record.timestamp.isoformat(),
            )

        previous = step

    if result is None:
        raise NotFound(key)
    return result

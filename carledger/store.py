"""
Versioned key-value store collaborator.

The ownership core only talks to a ``LedgerStore``: point get/put/delete,
half-open range scans, equality-selector queries and per-key history. Scans,
queries and history come back as ``ResultIterator`` objects, which are lazy,
forward-only and must be closed by the consumer on every exit path (use them
as context managers).

Two implementations ship here:

    InMemoryLedger   thread-safe reference store with full per-key history
    JsonFileLedger   InMemoryLedger persisted to a JSON file after each
                     transaction (used by the CLI)

Neither provides consensus or replication; a production host plugs its own
ledger in behind the same interface.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

import base64
import bisect
import json
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar, Union

from carledger.core import parse_iso8601, to_iso8601
from carledger.models import HistoryRecord
from carledger.observability import LedgerLayer, get_logger

log = get_logger("store", LedgerLayer.STORE)

T = TypeVar("T")

Clock = Callable[[], datetime]


class StoreError(Exception):
    """The store failed or was misused."""


class IteratorClosedError(StoreError):
    """A closed result iterator was read."""


# =============================================================================
# RESULT ITERATOR
# =============================================================================

class ResultIterator(Generic[T]):
    """
    Lazy, forward-only, closable sequence of store results.

    Not restartable: iterating twice continues where the first pass stopped.
    Reading after ``close()`` raises ``IteratorClosedError``.
    """

    def __init__(self, source: Iterable[T], on_close: Optional[Callable[[], None]] = None):
        self._source: Iterator[T] = iter(source)
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> "ResultIterator[T]":
        return self

    def __next__(self) -> T:
        if self._closed:
            raise IteratorClosedError("result iterator is closed")
        return next(self._source)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._source, "close", None)
        if close is not None:
            close()
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> "ResultIterator[T]":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


KV = Tuple[str, bytes]


# =============================================================================
# CONTRACT
# =============================================================================

@dataclass(frozen=True)
class Transaction:
    """Identity and timestamp shared by every write of one ledger call."""
    tx_id: str
    timestamp: datetime


class LedgerStore(ABC):
    """Store collaborator used by the ownership core."""

    @abstractmethod
    def get_state(self, key: str) -> Optional[bytes]:
        """Current value for ``key``, or None when absent."""

    @abstractmethod
    def put_state(self, key: str, value: bytes) -> None:
        ...

    @abstractmethod
    def delete_state(self, key: str) -> None:
        ...

    @abstractmethod
    def get_state_by_range(self, start_key: str, end_key: str) -> ResultIterator[KV]:
        """Entries with ``start_key <= key < end_key`` in key order."""

    @abstractmethod
    def get_query_result(self, selector: Dict[str, Any]) -> ResultIterator[KV]:
        """Entries whose JSON value matches every ``field == value`` in ``selector``."""

    @abstractmethod
    def get_history_for_key(self, key: str) -> ResultIterator[HistoryRecord]:
        """Every version of ``key``, newest first, deletes included."""

    @abstractmethod
    def transaction(self) -> Any:
        """Context manager yielding the ``Transaction`` that scopes a ledger call."""


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

def system_clock() -> datetime:
    return datetime.now(timezone.utc)


class SteppingClock:
    """Deterministic clock advancing a fixed step on each reading."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self._now = start or datetime(2020, 1, 1, tzinfo=timezone.utc)
        self._step = step
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self._now
            self._now = current + self._step
            return current


def _matches(value: bytes, selector: Dict[str, Any]) -> bool:
    try:
        doc = json.loads(value.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return False
    if not isinstance(doc, dict):
        return False
    return all(k in doc and doc[k] == v for k, v in selector.items())


class InMemoryLedger(LedgerStore):
    """
    Thread-safe in-memory ledger with per-key history.

    ``transaction()`` serialises ledger calls: it holds the store lock for the
    duration of the call, so a quota count and the write it guards cannot
    interleave with another call's writes.
    """

    def __init__(self, clock: Clock = system_clock):
        self._clock = clock
        self._state: Dict[str, bytes] = {}
        self._keys: List[str] = []
        self._history: Dict[str, List[HistoryRecord]] = {}
        self._lock = threading.RLock()
        self._local = threading.local()
        self._open_iterators = 0

    # -- transactions --------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            outer = getattr(self._local, "tx", None)
            if outer is not None:
                yield outer
                return
            tx = Transaction(tx_id=uuid.uuid4().hex, timestamp=self._clock())
            self._local.tx = tx
            try:
                yield tx
            finally:
                self._local.tx = None
                self._after_commit()

    def _after_commit(self) -> None:
        pass

    def _current_tx(self) -> Transaction:
        tx = getattr(self._local, "tx", None)
        if tx is None:
            tx = Transaction(tx_id=uuid.uuid4().hex, timestamp=self._clock())
        return tx

    # -- point operations ----------------------------------------------------

    def get_state(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._state.get(key)

    def put_state(self, key: str, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise StoreError(f"value for {key} must be bytes")
        with self._lock:
            tx = self._current_tx()
            if key not in self._state:
                bisect.insort(self._keys, key)
            self._state[key] = bytes(value)
            self._append_history(key, HistoryRecord(tx.tx_id, tx.timestamp, False, bytes(value)))
        self._write_through()

    def delete_state(self, key: str) -> None:
        with self._lock:
            if key not in self._state:
                return
            tx = self._current_tx()
            del self._state[key]
            self._keys.remove(key)
            self._append_history(key, HistoryRecord(tx.tx_id, tx.timestamp, True, None))
        self._write_through()

    def _append_history(self, key: str, record: HistoryRecord) -> None:
        self._history.setdefault(key, []).append(record)

    def _write_through(self) -> None:
        # writes outside a transaction commit immediately
        if getattr(self._local, "tx", None) is None:
            with self._lock:
                self._after_commit()

    # -- iterators -----------------------------------------------------------

    @property
    def open_iterators(self) -> int:
        with self._lock:
            return self._open_iterators

    def _iterator(self, items: List[T]) -> ResultIterator[T]:
        with self._lock:
            self._open_iterators += 1

        def on_close() -> None:
            with self._lock:
                self._open_iterators -= 1

        return ResultIterator(iter(items), on_close=on_close)

    def get_state_by_range(self, start_key: str, end_key: str) -> ResultIterator[KV]:
        with self._lock:
            lo = bisect.bisect_left(self._keys, start_key)
            hi = bisect.bisect_left(self._keys, end_key) if end_key else len(self._keys)
            items = [(k, self._state[k]) for k in self._keys[lo:hi]]
        return self._iterator(items)

    def get_query_result(self, selector: Dict[str, Any]) -> ResultIterator[KV]:
        with self._lock:
            items = [(k, self._state[k]) for k in self._keys if _matches(self._state[k], selector)]
        log.debug("Query executed", selector=selector, matches=len(items))
        return self._iterator(items)

    def get_history_for_key(self, key: str) -> ResultIterator[HistoryRecord]:
        with self._lock:
            items = list(reversed(self._history.get(key, [])))
        return self._iterator(items)

    # -- serialisation -------------------------------------------------------

    def dump(self) -> Dict[str, Any]:
        """Plain-data snapshot of state and history."""
        with self._lock:
            return {
                "state": {k: self._state[k].decode("utf-8") for k in self._keys},
                "history": {
                    k: [_history_to_json(r) for r in records]
                    for k, records in self._history.items()
                },
            }

    def load(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._state = {k: v.encode("utf-8") for k, v in (data.get("state") or {}).items()}
            self._keys = sorted(self._state)
            self._history = {
                k: [_history_from_json(r) for r in records]
                for k, records in (data.get("history") or {}).items()
            }


def _history_to_json(record: HistoryRecord) -> Dict[str, Any]:
    return {
        "txId": record.tx_id,
        "timestamp": to_iso8601(record.timestamp),
        "isDelete": record.is_delete,
        "value": base64.b64encode(record.value).decode("ascii") if record.value is not None else None,
    }


def _history_from_json(data: Dict[str, Any]) -> HistoryRecord:
    ts = parse_iso8601(str(data.get("timestamp") or ""))
    if ts is None:
        raise StoreError(f"invalid history timestamp: {data.get('timestamp')!r}")
    raw = data.get("value")
    return HistoryRecord(
        tx_id=str(data.get("txId") or ""),
        timestamp=ts,
        is_delete=bool(data.get("isDelete")),
        value=base64.b64decode(raw) if raw is not None else None,
    )


class JsonFileLedger(InMemoryLedger):
    """InMemoryLedger persisted to a JSON file after each committed transaction."""

    def __init__(self, path: Union[str, Path], clock: Clock = system_clock):
        super().__init__(clock=clock)
        self.path = Path(path)
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise StoreError(f"ledger file {self.path} is not valid JSON: {exc}") from exc
            self.load(data)

    def _after_commit(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.dump(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        tmp.replace(self.path)

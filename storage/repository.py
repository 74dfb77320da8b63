"""
Purpose: The document store "adapter" boundary.
What it does:
- Defines the Repository protocol the matching core talks to:
  get / query / create / create_if_absent / update / delete / subscribe
- Ships an in-memory implementation used by tests, scripts and local runs.

Documents are plain dicts at this boundary. Domain modules own the
conversion to and from their typed records (see `from_document` / `to_document`).

Rule: No matching rules here. Storage only.
"""

from __future__ import annotations

import copy
import queue
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

Document = Dict[str, Any]

# Collection names shared across the core
REQUESTS = "requests"
ROUTES = "routes"
USERS = "users"
MATCHES = "matches"
DELIVERIES = "deliveries"
NOTIFICATIONS = "notifications"
CHAT_ROOMS = "chat_rooms"
CHAT_MESSAGES = "chat_messages"
TRANSFER_MATCHES = "transfer_matches"
CONFIG_STATIONS = "config_stations"
CONFIG_TRAVEL_TIMES = "config_travel_times"


class RepositoryError(Exception):
    """Base error for document store failures."""
    pass


class DocumentNotFound(RepositoryError):
    """Raised when updating a document that does not exist."""
    pass


def _contains(container: Any, value: Any) -> bool:
    try:
        return value in container
    except TypeError:
        return False


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda left, right: left == right,
    "!=": lambda left, right: left != right,
    "<": lambda left, right: left is not None and left < right,
    "<=": lambda left, right: left is not None and left <= right,
    ">": lambda left, right: left is not None and left > right,
    ">=": lambda left, right: left is not None and left >= right,
    "in": lambda left, right: _contains(right, left),
    "array-contains": lambda left, right: left is not None and _contains(left, right),
}


class Subscription:
    """
    A stream of query snapshots.

    Iterating yields the full list of matching documents every time the
    underlying collection changes. `close()` ends the stream and may be
    called any number of times.
    """

    _CLOSED = object()

    def __init__(self, on_close: Callable[["Subscription"], None]):
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._on_close = on_close
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def push(self, snapshot: List[Document]) -> None:
        if not self.closed:
            self._queue.put(snapshot)

    def get(self, timeout: Optional[float] = None) -> Optional[List[Document]]:
        """
        Block for the next snapshot. Returns None once closed or on timeout.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is self._CLOSED:
            return None
        return item

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._queue.put(self._CLOSED)
        self._on_close(self)

    def __iter__(self) -> Iterator[List[Document]]:
        while True:
            snapshot = self.get()
            if snapshot is None:
                return
            yield snapshot


class Repository(Protocol):
    """
    What the matching core needs from a document store.
    """

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    def query(self, collection: str, field_name: str, op: str, value: Any) -> List[Document]:
        ...

    def create(self, collection: str, doc: Document, doc_id: Optional[str] = None) -> str:
        ...

    def create_if_absent(self, collection: str, doc_id: str, doc: Document) -> bool:
        ...

    def update(self, collection: str, doc_id: str, patch: Document) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        ...

    def subscribe(self, collection: str, field_name: str, op: str, value: Any) -> Subscription:
        ...


@dataclass
class _Watcher:
    subscription: Subscription
    field_name: str
    op: str
    value: Any


@dataclass
class InMemoryRepository:
    """
    Thread-safe, dict-backed document store.

    Every returned document is a copy carrying its id under "id", so callers
    can never mutate stored state by accident.
    """
    _collections: Dict[str, Dict[str, Document]] = field(default_factory=dict)
    _watchers: Dict[str, List[_Watcher]] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock)

    # --- Public API ---

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return self._snapshot(doc_id, doc) if doc is not None else None

    def query(self, collection: str, field_name: str, op: str, value: Any) -> List[Document]:
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        with self._lock:
            return self._run_query(collection, field_name, op, value)

    def all(self, collection: str) -> List[Document]:
        with self._lock:
            return [self._snapshot(doc_id, doc) for doc_id, doc in self._collections.get(collection, {}).items()]

    def create(self, collection: str, doc: Document, doc_id: Optional[str] = None) -> str:
        with self._lock:
            doc_id = doc_id or uuid.uuid4().hex
            self._collections.setdefault(collection, {})[doc_id] = self._strip_id(doc)
            self._notify(collection)
            return doc_id

    def create_if_absent(self, collection: str, doc_id: str, doc: Document) -> bool:
        """
        Conditional create: returns False (and writes nothing) when the id is taken.
        """
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if doc_id in docs:
                return False
            docs[doc_id] = self._strip_id(doc)
            self._notify(collection)
            return True

    def update(self, collection: str, doc_id: str, patch: Document) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise DocumentNotFound(f"{collection}/{doc_id} does not exist")
            docs[doc_id].update(self._strip_id(patch))
            self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> bool:
        """
        Remove a document. Returns False when it did not exist.
        """
        with self._lock:
            docs = self._collections.get(collection, {})
            if docs.pop(doc_id, None) is None:
                return False
            self._notify(collection)
            return True

    def subscribe(self, collection: str, field_name: str, op: str, value: Any) -> Subscription:
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")

        subscription = Subscription(on_close=lambda sub: self._unsubscribe(collection, sub))
        with self._lock:
            self._watchers.setdefault(collection, []).append(
                _Watcher(subscription=subscription, field_name=field_name, op=op, value=value)
            )
            # first snapshot is the current state
            subscription.push(self._run_query(collection, field_name, op, value))
        return subscription

    # --- Internal helpers ---

    def _run_query(self, collection: str, field_name: str, op: str, value: Any) -> List[Document]:
        matches_op = _OPERATORS[op]
        results = []
        for doc_id, doc in self._collections.get(collection, {}).items():
            if field_name not in doc:
                continue
            if matches_op(doc[field_name], value):
                results.append(self._snapshot(doc_id, doc))
        return results

    def _notify(self, collection: str) -> None:
        for watcher in list(self._watchers.get(collection, [])):
            watcher.subscription.push(
                self._run_query(collection, watcher.field_name, watcher.op, watcher.value)
            )

    def _unsubscribe(self, collection: str, subscription: Subscription) -> None:
        with self._lock:
            watchers = self._watchers.get(collection, [])
            self._watchers[collection] = [w for w in watchers if w.subscription is not subscription]

    @staticmethod
    def _strip_id(doc: Document) -> Document:
        return {key: copy.deepcopy(value) for key, value in doc.items() if key != "id"}

    @staticmethod
    def _snapshot(doc_id: str, doc: Document) -> Document:
        snapshot = copy.deepcopy(doc)
        snapshot["id"] = doc_id
        return snapshot

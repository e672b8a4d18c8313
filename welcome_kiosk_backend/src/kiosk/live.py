"""
Live queries over the database.

A ChangeFeed watches SQLAlchemy sessions, remembers which tables each
transaction touched and, once the transaction commits, tells every
subscriber of those tables. A LiveQuery re-runs its query on each such
notification and pushes the fresh snapshot to its listeners, so callers see
the same "standing query" behaviour a realtime document store gives.
"""

import json
import logging
import queue
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from .errors import StoreError

logger = logging.getLogger(__name__)

_CHANGED_TABLES = "kiosk_changed_tables"


# PUBLIC_INTERFACE
class Subscription:
    """
    Handle returned by every subscribe() call.
    remove() may be called any number of times; the release runs once.
    """

    def __init__(self, release: Callable[[], None]):
        self._release = release
        self._lock = threading.Lock()
        self.active = True

    def remove(self):
        with self._lock:
            if not self.active:
                return
            self.active = False
        self._release()


# PUBLIC_INTERFACE
class ChangeFeed:
    """
    Publishes table names to subscribers after each successful commit.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[str], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def attach(self, session_factory):
        """Hooks the feed into every session created by session_factory."""
        event.listen(session_factory, "after_flush", self._record_changes)
        event.listen(session_factory, "after_commit", self._publish_changes)
        event.listen(session_factory, "after_rollback", self._discard_changes)

    def subscribe(self, table: str, callback: Callable[[str], None]) -> Subscription:
        with self._lock:
            self._subscribers[table].append(callback)

        def release():
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return Subscription(release)

    def publish(self, tables: Iterable[str]):
        for table in sorted(set(tables)):
            with self._lock:
                callbacks = list(self._subscribers.get(table, ()))
            for callback in callbacks:
                callback(table)

    def _record_changes(self, session, flush_context):
        changed = session.info.setdefault(_CHANGED_TABLES, set())
        for obj in list(session.new) + list(session.dirty) + list(session.deleted):
            table = getattr(obj, "__tablename__", None)
            if table:
                changed.add(table)

    def _publish_changes(self, session):
        changed = session.info.pop(_CHANGED_TABLES, None)
        if changed:
            self.publish(changed)

    def _discard_changes(self, session):
        session.info.pop(_CHANGED_TABLES, None)


# PUBLIC_INTERFACE
class LiveQuery:
    """
    A standing query over one or more tables.

    fetch receives a fresh Session and returns the snapshot (plain values,
    detached from the session). Listeners get the current snapshot as soon as
    they subscribe and a new one after every commit touching the tables.
    """

    def __init__(self, feed: ChangeFeed, session_factory, tables: Iterable[str], fetch: Callable[[Any], Any]):
        self.feed = feed
        self.session_factory = session_factory
        self.tables = tuple(tables)
        self.fetch = fetch

    def snapshot(self):
        db = self.session_factory()
        try:
            return self.fetch(db)
        except SQLAlchemyError as exc:
            logger.error("Error running live query on %s: %s", ", ".join(self.tables), exc)
            raise StoreError("Could not load data. Please try again.") from exc
        finally:
            db.close()

    def subscribe(self, listener: Callable[[Any], None],
                  on_error: Optional[Callable[[Exception], None]] = None) -> Subscription:
        """
        Starts listening. The first snapshot is delivered before this returns;
        a failure loading it raises StoreError and nothing stays registered.
        A failure on a later refresh closes the subscription and goes to on_error.
        """
        feed_subscriptions: List[Subscription] = []

        def release():
            for sub in feed_subscriptions:
                sub.remove()

        subscription = Subscription(release)

        def refresh(_table):
            if not subscription.active:
                return
            try:
                result = self.snapshot()
            except StoreError as exc:
                subscription.remove()
                if on_error is not None:
                    on_error(exc)
                return
            listener(result)

        for table in self.tables:
            feed_subscriptions.append(self.feed.subscribe(table, refresh))
        try:
            initial = self.snapshot()
        except StoreError:
            subscription.remove()
            raise
        listener(initial)
        return subscription

    @contextmanager
    def listen(self, listener, on_error=None) -> Iterator[Subscription]:
        """Subscription scoped to a with-block; always removed on exit."""
        subscription = self.subscribe(listener, on_error)
        try:
            yield subscription
        finally:
            subscription.remove()


_MISSING = object()


# PUBLIC_INTERFACE
def combine_latest(first, second, combiner: Callable[[Any, Any], Any],
                   listener: Callable[[Any], None], on_error=None) -> Subscription:
    """
    Subscribes to two live sources and emits combiner(latest_first, latest_second)
    on every emission from either one, once both have produced a value.
    """
    latest = [_MISSING, _MISSING]
    lock = threading.RLock()

    def emit(index, value):
        with lock:
            latest[index] = value
            if _MISSING in latest:
                return
            combined = combiner(latest[0], latest[1])
        listener(combined)

    first_subscription = first.subscribe(lambda value: emit(0, value), on_error)
    try:
        second_subscription = second.subscribe(lambda value: emit(1, value), on_error)
    except Exception:
        first_subscription.remove()
        raise

    def release():
        first_subscription.remove()
        second_subscription.remove()

    return Subscription(release)


# PUBLIC_INTERFACE
def sse_events(subscribe: Callable[[Callable[[Any], None]], Subscription],
               keepalive: float = 15.0) -> Iterator[str]:
    """
    Turns a live subscription into a Server-Sent Events stream.
    The subscription is released when the client disconnects and the
    generator is closed.
    """
    events: "queue.Queue[Any]" = queue.Queue()
    subscription = subscribe(events.put)
    try:
        while subscription.active or not events.empty():
            try:
                payload = events.get(timeout=keepalive)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            yield f"data: {json.dumps(jsonable_encoder(payload))}\n\n"
    finally:
        subscription.remove()

"""
Live-state store.

Holds the single current LiveState plus the non-live collections fetched from
the REST snapshot (users, campaigns, scripts, ...) and the supervisor
notification list.

Explicitly constructed and injected; there is no module-level instance.
dispose() ends the lifecycle: subscribers are dropped and further dispatches
are ignored.

Besides load_snapshot, the bulk setters (set_collection, set_users,
set_campaigns) and dismiss_notification are library API for embedding UIs.

Every mutating entry point runs inside one transaction and notifies each
subscriber exactly once, even when the reducer produced no change.
"""

from __future__ import annotations
import itertools
import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, Mapping

from live.reducer import reduce
from models.events import EntityChange, InitState, LiveEvent, Notification
from models.state import LiveState

log = logging.getLogger(__name__)

Subscriber = Callable[[LiveState], None]
Reducer = Callable[[LiveState, LiveEvent], LiveState]

# Array-valued keys of the /application-data payload
COLLECTIONS: tuple[str, ...] = (
    "users",
    "userGroups",
    "savedScripts",
    "campaigns",
    "qualifications",
    "qualificationGroups",
    "ivrFlows",
    "audioFiles",
    "trunks",
    "dids",
    "sites",
    "activityTypes",
    "personalCallbacks",
    "callHistory",
    "agentSessions",
    "contactNotes",
    "planningEvents",
    "backupLogs",
    "systemLogs",
    "connectivityServices",
)


class LiveStore:
    """
    Usage:
        store = LiveStore()
        unsubscribe = store.subscribe(render)
        store.load_snapshot(await rest.get_application_data())
        store.dispatch(Tick())
        ...
        store.dispose()
    """

    def __init__(self, reducer: Reducer = reduce) -> None:
        self._reducer = reducer
        self._state = LiveState()
        self._collections: dict[str, list[dict[str, Any]]] = {name: [] for name in COLLECTIONS}
        self._notifications: list[Notification] = []
        self._notification_seq = itertools.count(1)
        self._subscribers: list[Subscriber] = []
        self._depth = 0
        self._disposed = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_snapshot(self) -> LiveState:
        return self._state

    def get_collection(self, name: str) -> tuple[dict[str, Any], ...]:
        return tuple(self._collections.get(name, ()))

    @property
    def users(self) -> tuple[dict[str, Any], ...]:
        return self.get_collection("users")

    @property
    def campaigns(self) -> tuple[dict[str, Any], ...]:
        return self.get_collection("campaigns")

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._notifications)

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a re-render callback. Returns the matching unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed or store disposed

        return unsubscribe

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def dispatch(self, event: LiveEvent) -> None:
        if self._disposed:
            return
        with self._transaction():
            self._state = self._reducer(self._state, event)

    def set_collection(self, name: str, items: Iterable[Mapping[str, Any]]) -> None:
        """Full replace, last write wins. Live state is only recomputed by InitState."""
        if self._disposed:
            return
        with self._transaction():
            self._collections[name] = [dict(item) for item in items]

    def set_users(self, users: Iterable[Mapping[str, Any]]) -> None:
        self.set_collection("users", users)

    def set_campaigns(self, campaigns: Iterable[Mapping[str, Any]]) -> None:
        self.set_collection("campaigns", campaigns)

    def load_snapshot(self, data: Mapping[str, Any]) -> None:
        """
        Merge a REST application-data snapshot: bulk-set every collection
        present, then rebuild live state from the user and campaign rosters.
        """
        if self._disposed:
            return
        with self._transaction():
            for name in COLLECTIONS:
                items = data.get(name)
                if isinstance(items, list):
                    self._collections[name] = [dict(item) for item in items]
            self._state = self._reducer(
                self._state,
                InitState.make(self._collections["users"], self._collections["campaigns"]),
            )
        log.info(
            "Snapshot loaded: %d users, %d campaigns -> %d agents tracked",
            len(self._collections["users"]),
            len(self._collections["campaigns"]),
            len(self._state.agent_states),
        )

    def apply_entity_change(self, change: EntityChange) -> None:
        """Upsert (replace if present, append if absent) or delete by id."""
        if self._disposed:
            return
        with self._transaction():
            items = self._collections.setdefault(change.collection, [])
            entity_id = change.entity_id
            if change.op == "delete":
                self._collections[change.collection] = [
                    item for item in items if item.get("id") != entity_id
                ]
                return
            for i, item in enumerate(items):
                if item.get("id") == entity_id:
                    items[i] = dict(change.entity)
                    break
            else:
                items.append(dict(change.entity))

    def add_notification(self, notification: Notification) -> Notification | None:
        """Append with the next local sequence id. Returns the stored notification."""
        if self._disposed:
            return None
        stored = replace(notification, id=next(self._notification_seq))
        with self._transaction():
            self._notifications.append(stored)
        return stored

    def dismiss_notification(self, notification_id: int) -> bool:
        if self._disposed:
            return False
        with self._transaction():
            before = len(self._notifications)
            self._notifications = [n for n in self._notifications if n.id != notification_id]
            return len(self._notifications) != before

    def clear_notifications(self) -> None:
        if self._disposed:
            return
        with self._transaction():
            self._notifications.clear()

    def dispose(self) -> None:
        """Drop subscribers and data. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._subscribers.clear()
        self._notifications.clear()
        self._collections = {name: [] for name in COLLECTIONS}
        self._state = LiveState()
        log.info("LiveStore disposed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
        if self._depth == 0:
            self._notify()

    def _notify(self) -> None:
        snapshot = self._state
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:
                log.exception("Store subscriber %r failed: %s", callback, exc)

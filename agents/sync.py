"""
Sync Agent — Live State Ingestion.

Owns the data paths into the LiveStore:
  - initial login + REST snapshot (startup)
  - decoded WebSocket events (handle_event, registered on CallCenterWSClient)
  - snapshot re-fetch on refetch triggers, reconnects and polling fallback (resync)

Routing:
  LiveEvent      -> store.dispatch (reducer)
  EntityChange   -> store.apply_entity_change
  Notification   -> store notification list + bus.notifications
  SnapshotRefresh-> background resync (coalesced)

Only snapshot and auth failures become user-visible alerts.
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

from backend.errors import AuthRejectedError, SnapshotFetchError
from backend.rest_client import CallCenterRestClient
from bus.event_bus import EventBus
from live.store import LiveStore
from models.events import (
    LIVE_EVENT_TYPES,
    Alert,
    BackendEvent,
    EntityChange,
    Notification,
    SnapshotRefresh,
)
from models.state import AgentStatus

if TYPE_CHECKING:
    from backend.ws_client import CallCenterWSClient

log = logging.getLogger(__name__)


class SyncAgent:
    """
    Keeps the LiveStore consistent with the backend.

    The WebSocket client is attached after construction because its callbacks
    point back at this agent.
    """

    def __init__(
        self,
        bus: EventBus,
        store: LiveStore,
        rest_client: CallCenterRestClient,
        login_id: str | None = None,
        password: str | None = None,
    ) -> None:
        self._bus = bus
        self._store = store
        self._rest = rest_client
        self._login_id = login_id
        self._password = password
        self._ws: "CallCenterWSClient | None" = None
        self._refetch_task: asyncio.Task | None = None
        self._refetch_pending = False
        self._resync_lock = asyncio.Lock()
        self.auth_failed = asyncio.Event()
        self.current_user: dict = {}

    def attach(self, ws_client: "CallCenterWSClient") -> None:
        self._ws = ws_client

    async def startup(self) -> None:
        """
        Log in if credentials are configured, then load the baseline snapshot.
        Raises AuthRejectedError / SnapshotFetchError: without a baseline the
        live view has nothing to overlay events onto.
        """
        try:
            if self._login_id and self._password:
                self.current_user = await self._rest.login(self._login_id, self._password)
            else:
                self.current_user = await self._rest.get_me()
        except AuthRejectedError as exc:
            await self.handle_auth_failure(exc)
            raise
        await self.resync(raise_errors=True)

    async def run(self) -> None:
        assert self._ws is not None, "attach() a CallCenterWSClient first"
        log.info("Sync agent starting backend WebSocket stream")
        await self._ws.run()

    async def shutdown(self) -> None:
        if self._refetch_task is not None:
            self._refetch_task.cancel()
            await asyncio.gather(self._refetch_task, return_exceptions=True)
        if self._ws is not None:
            await self._ws.close()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_event(self, event: BackendEvent) -> None:
        """Callback registered with CallCenterWSClient. Runs in frame order."""
        if isinstance(event, LIVE_EVENT_TYPES):
            self._store.dispatch(event)
        elif isinstance(event, EntityChange):
            self._store.apply_entity_change(event)
        elif isinstance(event, Notification):
            stored = self._store.add_notification(event)
            if stored is not None:
                self._bus.publish_notification(stored)
        elif isinstance(event, SnapshotRefresh):
            self._schedule_refetch(event.reason)
        else:
            log.debug("Sync agent ignoring %s", type(event).__name__)

    async def resync(self, raise_errors: bool = False) -> None:
        """
        Re-fetch the snapshot and rebuild live state (InitState). Used as the
        WebSocket client's on_resync callback, so by default failures are
        alerted and swallowed; startup() passes raise_errors=True.
        """
        async with self._resync_lock:
            try:
                data = await self._rest.get_application_data()
            except AuthRejectedError as exc:
                await self.handle_auth_failure(exc)
                if raise_errors:
                    raise
                return
            except SnapshotFetchError as exc:
                log.error("Snapshot fetch failed: %s", exc)
                self._bus.publish_alert(
                    Alert(level="error", message="Failed to load data.", error_code=exc.error_code)
                )
                if raise_errors:
                    raise
                return
            self._store.load_snapshot(data)

    async def handle_auth_failure(self, exc: AuthRejectedError) -> None:
        """Terminal for the session: alert and let main trigger re-login/shutdown."""
        if self.auth_failed.is_set():
            return
        log.critical("Authentication rejected: %s", exc)
        self.auth_failed.set()
        self._bus.publish_alert(
            Alert(level="error", message="Session expired, please log in again.",
                  error_code=exc.error_code, terminal=True)
        )

    def _schedule_refetch(self, reason: str) -> None:
        if self._refetch_task is not None and not self._refetch_task.done():
            log.debug("Refetch already in flight — coalescing %s", reason)
            self._refetch_pending = True
            return
        log.info("Backend signalled %s — refetching snapshot", reason)
        self._refetch_task = asyncio.create_task(self._refetch_loop(), name=f"refetch-{reason}")

    async def _refetch_loop(self) -> None:
        # Triggers that land while a fetch is in flight may postdate its response
        while True:
            self._refetch_pending = False
            await self.resync()
            if not self._refetch_pending:
                return
            log.info("Refresh requested during fetch — refetching snapshot again")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def change_agent_status(self, agent_id: str, status: AgentStatus) -> bool:
        assert self._ws is not None, "attach() a CallCenterWSClient first"
        return await self._ws.send("agentStatusChange", {"agentId": agent_id, "status": status.value})

    async def message_agent(self, agent_id: str, message: str, sender: str) -> bool:
        assert self._ws is not None, "attach() a CallCenterWSClient first"
        return await self._ws.send(
            "supervisorResponseToAgent",
            {"agentId": agent_id, "message": message, "from": sender},
        )

"""
Supervisor Agent — console supervision view.

Consumes the bus side channels and renders the live state for a supervisor:
  - notifications (raised hand, messages) -> log
  - alerts (snapshot / auth failures)     -> log; terminal alerts end the session
  - supervision KPIs every kpi_interval_s  -> log

Command API (perform_action, reply_to_agent, and SyncAgent.change_agent_status)
is for an embedding UI or script that holds the agent instances. The console
process started by main.py only observes and never calls it.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Callable

from agents.sync import SyncAgent
from backend.errors import BackendError
from backend.rest_client import CallCenterRestClient, SupervisorAction
from bus.event_bus import EventBus
from live.kpis import SupervisionKpis, supervision_kpis
from live.store import LiveStore
from models.events import Alert, Notification

log = logging.getLogger(__name__)

_ALERT_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class SupervisorAgent:
    def __init__(
        self,
        bus: EventBus,
        store: LiveStore,
        rest_client: CallCenterRestClient,
        sync: SyncAgent,
        kpi_interval_s: float = 30.0,
        on_terminal: Callable[[Alert], None] | None = None,
    ) -> None:
        self._bus = bus
        self._store = store
        self._rest = rest_client
        self._sync = sync
        self._kpi_interval_s = kpi_interval_s
        self._on_terminal = on_terminal
        self._last_kpis: SupervisionKpis | None = None

    async def run(self) -> None:
        log.info("Supervisor agent running (kpi_interval=%.0fs)", self._kpi_interval_s)
        await asyncio.gather(
            self._drain_notifications(),
            self._drain_alerts(),
            self._report_kpis(),
        )

    # ------------------------------------------------------------------
    # Side channels
    # ------------------------------------------------------------------

    async def _drain_notifications(self) -> None:
        while True:
            try:
                notification: Notification = await self._bus.notifications.get()
                self.handle_notification(notification)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Supervisor notification error: %s", exc)

    async def _drain_alerts(self) -> None:
        while True:
            try:
                alert: Alert = await self._bus.alerts.get()
                self.handle_alert(alert)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Supervisor alert error: %s", exc)

    async def _report_kpis(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._kpi_interval_s)
                self.log_kpis()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Supervisor KPI error: %s", exc)

    def handle_notification(self, notification: Notification) -> None:
        payload = notification.payload
        if notification.kind == "help":
            agent = self._store.get_snapshot().agent(notification.agent_id or "")
            who = agent.name if agent and agent.name else payload.get("agentName") or notification.agent_id
            log.warning("HELP requested by agent %s", who)
        elif notification.kind == "response":
            log.info("Agent %s replied: %s", payload.get("agentName") or notification.agent_id,
                     payload.get("message", ""))
        else:
            log.info("Message from %s: %s", payload.get("from", "?"), payload.get("message", ""))

    def handle_alert(self, alert: Alert) -> None:
        log.log(_ALERT_LEVELS.get(alert.level, logging.INFO), "ALERT [%s] %s", alert.level, alert.message)
        if alert.terminal and self._on_terminal is not None:
            self._on_terminal(alert)

    def log_kpis(self) -> SupervisionKpis:
        kpis = supervision_kpis(self._store.get_snapshot())
        if kpis != self._last_kpis:
            log.info(
                "KPIs ready=%d on_call=%d wrapup=%d pause=%d active_calls=%d",
                kpis.agents_ready, kpis.agents_on_call, kpis.agents_on_wrapup,
                kpis.agents_on_pause, kpis.active_calls,
            )
            self._last_kpis = kpis
        return kpis

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def perform_action(self, action: SupervisorAction, agent_id: str) -> str | None:
        """Run a supervisor action; failures become an error alert and return None."""
        try:
            message = await self._rest.supervisor_action(action, agent_id)
        except BackendError as exc:
            log.error("Supervisor action %s on agent=%s failed: %s", action, agent_id, exc.to_dict())
            self._bus.publish_alert(
                Alert(level="error", message=exc.message or f"Action {action} failed.",
                      error_code=exc.error_code)
            )
            return None
        self._bus.publish_alert(Alert(level="success", message=message or f"Action {action} done."))
        return message

    async def reply_to_agent(self, agent_id: str, message: str, sender: str) -> bool:
        sent = await self._sync.message_agent(agent_id, message, sender)
        if sent:
            self._bus.publish_alert(Alert(level="success", message=f"Message sent to agent {agent_id}"))
        return sent

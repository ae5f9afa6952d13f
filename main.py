"""
EVSCallPro Live — Main Entrypoint

Boots the asyncio event loop, wires the live supervision core together, and
runs until SIGINT/SIGTERM is received or the backend rejects the session.

Startup sequence:
  1. Load settings from environment
  2. Initialize token auth, REST client, LiveStore and bus
  3. Log in (if credentials configured) and load the baseline snapshot
  4. Start Sync (WebSocket), Ticker and Supervisor agents as asyncio tasks
  5. Wait for shutdown signal or terminal alert

Shutdown sequence:
  1. Close the WebSocket client (cancels reconnect wait / polling)
  2. Cancel running tasks
  3. Dispose the store, close the REST session
"""

from __future__ import annotations
import asyncio
import logging
import signal

from dotenv import load_dotenv

# Load .env before importing settings (settings reads env vars at import time)
load_dotenv()

from agents.supervisor import SupervisorAgent
from agents.sync import SyncAgent
from agents.ticker import TickerAgent
from backend.auth import TokenAuth
from backend.decoder import load_event_routes
from backend.errors import BackendError
from backend.rest_client import CallCenterRestClient
from backend.ws_client import CallCenterWSClient
from bus.event_bus import EventBus
from config.settings import settings
from live.store import LiveStore
from models.events import Alert
from utils.logger import setup_logging

log = logging.getLogger(__name__)


async def run() -> None:
    setup_logging(settings.log_level)
    log.info("EVSCallPro Live starting (api=%s ws=%s)", settings.api_base_url, settings.ws_url)

    routes = load_event_routes()

    # -----------------------------------------------------------------------
    # Infrastructure
    # -----------------------------------------------------------------------
    bus = EventBus()
    store = LiveStore()
    auth = TokenAuth(settings.auth_token or None)
    rest_client = CallCenterRestClient(base_url=settings.api_base_url, auth=auth)

    # -----------------------------------------------------------------------
    # Agents
    # -----------------------------------------------------------------------
    shutdown_event = asyncio.Event()

    sync = SyncAgent(
        bus=bus,
        store=store,
        rest_client=rest_client,
        login_id=settings.login_id or None,
        password=settings.password or None,
    )
    ws_client = CallCenterWSClient(
        ws_url=settings.ws_url,
        auth=auth,
        routes=routes,
        on_event=sync.handle_event,
        on_resync=sync.resync,
        on_auth_failure=sync.handle_auth_failure,
        base_backoff_s=settings.reconnect_base_s,
        max_backoff_s=settings.reconnect_max_s,
        jitter_s=settings.reconnect_jitter_s,
        failures_before_polling=settings.failures_before_polling,
        poll_interval_s=settings.poll_interval_s,
    )
    sync.attach(ws_client)

    ticker = TickerAgent(store=store, interval_s=settings.tick_interval_s)

    def _handle_terminal(alert: Alert) -> None:
        log.critical("Terminal alert — shutting down: %s", alert.message)
        shutdown_event.set()

    supervisor = SupervisorAgent(
        bus=bus,
        store=store,
        rest_client=rest_client,
        sync=sync,
        kpi_interval_s=settings.kpi_log_interval_s,
        on_terminal=_handle_terminal,
    )

    # -----------------------------------------------------------------------
    # Startup: login + baseline snapshot
    # -----------------------------------------------------------------------
    await rest_client.startup()
    try:
        await sync.startup()
    except BackendError as exc:
        log.critical("Startup failed: %s", exc)
        store.dispose()
        await rest_client.shutdown()
        raise SystemExit(1) from exc

    # -----------------------------------------------------------------------
    # Launch all agent tasks
    # -----------------------------------------------------------------------
    def _handle_signal(sig: signal.Signals) -> None:
        log.info("Received %s — initiating graceful shutdown", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    tasks = [
        asyncio.create_task(sync.run(), name="sync"),
        asyncio.create_task(ticker.run(), name="ticker"),
        asyncio.create_task(supervisor.run(), name="supervisor"),
    ]
    log.info("All agents launched. Live supervision is running.")

    await shutdown_event.wait()

    # -----------------------------------------------------------------------
    # Graceful shutdown
    # -----------------------------------------------------------------------
    log.info("Shutting down...")
    await sync.shutdown()
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    store.dispose()
    await rest_client.shutdown()
    log.info("EVSCallPro Live stopped cleanly.")


def main() -> None:
    try:
        import uvloop  # type: ignore
        uvloop.run(run())
    except ImportError:
        asyncio.run(run())


if __name__ == "__main__":
    main()

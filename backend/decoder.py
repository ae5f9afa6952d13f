"""
Decodes backend WebSocket frames into typed events.

Frames are JSON objects {"type": ..., "payload": {...}}. The backend relays
PBX events (agentStatusUpdate, newCall, callHangup) unchanged from its AMI
bridge, and CRUD/notification events from the REST layer.

decode_frame() returns:
  - a LiveEvent for the reducer
  - an EntityChange / SnapshotRefresh / Notification for the store
  - None for types this core does not track
and raises FrameDecodeError when the frame is not JSON or a known type is
missing a required field. The WebSocket client logs and drops those.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from backend.errors import FrameDecodeError
from models.events import (
    AgentStatusUpdate,
    BackendEvent,
    CallHangup,
    CampaignMetricsUpdate,
    EntityChange,
    NewCall,
    Notification,
    SnapshotRefresh,
)
from models.state import ActiveCall, AgentStatus

log = logging.getLogger(__name__)

DEFAULT_ROUTES_PATH = Path(__file__).resolve().parent.parent / "config" / "entity_events.yaml"

_CAMPAIGN_STATUSES = frozenset({"running", "paused", "stopped"})


@dataclass(frozen=True)
class EventRoutes:
    """Routing table for the non-live event types (see config/entity_events.yaml)."""
    entity_events: dict[str, tuple[str, str]] = field(default_factory=dict)  # type -> (collection, op)
    refetch_events: frozenset[str] = frozenset()
    notification_events: dict[str, str] = field(default_factory=dict)       # type -> kind

    @staticmethod
    def from_config(cfg: Mapping[str, Any]) -> "EventRoutes":
        entity_events: dict[str, tuple[str, str]] = {}
        for event_type, route in (cfg.get("entity_events") or {}).items():
            op = route.get("op", "upsert")
            if op not in ("upsert", "delete"):
                raise ValueError(f"entity event '{event_type}': unknown op '{op}'")
            entity_events[event_type] = (route["collection"], op)
        return EventRoutes(
            entity_events=entity_events,
            refetch_events=frozenset(cfg.get("refetch_events") or ()),
            notification_events=dict(cfg.get("notification_events") or {}),
        )


def load_event_routes(path: str | Path = DEFAULT_ROUTES_PATH) -> EventRoutes:
    with open(path, encoding="utf-8") as f:
        return EventRoutes.from_config(yaml.safe_load(f) or {})


# ---------------------------------------------------------------------------
# Frame → event
# ---------------------------------------------------------------------------

def decode_frame(raw: str | bytes, routes: EventRoutes) -> BackendEvent | None:
    try:
        msg = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FrameDecodeError(f"frame is not valid JSON: {exc}", details={"raw": _clip(raw)}) from exc
    if not isinstance(msg, dict):
        raise FrameDecodeError("frame is not a JSON object", details={"raw": _clip(raw)})
    return decode_message(msg, routes)


def decode_message(msg: Mapping[str, Any], routes: EventRoutes) -> BackendEvent | None:
    msg_type = msg.get("type")
    if not isinstance(msg_type, str):
        raise FrameDecodeError(f"frame type is not a string: {msg_type!r}")
    payload = msg.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise FrameDecodeError(f"'{msg_type}' payload is not an object")

    live_decoder = _LIVE_DECODERS.get(msg_type)
    if live_decoder is not None:
        return live_decoder(payload)

    if msg_type in routes.entity_events:
        collection, op = routes.entity_events[msg_type]
        _require(payload, msg_type, "id")
        return EntityChange(collection=collection, op=op, entity=payload)

    if msg_type in routes.refetch_events:
        return SnapshotRefresh(reason=msg_type)

    kind = routes.notification_events.get(msg_type)
    if kind is not None:
        return Notification(kind=kind, payload=payload)

    log.debug("Ignoring unhandled WS event type: %s", msg_type)
    return None


def _agent_status_update(payload: dict) -> AgentStatusUpdate:
    agent_id = _require(payload, "agentStatusUpdate", "agentId")
    raw_status = _require(payload, "agentStatusUpdate", "status")
    status = AgentStatus.parse(raw_status)
    if status is None:
        raise FrameDecodeError(f"agentStatusUpdate: unknown status '{raw_status}'")
    return AgentStatusUpdate(agent_id=str(agent_id), status=status)


def _new_call(payload: dict) -> NewCall:
    call_id = _require(payload, "newCall", "id")
    agent_id = payload.get("agentId")
    campaign_id = payload.get("campaignId")
    return NewCall(
        call=ActiveCall(
            id=str(call_id),
            from_number=str(payload.get("from") or ""),
            agent_id=str(agent_id) if agent_id is not None else None,
            campaign_id=str(campaign_id) if campaign_id is not None else None,
            duration=max(0, _int(payload.get("duration"), "newCall.duration") or 0),
        )
    )


def _call_hangup(payload: dict) -> CallHangup:
    return CallHangup(call_id=str(_require(payload, "callHangup", "callId")))


def _campaign_metrics_update(payload: dict) -> CampaignMetricsUpdate:
    campaign_id = _require(payload, "campaignMetricsUpdate", "campaignId")
    status = payload.get("status")
    if status is not None and status not in _CAMPAIGN_STATUSES:
        raise FrameDecodeError(f"campaignMetricsUpdate: unknown status '{status}'")
    return CampaignMetricsUpdate(
        campaign_id=str(campaign_id),
        status=status,
        offered=_int(payload.get("offered"), "offered"),
        answered=_int(payload.get("answered"), "answered"),
        agents_on_campaign=_int(payload.get("agentsOnCampaign"), "agentsOnCampaign"),
    )


_LIVE_DECODERS = {
    "agentStatusUpdate": _agent_status_update,
    "newCall": _new_call,
    "callHangup": _call_hangup,
    "campaignMetricsUpdate": _campaign_metrics_update,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require(payload: Mapping[str, Any], msg_type: str | None, key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise FrameDecodeError(f"'{msg_type}' payload missing '{key}'")
    return value


def _int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise FrameDecodeError(f"'{name}' is not an integer: {value!r}") from exc


def _clip(raw: str | bytes) -> str:
    text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
    return text[:80]

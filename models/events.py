"""
Typed events folded into the live store.

Every event is a frozen dataclass; LiveEvent is the tagged union the reducer
understands. Entity changes, refetch requests and notifications are produced by
the same decoder but handled by the store outside the reducer.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import time
from typing import Any, Literal, Mapping, Union

from models.state import ActiveCall, AgentStatus, CampaignStatus

EntityOp = Literal["upsert", "delete"]
NotificationKind = Literal["help", "message", "response"]


# ---------------------------------------------------------------------------
# Live events (reducer input)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class InitState:
    """
    Baseline roster from the REST snapshot. Users and campaigns are the raw
    backend dicts; only users with role "Agent" get an AgentState.
    """
    agents: tuple[Mapping[str, Any], ...]
    campaigns: tuple[Mapping[str, Any], ...]

    @staticmethod
    def make(agents: list[Mapping[str, Any]], campaigns: list[Mapping[str, Any]]) -> "InitState":
        return InitState(agents=tuple(agents), campaigns=tuple(campaigns))


@dataclass(frozen=True, slots=True)
class Tick:
    pass


@dataclass(frozen=True, slots=True)
class AgentStatusUpdate:
    agent_id: str
    status: AgentStatus


@dataclass(frozen=True, slots=True)
class NewCall:
    call: ActiveCall


@dataclass(frozen=True, slots=True)
class CallHangup:
    call_id: str


@dataclass(frozen=True, slots=True)
class CampaignMetricsUpdate:
    """Partial update: None leaves the field unchanged."""
    campaign_id: str
    status: CampaignStatus | None = None
    offered: int | None = None
    answered: int | None = None
    agents_on_campaign: int | None = None


LiveEvent = Union[InitState, Tick, AgentStatusUpdate, NewCall, CallHangup, CampaignMetricsUpdate]
LIVE_EVENT_TYPES = (InitState, Tick, AgentStatusUpdate, NewCall, CallHangup, CampaignMetricsUpdate)


# ---------------------------------------------------------------------------
# Store-side events (not reduced)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class EntityChange:
    """Upsert or delete-by-id on one of the non-live collections (users, campaigns, ...)."""
    collection: str
    op: EntityOp
    entity: Mapping[str, Any]

    @property
    def entity_id(self) -> Any:
        return self.entity.get("id")


@dataclass(frozen=True, slots=True)
class SnapshotRefresh:
    """Backend signalled a bulk change; the whole snapshot must be re-fetched."""
    reason: str


@dataclass(frozen=True, slots=True)
class Notification:
    """Supervisor-facing notice (raised hand, message). Appended, never reduced."""
    kind: NotificationKind
    payload: Mapping[str, Any]
    received_at_ns: int = field(default_factory=time.monotonic_ns)
    id: int = 0                       # assigned by LiveStore.add_notification

    @property
    def agent_id(self) -> str | None:
        agent_id = self.payload.get("agentId")
        return str(agent_id) if agent_id is not None else None


BackendEvent = Union[LiveEvent, EntityChange, SnapshotRefresh, Notification]


# ---------------------------------------------------------------------------
# Bus messages
# ---------------------------------------------------------------------------

AlertLevel = Literal["success", "info", "warning", "error"]


@dataclass(frozen=True, slots=True)
class Alert:
    """User-visible alert (toast). terminal=True means the session cannot continue."""
    level: AlertLevel
    message: str
    error_code: str | None = None
    terminal: bool = False
    raised_at_ns: int = field(default_factory=time.monotonic_ns)

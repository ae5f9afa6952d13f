"""
Live supervision entities.

All entities are frozen: the reducer builds a new LiveState on every event and
subscribers receive it read-only. Only LiveStore swaps the current instance.

Durations are whole seconds, advanced by Tick events (one per second).
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping

CampaignStatus = Literal["running", "paused", "stopped"]


class AgentStatus(str, Enum):
    """Agent presence as broadcast by the backend (wire values are French labels)."""

    AVAILABLE = "En Attente"
    ON_CALL = "En Appel"
    WRAP_UP = "En Post-Appel"
    RINGING = "Ringing"
    ON_PAUSE = "En Pause"
    TRAINING = "Formation"
    ON_HOLD = "Mise en attente"
    DISCONNECTED = "Déconnecté"

    @classmethod
    def parse(cls, value: str) -> "AgentStatus | None":
        """Wire label -> AgentStatus. Also accepts member names ("ON_CALL")."""
        try:
            return cls(value)
        except ValueError:
            member = cls.__members__.get(str(value).upper())
            return member


@dataclass(frozen=True, slots=True)
class AgentState:
    agent_id: str
    name: str = ""
    status: AgentStatus = AgentStatus.DISCONNECTED
    status_duration: int = 0          # seconds in current status
    # Daily counters
    calls_handled: int = 0
    average_handle_time: float = 0.0  # talk + wrap-up, seconds
    average_talk_time: float = 0.0
    pause_count: int = 0
    training_count: int = 0
    total_pause_seconds: int = 0
    total_training_seconds: int = 0
    total_connected_seconds: int = 0

    @staticmethod
    def from_user(user: Mapping[str, Any]) -> "AgentState":
        first = user.get("firstName") or ""
        last = user.get("lastName") or ""
        return AgentState(agent_id=str(user["id"]), name=f"{first} {last}".strip())


@dataclass(frozen=True, slots=True)
class ActiveCall:
    id: str
    from_number: str                  # wire field "from"
    agent_id: str | None = None       # None until answered
    campaign_id: str | None = None    # None for inbound non-campaign calls
    duration: int = 0

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_number,
            "agentId": self.agent_id,
            "campaignId": self.campaign_id,
            "duration": self.duration,
        }


@dataclass(frozen=True, slots=True)
class CampaignState:
    campaign_id: str
    name: str
    status: CampaignStatus = "stopped"
    offered: int = 0
    answered: int = 0
    agents_on_campaign: int = 0

    @property
    def hit_rate(self) -> float:
        """Answered / offered as a percentage. Derived, never stored."""
        if self.offered <= 0:
            return 0.0
        return self.answered * 100.0 / self.offered

    @staticmethod
    def from_campaign(campaign: Mapping[str, Any]) -> "CampaignState":
        return CampaignState(campaign_id=str(campaign["id"]), name=str(campaign.get("name", "")))


@dataclass(frozen=True, slots=True)
class LiveState:
    agent_states: tuple[AgentState, ...] = ()
    active_calls: tuple[ActiveCall, ...] = ()
    campaign_states: tuple[CampaignState, ...] = ()

    def agent(self, agent_id: str) -> AgentState | None:
        for agent in self.agent_states:
            if agent.agent_id == agent_id:
                return agent
        return None

    def campaign(self, campaign_id: str) -> CampaignState | None:
        for campaign in self.campaign_states:
            if campaign.campaign_id == campaign_id:
                return campaign
        return None

    def calls_for(self, call_id: str) -> list[ActiveCall]:
        return [c for c in self.active_calls if c.id == call_id]

"""
Supervision dashboard selectors.

Read-only views over a LiveState snapshot; nothing here is stored.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass

from models.state import AgentStatus, LiveState


@dataclass(frozen=True, slots=True)
class SupervisionKpis:
    agents_ready: int
    agents_on_call: int
    agents_on_wrapup: int
    agents_on_pause: int
    active_calls: int


def supervision_kpis(state: LiveState) -> SupervisionKpis:
    by_status = Counter(a.status for a in state.agent_states)
    return SupervisionKpis(
        agents_ready=by_status[AgentStatus.AVAILABLE],
        agents_on_call=by_status[AgentStatus.ON_CALL],
        agents_on_wrapup=by_status[AgentStatus.WRAP_UP],
        agents_on_pause=by_status[AgentStatus.ON_PAUSE],
        active_calls=len(state.active_calls),
    )


def status_breakdown(state: LiveState) -> dict[AgentStatus, int]:
    """Agent count for every status, zeros included."""
    by_status = Counter(a.status for a in state.agent_states)
    return {status: by_status[status] for status in AgentStatus}

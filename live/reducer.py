"""
Live-state reducer.

reduce(state, event) -> new LiveState. Pure and synchronous: no I/O, no
logging, never raises for unknown agent/call/campaign ids. An event that
arrives after its subject is gone (e.g. a second hangup) leaves the state
untouched.

Hot path (Tick, once per second): O(agents + calls) rebuild of two tuples.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable

from models.events import (
    AgentStatusUpdate,
    CallHangup,
    CampaignMetricsUpdate,
    InitState,
    LiveEvent,
    NewCall,
    Tick,
)
from models.state import ActiveCall, AgentState, AgentStatus, CampaignState, LiveState

AGENT_ROLE = "Agent"


def reduce(state: LiveState, event: LiveEvent) -> LiveState:
    handler = _HANDLERS.get(type(event))
    if handler is None:
        return state
    return handler(state, event)


def replay(events, state: LiveState | None = None) -> LiveState:
    """Fold a sequence of events from `state` (empty by default)."""
    current = state if state is not None else LiveState()
    for event in events:
        current = reduce(current, event)
    return current


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _init_state(state: LiveState, event: InitState) -> LiveState:
    agents = _unique(
        AgentState.from_user(user)
        for user in event.agents
        if user.get("role") == AGENT_ROLE and user.get("id") is not None
    )
    campaigns = _unique(
        CampaignState.from_campaign(c) for c in event.campaigns if c.get("id") is not None
    )
    return replace(state, agent_states=agents, campaign_states=campaigns)


def _unique(entities) -> tuple:
    """First entry per id wins; the roster may repeat a user."""
    seen: set[str] = set()
    result = []
    for entity in entities:
        key = entity.agent_id if isinstance(entity, AgentState) else entity.campaign_id
        if key in seen:
            continue
        seen.add(key)
        result.append(entity)
    return tuple(result)


def _tick(state: LiveState, event: Tick) -> LiveState:
    if not state.agent_states and not state.active_calls:
        return state
    agents = tuple(_tick_agent(a) for a in state.agent_states)
    calls = tuple(replace(c, duration=c.duration + 1) for c in state.active_calls)
    return replace(state, agent_states=agents, active_calls=calls)


def _tick_agent(agent: AgentState) -> AgentState:
    if agent.status is AgentStatus.DISCONNECTED:
        return agent
    return replace(
        agent,
        status_duration=agent.status_duration + 1,
        total_connected_seconds=agent.total_connected_seconds + 1,
        total_pause_seconds=agent.total_pause_seconds + (agent.status is AgentStatus.ON_PAUSE),
        total_training_seconds=agent.total_training_seconds + (agent.status is AgentStatus.TRAINING),
    )


def _agent_status_update(state: LiveState, event: AgentStatusUpdate) -> LiveState:
    index = _agent_index(state, event.agent_id)
    if index is None:
        return state
    agent = state.agent_states[index]
    changed = agent.status is not event.status

    pause_count = agent.pause_count + (changed and event.status is AgentStatus.ON_PAUSE)
    training_count = agent.training_count + (changed and event.status is AgentStatus.TRAINING)
    average_handle_time = agent.average_handle_time
    if changed and agent.status is AgentStatus.WRAP_UP and agent.calls_handled:
        # Wrap-up belongs to the last handled call
        average_handle_time += agent.status_duration / agent.calls_handled

    updated = replace(
        agent,
        status=event.status,
        status_duration=0,
        pause_count=pause_count,
        training_count=training_count,
        average_handle_time=average_handle_time,
    )
    return replace(state, agent_states=_replace_at(state.agent_states, index, updated))


def _new_call(state: LiveState, event: NewCall) -> LiveState:
    return replace(state, active_calls=state.active_calls + (event.call,))


def _call_hangup(state: LiveState, event: CallHangup) -> LiveState:
    ended = [c for c in state.active_calls if c.id == event.call_id]
    if not ended:
        return state
    remaining = tuple(c for c in state.active_calls if c.id != event.call_id)
    agents = state.agent_states
    for call in ended:
        agents = _fold_call_into_agent(agents, call)
    return replace(state, active_calls=remaining, agent_states=agents)


def _fold_call_into_agent(
    agents: tuple[AgentState, ...], call: ActiveCall
) -> tuple[AgentState, ...]:
    if call.agent_id is None:
        return agents
    for i, agent in enumerate(agents):
        if agent.agent_id != call.agent_id:
            continue
        n = agent.calls_handled + 1
        updated = replace(
            agent,
            calls_handled=n,
            average_talk_time=_running_mean(agent.average_talk_time, call.duration, n),
            average_handle_time=_running_mean(agent.average_handle_time, call.duration, n),
        )
        return _replace_at(agents, i, updated)
    return agents


def _campaign_metrics_update(state: LiveState, event: CampaignMetricsUpdate) -> LiveState:
    for i, campaign in enumerate(state.campaign_states):
        if campaign.campaign_id != event.campaign_id:
            continue
        updated = replace(
            campaign,
            status=event.status if event.status is not None else campaign.status,
            offered=max(0, event.offered) if event.offered is not None else campaign.offered,
            answered=max(0, event.answered) if event.answered is not None else campaign.answered,
            agents_on_campaign=(
                max(0, event.agents_on_campaign)
                if event.agents_on_campaign is not None
                else campaign.agents_on_campaign
            ),
        )
        return replace(state, campaign_states=_replace_at(state.campaign_states, i, updated))
    return state


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _agent_index(state: LiveState, agent_id: str) -> int | None:
    for i, agent in enumerate(state.agent_states):
        if agent.agent_id == agent_id:
            return i
    return None


def _replace_at(items: tuple, index: int, item) -> tuple:
    return items[:index] + (item,) + items[index + 1:]


def _running_mean(mean: float, value: float, n: int) -> float:
    return mean + (value - mean) / n


_HANDLERS: dict[type, Callable[[LiveState, LiveEvent], LiveState]] = {
    InitState: _init_state,
    Tick: _tick,
    AgentStatusUpdate: _agent_status_update,
    NewCall: _new_call,
    CallHangup: _call_hangup,
    CampaignMetricsUpdate: _campaign_metrics_update,
}

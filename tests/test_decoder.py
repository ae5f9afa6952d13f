"""Unit tests for WebSocket frame decoding and the entity-event routing table."""

import json

import pytest

from backend.decoder import EventRoutes, decode_frame
from backend.errors import FrameDecodeError
from models.events import (
    AgentStatusUpdate,
    CallHangup,
    CampaignMetricsUpdate,
    EntityChange,
    NewCall,
    Notification,
    SnapshotRefresh,
)
from models.state import AgentStatus


def _frame(msg_type, payload=None) -> str:
    return json.dumps({"type": msg_type, "payload": payload})


class TestLiveEvents:

    def test_agent_status_update(self, routes):
        event = decode_frame(_frame("agentStatusUpdate", {"agentId": "a1", "status": "En Pause"}), routes)
        assert event == AgentStatusUpdate(agent_id="a1", status=AgentStatus.ON_PAUSE)

    def test_agent_status_update_accepts_member_names(self, routes):
        event = decode_frame(_frame("agentStatusUpdate", {"agentId": 7, "status": "on_call"}), routes)
        assert event == AgentStatusUpdate(agent_id="7", status=AgentStatus.ON_CALL)

    def test_new_call_optional_fields(self, routes):
        event = decode_frame(_frame("newCall", {"id": "call1", "from": "+15551234567"}), routes)
        assert isinstance(event, NewCall)
        assert event.call.from_number == "+15551234567"
        assert event.call.agent_id is None
        assert event.call.campaign_id is None
        assert event.call.duration == 0

    def test_new_call_with_assignment(self, routes):
        event = decode_frame(
            _frame("newCall", {"id": "call1", "from": "100", "agentId": "a1", "campaignId": "c1"}),
            routes,
        )
        assert event.call.agent_id == "a1"
        assert event.call.campaign_id == "c1"

    def test_new_call_negative_duration_clamped(self, routes):
        event = decode_frame(_frame("newCall", {"id": "call1", "from": "100", "duration": -5}), routes)
        assert event.call.duration == 0

    def test_call_hangup(self, routes):
        assert decode_frame(_frame("callHangup", {"callId": "call1"}), routes) == CallHangup("call1")

    def test_campaign_metrics_update(self, routes):
        event = decode_frame(
            _frame("campaignMetricsUpdate", {"campaignId": "c1", "status": "paused", "offered": "12"}),
            routes,
        )
        assert event == CampaignMetricsUpdate(campaign_id="c1", status="paused", offered=12)

    def test_bytes_frames(self, routes):
        raw = _frame("callHangup", {"callId": "x"}).encode()
        assert decode_frame(raw, routes) == CallHangup("x")


class TestStoreEvents:

    def test_entity_upsert_and_delete(self, routes):
        upsert = decode_frame(_frame("campaignUpdate", {"id": "c9", "name": "Nouvelle"}), routes)
        delete = decode_frame(_frame("deleteUser", {"id": "u1"}), routes)
        assert upsert == EntityChange("campaigns", "upsert", {"id": "c9", "name": "Nouvelle"})
        assert delete.collection == "users"
        assert delete.op == "delete"
        assert delete.entity_id == "u1"

    @pytest.mark.parametrize("msg_type", ["usersBulkUpdate", "qualificationsUpdated", "planningUpdated"])
    def test_refetch_triggers(self, routes, msg_type):
        assert decode_frame(_frame(msg_type), routes) == SnapshotRefresh(reason=msg_type)

    def test_raised_hand_both_spellings(self, routes):
        for msg_type in ("agentRaisedHand", "agentRaiseHand"):
            event = decode_frame(_frame(msg_type, {"agentId": "a1", "agentName": "Alice"}), routes)
            assert isinstance(event, Notification)
            assert event.kind == "help"
            assert event.agent_id == "a1"

    def test_unhandled_type_returns_none(self, routes):
        assert decode_frame(_frame("somethingElse", {"x": 1}), routes) is None


class TestMalformed:

    @pytest.mark.parametrize(
        "raw",
        ["not json", "[1, 2]", "", b"\xff\xfe", '{"type": ["x"], "payload": {}}', '{"payload": {}}'],
    )
    def test_not_a_json_object(self, routes, raw):
        with pytest.raises(FrameDecodeError):
            decode_frame(raw, routes)

    @pytest.mark.parametrize(
        "msg_type,payload",
        [
            ("agentStatusUpdate", {"status": "En Pause"}),
            ("agentStatusUpdate", {"agentId": "a1", "status": "Sleeping"}),
            ("newCall", {"from": "100"}),
            ("callHangup", {}),
            ("campaignMetricsUpdate", {"campaignId": "c1", "offered": "many"}),
            ("campaignMetricsUpdate", {"campaignId": "c1", "status": "archived"}),
            ("campaignMetricsUpdate", {"campaignId": "c1", "offered": float("inf")}),
            ("newCall", {"id": "call1", "from": "100", "duration": 1e400}),
            ("updateUser", {"firstName": "no id"}),
        ],
    )
    def test_missing_or_bad_fields(self, routes, msg_type, payload):
        with pytest.raises(FrameDecodeError):
            decode_frame(_frame(msg_type, payload), routes)

    def test_payload_must_be_object(self, routes):
        with pytest.raises(FrameDecodeError):
            decode_frame(json.dumps({"type": "callHangup", "payload": "call1"}), routes)


class TestRoutes:

    def test_config_file_routes(self, routes):
        assert routes.entity_events["newUser"] == ("users", "upsert")
        assert routes.entity_events["deleteIvrFlow"] == ("ivrFlows", "delete")
        assert "planningUpdated" in routes.refetch_events
        assert routes.notification_events["supervisorMessage"] == "message"

    def test_rejects_unknown_op(self):
        with pytest.raises(ValueError):
            EventRoutes.from_config({"entity_events": {"x": {"collection": "users", "op": "merge"}}})

    def test_empty_config(self):
        routes = EventRoutes.from_config({})
        assert decode_frame(_frame("newUser", {"id": "u1"}), routes) is None

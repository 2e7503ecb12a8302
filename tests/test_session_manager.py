"""
Tests for state/manager.py kiosk session state machine.
"""

import asyncio

import pytest

from kiosk.view import KioskView
from state.manager import SessionManager
from state.schema import Control, SessionStep

CONTROLS = [
    Control(1, "video1", "Ocean", duration_ms=40),
    Control(2, "video2", "Forest", duration_ms=60),
    Control(3, "video3", "City", duration_ms=80),
]


class FakeChannel:

    def __init__(self):
        self.sent = []

    def send_json(self, payload):
        self.sent.append(payload)
        return True

    @property
    def play_commands(self):
        return [p["args"][1] for p in self.sent if p.get("address") == "/@3/20"]

    @property
    def logs(self):
        return [p for p in self.sent if p.get("type") == "data_log"]


class FakeView(KioskView):

    def __init__(self):
        self.steps = []
        self.enabled = {}
        self.statuses = []
        self.errors = []

    def show_step(self, step):
        self.steps.append(step)

    def set_control_enabled(self, video_id, enabled):
        self.enabled[video_id] = enabled

    def show_status(self, text):
        self.statuses.append(text)

    def show_error(self, text):
        self.errors.append(text)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def view():
    return FakeView()


@pytest.fixture
def manager(channel, view):
    m = SessionManager(CONTROLS, channel, view,
                       leftover_timeout_ms=1000, cooldown_ms=1000, holding_delay_ms=10)
    yield m
    m.timer.cancel()


def ack(video_id):
    return {"type": "sent", "address": "/@3/20", "args": ["Autoplay", video_id]}


def end_marker(video_id, flag=1):
    return {"type": "osc", "address": "/@3/1000", "args": [3, "Autoplay", video_id, flag],
            "info": {"from": "10.0.0.5", "port": 57120}}


class TestLeadCapture:

    @pytest.mark.asyncio
    async def test_starts_idle(self, manager):
        assert manager.step is SessionStep.IDLE

    @pytest.mark.asyncio
    async def test_begin_capture(self, manager, view):
        manager.begin_capture()
        assert manager.step is SessionStep.CAPTURING
        assert view.steps == [SessionStep.CAPTURING]

    @pytest.mark.asyncio
    async def test_name_and_email_required(self, manager, view):
        assert manager.submit_lead(name="Ada", email="  ") is False
        assert manager.step is SessionStep.IDLE
        assert view.statuses == ["Name and Email are required."]

    @pytest.mark.asyncio
    async def test_submit_opens_panel(self, manager, view):
        assert manager.submit_lead("Ada", "ada@example.com", nationality="UK", phone="123")

        assert manager.step is SessionStep.CONTROLLING
        assert manager.state.lead.as_dict() == {
            "name": "Ada", "nationality": "UK", "email": "ada@example.com", "phone": "123",
        }
        assert manager.state.button_status == {"video1": False, "video2": False, "video3": False}
        assert all(view.enabled[c.video_id] for c in CONTROLS)
        assert manager.timer.label == "inactivity"

    @pytest.mark.asyncio
    async def test_skip_bypasses_validation(self, manager):
        assert manager.submit_lead(skip=True)
        assert manager.step is SessionStep.CONTROLLING
        assert manager.state.lead.name == ""

    @pytest.mark.asyncio
    async def test_holding_control_is_not_tracked(self, channel, view):
        m = SessionManager([Control(0, "holding")] + CONTROLS, channel, view)
        m.submit_lead(skip=True)
        assert "holding" not in m.state.button_status
        m.timer.cancel()


class TestDeadline:

    @pytest.mark.asyncio
    async def test_nothing_pressed_uses_leftover(self, manager):
        manager.submit_lead(skip=True)
        assert manager.compute_deadline_ms() == 1000

    @pytest.mark.asyncio
    async def test_pressed_adds_current_video_duration(self, manager):
        manager.submit_lead(skip=True)
        manager.activate(2)
        assert manager.compute_deadline_ms() == 60 + 1000
        manager.activate(1)
        assert manager.compute_deadline_ms() == 40 + 1000

    @pytest.mark.asyncio
    async def test_deadline_expiry_ends_session(self, channel, view):
        m = SessionManager(CONTROLS, channel, view,
                           leftover_timeout_ms=20, cooldown_ms=1000, holding_delay_ms=10)
        m.submit_lead("Ada", "ada@example.com")
        await asyncio.sleep(0.08)

        assert m.step is SessionStep.COOLDOWN
        assert len(channel.logs) == 1
        m.timer.cancel()


class TestControls:

    @pytest.mark.asyncio
    async def test_activate_marks_disables_and_sends(self, manager, channel, view):
        manager.submit_lead(skip=True)
        assert manager.activate(2)

        assert manager.state.button_status["video2"] is True
        assert view.enabled[2] is False
        assert channel.sent[-1] == {"address": "/@3/20", "args": ["Autoplay", 2]}
        assert manager.state.current_video_id == 2

    @pytest.mark.asyncio
    async def test_reactivating_disabled_control_is_noop(self, manager, channel):
        manager.submit_lead(skip=True)
        manager.activate(2)
        assert manager.activate(2) is False
        assert channel.play_commands == [2]

    @pytest.mark.asyncio
    async def test_activate_outside_session_ignored(self, manager, channel):
        assert manager.activate(1) is False
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_unknown_control_ignored(self, manager, channel):
        manager.submit_lead(skip=True)
        assert manager.activate(9) is False
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_send_error_reenables_last_control(self, manager, view):
        manager.submit_lead(skip=True)
        manager.activate(3)
        manager.on_server_message({"type": "error", "message": "EHOSTUNREACH"})

        assert view.enabled[3] is True
        assert view.errors == ["Error: EHOSTUNREACH"]
        assert manager.step is SessionStep.CONTROLLING
        assert manager.activate(3)

    @pytest.mark.asyncio
    async def test_target_set_is_remembered(self, manager):
        manager.on_server_message({"type": "target_set", "host": "10.0.0.9", "port": 8000})
        assert manager.known_target == {"host": "10.0.0.9", "port": 8000}


class TestVideoFinished:

    @pytest.mark.asyncio
    async def test_end_marker_schedules_holding(self, manager, channel, view):
        manager.submit_lead(skip=True)
        manager.activate(1)
        manager.on_server_message(end_marker(1))

        assert view.enabled[1] is True
        assert channel.play_commands == [1]
        assert manager.timer.label == "holding"

        await asyncio.sleep(0.05)
        assert channel.play_commands == [1, 0]
        assert manager.state.current_video_id == 0
        assert manager.timer.label == "inactivity"

    @pytest.mark.asyncio
    async def test_end_marker_ignored_while_holding(self, manager, channel):
        manager.submit_lead(skip=True)
        manager.on_server_message(end_marker(1))
        await asyncio.sleep(0.03)
        assert channel.play_commands == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [end_marker(5), end_marker(2, flag=0)])
    async def test_unrecognised_end_marker(self, manager, channel, message):
        manager.submit_lead(skip=True)
        manager.activate(2)
        manager.on_server_message(message)
        await asyncio.sleep(0.03)
        assert channel.play_commands == [2]

    @pytest.mark.asyncio
    async def test_holding_ack_reenables_all(self, manager, view):
        manager.submit_lead(skip=True)
        manager.activate(1)
        manager.activate(2)
        manager.on_server_message(ack(0))
        assert all(view.enabled[c.video_id] for c in CONTROLS)
        assert manager.state.current_video_id == 0

    @pytest.mark.asyncio
    async def test_play_ack_updates_now_playing(self, manager, view):
        manager.submit_lead(skip=True)
        manager.activate(2)
        manager.on_server_message(ack(2))
        assert manager.state.current_video_id == 2
        assert view.statuses[-1] == "You're viewing the Forest experience"
        assert manager.step is SessionStep.CONTROLLING


class TestSessionEnd:

    @pytest.mark.asyncio
    async def test_all_controls_used_goes_straight_to_cooldown(self, manager, channel):
        manager.submit_lead("Ada", "ada@example.com")
        for control in CONTROLS:
            manager.activate(control.video_id)
            manager.on_server_message(ack(control.video_id))

        assert manager.step is SessionStep.COOLDOWN
        record = channel.logs[0]
        assert record["name"] == "Ada"
        assert record["video1"] is True and record["video2"] is True and record["video3"] is True
        assert manager.state.button_status == {}
        assert manager.state.lead.name == ""
        assert manager.timer.label == "cooldown"

    @pytest.mark.asyncio
    async def test_cooldown_returns_to_idle(self, channel, view):
        m = SessionManager(CONTROLS, channel, view,
                           leftover_timeout_ms=1000, cooldown_ms=20, holding_delay_ms=10)
        m.submit_lead(skip=True)
        m.end_session()
        assert m.step is SessionStep.COOLDOWN

        await asyncio.sleep(0.06)
        assert m.step is SessionStep.IDLE
        assert view.steps[-2:] == [SessionStep.COOLDOWN, SessionStep.IDLE]

        assert m.submit_lead(skip=True)
        assert m.state.button_status == {"video1": False, "video2": False, "video3": False}
        m.timer.cancel()

    @pytest.mark.asyncio
    async def test_log_record_lists_unpressed_controls(self, manager, channel):
        manager.submit_lead("Ada", "ada@example.com")
        manager.activate(3)
        manager.end_session()

        record = channel.logs[0]
        assert record["type"] == "data_log"
        assert (record["video1"], record["video2"], record["video3"]) == (False, False, True)

    @pytest.mark.asyncio
    async def test_end_session_only_from_controlling(self, manager, channel):
        manager.end_session()
        assert manager.step is SessionStep.IDLE
        assert channel.logs == []

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from logsink.record import build_record
from osc import mapping
from state.detect import match_end_of_video, match_now_playing
from state.schema import Control, LeadData, SessionState, SessionStep
from state.timers import SingleTimer

log = logging.getLogger("state.manager")

HOLDING_VIDEO_ID = mapping.HOLDING_VIDEO_ID

DEFAULT_LEFTOVER_TIMEOUT_MS = 10_000
DEFAULT_COOLDOWN_MS         = 5_000
DEFAULT_HOLDING_DELAY_MS    = 500


class SessionManager:
    """
    Drives one kiosk through its visitor sessions.

        IDLE -> CAPTURING -> CONTROLLING -> COOLDOWN -> IDLE -> ...

    Commands leave through `channel.send_json(dict)`; everything the relay
    sends back comes in through `on_server_message(dict)`. The screen is an
    external collaborator (`view`, see kiosk.view.KioskView).

    Inactivity deadline: `leftover_timeout_ms` while nothing has been
    pressed, otherwise the duration of the last chosen clip plus
    `leftover_timeout_ms`. It is restarted on every state-changing event.

    A clip counts as finished only when the player reports it on the end
    marker address; the delayed holding command then re-arms the panel.
    Acknowledged play commands update what is shown as playing and, once
    every control has been used, end the session early.

    One timer handle covers the deadline, the delayed holding send and the
    cooldown, so there is never more than one pending callback.
    """

    def __init__(
        self,
        controls: Iterable[Control],
        channel,
        view,
        leftover_timeout_ms: int = DEFAULT_LEFTOVER_TIMEOUT_MS,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        holding_delay_ms: int = DEFAULT_HOLDING_DELAY_MS,
    ):
        self.controls = {c.video_id: c for c in controls if c.video_id != HOLDING_VIDEO_ID}
        self.channel  = channel
        self.view     = view

        self.leftover_timeout_ms = leftover_timeout_ms
        self.cooldown_ms         = cooldown_ms
        self.holding_delay_ms    = holding_delay_ms

        self.state = SessionState()
        self.timer = SingleTimer()
        self.known_target: Optional[dict] = None

    # ── Derived values ───────────────────────────────────────────────────────

    @property
    def step(self) -> SessionStep:
        return self.state.step

    @property
    def any_pressed(self) -> bool:
        return any(v is True for v in self.state.button_status.values())

    def compute_deadline_ms(self) -> int:
        if not self.any_pressed:
            return self.leftover_timeout_ms
        return self.state.current_video_duration_ms + self.leftover_timeout_ms

    def is_enabled(self, video_id: int) -> bool:
        return video_id in self.controls and video_id not in self.state.disabled_ids

    # ── Visitor actions ──────────────────────────────────────────────────────

    def begin_capture(self) -> None:
        """The visitor started filling in the lead form."""
        if self.state.step is SessionStep.IDLE:
            self._enter(SessionStep.CAPTURING)

    def submit_lead(self, name: str = "", email: str = "", nationality: str = "",
                    phone: str = "", skip: bool = False) -> bool:
        """
        Accept the lead form and open the video panel.

        Name and email are required unless `skip` is set. Returns False
        (and stays put) when the form is rejected or no session can start.
        """
        if self.state.step not in (SessionStep.IDLE, SessionStep.CAPTURING):
            log.warning("lead submitted while %s, ignoring", self.state.step.value)
            return False

        name, email = (name or "").strip(), (email or "").strip()
        if not skip and (not name or not email):
            self.view.show_status("Name and Email are required.")
            return False

        if skip:
            self.state.lead = LeadData()
        else:
            self.state.lead = LeadData(name, (nationality or "").strip(), email, (phone or "").strip())
        self.state.button_status = {c.key: False for c in self.controls.values()}
        self.state.disabled_ids = set()
        self.state.current_video_duration_ms = 0

        self._enter(SessionStep.CONTROLLING)
        self._enable_all()
        self._restart_deadline()
        return True

    def activate(self, video_id: int) -> bool:
        """A video button was pressed. Returns True if a play command went out."""
        if self.state.step is not SessionStep.CONTROLLING:
            return False
        control = self.controls.get(video_id)
        if control is None:
            log.warning("no control with video id %s", video_id)
            return False
        if video_id in self.state.disabled_ids:
            return False

        self.state.button_status[control.key] = True
        self.state.current_video_duration_ms = control.duration_ms
        self.state.disabled_ids.add(video_id)
        self.view.set_control_enabled(video_id, False)

        self.state.current_video_id = video_id
        self.channel.send_json(mapping.play_command(video_id))
        log.info("Playing %s (%s)", control.key, control.label or video_id)
        self._restart_deadline()
        return True

    def send_holding(self) -> None:
        self.state.current_video_id = HOLDING_VIDEO_ID
        self.channel.send_json(mapping.play_command(HOLDING_VIDEO_ID))
        if self.state.step is SessionStep.CONTROLLING:
            self._restart_deadline()

    # ── Relay feedback ───────────────────────────────────────────────────────

    def on_server_message(self, data: dict) -> None:
        kind = data.get("type")
        if kind == "sent":
            self._on_sent(data.get("address"), data.get("args"))
        elif kind == "error":
            self._on_send_error(data.get("message", ""))
        elif kind == "osc":
            self._on_osc(data.get("address"), data.get("args"))
        elif kind == "target_set":
            self.known_target = {"host": data.get("host"), "port": data.get("port")}
        # password_result and anything else belong to the operator screens

    def _on_sent(self, address, args) -> None:
        video_id = match_now_playing(address, args)
        if video_id is None:
            return
        self.state.current_video_id = video_id
        if video_id == HOLDING_VIDEO_ID:
            self._enable_all()
            return

        control = self.controls.get(video_id)
        self.view.show_status(f"You're viewing the {control.label if control else video_id} experience")
        if self.state.step is SessionStep.CONTROLLING:
            self._end_if_exhausted()

    def _on_send_error(self, message: str) -> None:
        self.view.show_error(f"Error: {message}" if message else "Error: Network failed to send last command.")
        video_id = self.state.current_video_id
        if video_id != HOLDING_VIDEO_ID and video_id in self.state.disabled_ids:
            self.state.disabled_ids.discard(video_id)
            self.view.set_control_enabled(video_id, True)

    def _on_osc(self, address, args) -> None:
        if self.state.step is not SessionStep.CONTROLLING:
            return
        result = match_end_of_video(address, args, self.controls.keys())
        if result.matched:
            log.info("player reports video %s finished", result.index)
            self.video_finished()

    def video_finished(self) -> None:
        """
        Return the player to the holding loop and re-arm the panel.

        The holding command goes out after `holding_delay_ms`; sent at once
        the player tends to swallow it while still closing the clip.
        """
        if self.state.current_video_id == HOLDING_VIDEO_ID:
            return
        self._enable_all()
        self.timer.start(self.holding_delay_ms, self.send_holding, "holding")

    # ── Session end ──────────────────────────────────────────────────────────

    def _end_if_exhausted(self) -> None:
        if self.controls and all(vid in self.state.disabled_ids for vid in self.controls):
            log.info("every video has been played, ending session")
            self.end_session()

    def end_session(self) -> None:
        """Log the session, clear visitor data and show the thank-you screen."""
        if self.state.step is not SessionStep.CONTROLLING:
            return
        self.timer.cancel()

        record = build_record(self.state.lead.as_dict(), self.state.button_status,
                              datetime.now(timezone.utc))
        self.channel.send_json({"type": "data_log", **record})

        self.state.lead = LeadData()
        self.state.button_status = {}
        self.state.disabled_ids = set()
        self.state.current_video_duration_ms = 0

        self._enter(SessionStep.COOLDOWN)
        self.timer.start(self.cooldown_ms, self._finish_cooldown, "cooldown")

    def _finish_cooldown(self) -> None:
        self._enter(SessionStep.IDLE)

    # ── Internals ────────────────────────────────────────────────────────────

    def _enter(self, step: SessionStep) -> None:
        log.info("%s -> %s", self.state.step.value, step.value)
        self.state.step = step
        self.view.show_step(step)

    def _enable_all(self) -> None:
        self.state.disabled_ids.clear()
        for video_id in self.controls:
            self.view.set_control_enabled(video_id, True)

    def _restart_deadline(self) -> None:
        timeout_ms = self.compute_deadline_ms()
        self.timer.start(timeout_ms, self._deadline_expired, "inactivity")
        log.debug("inactivity timer started/reset for %d ms", timeout_ms)

    def _deadline_expired(self) -> None:
        log.info("inactivity deadline reached")
        self.end_session()

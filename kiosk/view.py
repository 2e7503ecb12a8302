import logging
from abc import ABC, abstractmethod

from state.schema import SessionStep

log = logging.getLogger("kiosk.view")


class KioskView(ABC):
    """
    What the session manager needs from a screen.

    Rendering, forms and key lockdown live behind this interface; the
    manager only says which step to show, which buttons are live and what
    status line to print.
    """

    @abstractmethod
    def show_step(self, step: SessionStep) -> None:
        ...

    @abstractmethod
    def set_control_enabled(self, video_id: int, enabled: bool) -> None:
        ...

    @abstractmethod
    def show_status(self, text: str) -> None:
        ...

    def show_error(self, text: str) -> None:
        """Defaults to the status line."""
        self.show_status(text)


class LoggingView(KioskView):
    """Headless view: every screen change becomes a log line."""

    _STEP_TEXT = {
        SessionStep.IDLE:        "Welcome! Please enter your details.",
        SessionStep.CAPTURING:   "Capturing details...",
        SessionStep.CONTROLLING: "Choose an experience.",
        SessionStep.COOLDOWN:    "Thank you!",
    }

    def __init__(self):
        self.enabled: dict[int, bool] = {}

    def show_step(self, step: SessionStep) -> None:
        log.info("[%s] %s", step.value, self._STEP_TEXT.get(step, ""))

    def set_control_enabled(self, video_id: int, enabled: bool) -> None:
        if self.enabled.get(video_id) != enabled:
            log.debug("control %s %s", video_id, "enabled" if enabled else "disabled")
        self.enabled[video_id] = enabled

    def show_status(self, text: str) -> None:
        log.info("status: %s", text)

    def show_error(self, text: str) -> None:
        log.warning("status: %s", text)

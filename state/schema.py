from dataclasses import dataclass, field, asdict
from enum import Enum


class SessionStep(str, Enum):
    IDLE        = "idle"          # lead-capture form on screen, nobody engaged
    CAPTURING   = "capturing"     # visitor is filling in the form
    CONTROLLING = "controlling"   # video selection panel
    COOLDOWN    = "cooldown"      # thank-you screen before the next visitor


@dataclass(frozen=True)
class Control:
    """One video button on the selection panel."""
    video_id: int
    key: str                      # log column, e.g. "video1"
    label: str = ""
    duration_ms: int = 0          # how long the clip runs

    @classmethod
    def from_config(cls, cfg: dict) -> "Control":
        video_id = int(cfg["id"])
        return cls(
            video_id=video_id,
            key=str(cfg.get("key") or f"video{video_id}"),
            label=str(cfg.get("label", "")),
            duration_ms=int(cfg.get("duration_ms", 0)),
        )


@dataclass
class LeadData:
    """Visitor contact details captured once per session."""
    name: str = ""
    nationality: str = ""
    email: str = ""
    phone: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class SessionState:
    """Everything the state machine knows about the current visitor."""
    step: SessionStep = SessionStep.IDLE
    current_video_id: int = 0
    current_video_duration_ms: int = 0
    button_status: dict[str, bool] = field(default_factory=dict)
    disabled_ids: set[int] = field(default_factory=set)
    lead: LeadData = field(default_factory=LeadData)

    def __repr__(self):
        pressed = [k for k, v in self.button_status.items() if v]
        return (
            f"SessionState("
            f"step={self.step.value}, "
            f"video={self.current_video_id}, "
            f"pressed={pressed})"
        )

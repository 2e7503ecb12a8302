# OSC address mapping for the media player.
# Modify these to match the address schema configured on the player.

# Play command: /@3/20 "Autoplay" <video id>; video id 0 is the holding loop.
PLAY_ADDRESS = "/@3/20"
PLAY_VERB    = "Autoplay"

# Acknowledged play commands using either verb count as "now playing".
NOW_PLAYING_VERBS = ("Autoplay", "wtm")

# Stop the whole show: /@3/30 "stop show"
STOP_SHOW_ADDRESS = "/@3/30"
STOP_SHOW_VERB    = "stop show"

# Telemetry the player emits when a clip reaches its end:
#   /@3/1000 <layer> "Autoplay" <video id> <1 = finished>
END_MARKER_ADDRESS = "/@3/1000"
END_MARKER_ID_INDEX   = 2
END_MARKER_FLAG_INDEX = 3

HOLDING_VIDEO_ID = 0


def play_command(video_id: int) -> dict:
    """The relay forward-command that plays `video_id` (0 = holding)."""
    return {"address": PLAY_ADDRESS, "args": [PLAY_VERB, video_id]}


def stop_show_command() -> dict:
    return {"address": STOP_SHOW_ADDRESS, "args": [STOP_SHOW_VERB]}

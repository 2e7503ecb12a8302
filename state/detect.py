"""
Recognisers for the two kinds of player feedback the session reacts to.
"""

import math
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from osc import mapping

# "3", "3.0", "-2", "1.5s", "30 fps"
_NUMERIC_PREFIX = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")

FLAG_TOLERANCE = 1e-3


@dataclass(frozen=True)
class Match:
    matched: bool
    index: Optional[int] = None


NO_MATCH = Match(False)


def coerce_number(value) -> Optional[float]:
    """
    Read a number out of an OSC argument.

    Accepts ints/floats, numeric strings and numeric strings followed by a
    unit. Everything else (including booleans) gives None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _NUMERIC_PREFIX.match(value)
        if match:
            return float(match.group(1))
    return None


def match_end_of_video(address: str, args, known_ids: Iterable[int],
                       end_address: str = mapping.END_MARKER_ADDRESS) -> Match:
    """
    Does this inbound OSC event say a clip has finished?

    True when the address is exactly the end marker, the flag argument is
    1 (within tolerance) and the id argument rounds to a known control.
    """
    if address != end_address:
        return NO_MATCH
    args = list(args or ())
    if len(args) <= max(mapping.END_MARKER_ID_INDEX, mapping.END_MARKER_FLAG_INDEX):
        return NO_MATCH

    video = coerce_number(args[mapping.END_MARKER_ID_INDEX])
    flag  = coerce_number(args[mapping.END_MARKER_FLAG_INDEX])
    if video is None or flag is None:
        return NO_MATCH
    if abs(flag - 1.0) > FLAG_TOLERANCE:
        return NO_MATCH

    index = int(round(video))
    if index not in set(known_ids):
        return NO_MATCH
    return Match(True, index)


def match_now_playing(address: str, args,
                      play_address: str = mapping.PLAY_ADDRESS,
                      verbs=mapping.NOW_PLAYING_VERBS) -> Optional[int]:
    """
    The video id of an acknowledged play command, or None.

    Matches `/@3/20 <verb> <id>` with a known verb and an integral
    id >= the holding id.
    """
    if address != play_address:
        return None
    args = list(args or ())
    if len(args) < 2 or args[0] not in verbs:
        return None
    number = coerce_number(args[1])
    if number is None or number != int(number):
        return None
    video_id = int(number)
    if video_id < mapping.HOLDING_VIDEO_ID:
        return None
    return video_id

from osc.codec import IMPULSE, MalformedPacket, OscBundle, OscMessage, build_message, decode, encode
from osc.bridge import BindFailure, InboundOsc, OSCBridge
from osc.sender import OSCSender, SendFailure

__all__ = [
    "IMPULSE", "MalformedPacket", "OscBundle", "OscMessage", "build_message", "decode", "encode",
    "BindFailure", "InboundOsc", "OSCBridge", "OSCSender", "SendFailure",
]

"""
OSC 1.0 wire codec.

Decodes raw UDP payloads into OscMessage / OscBundle values. Outbound
messages are built with python-osc, which writes the same 4-byte padding.

Decoding is deliberately lenient where media players are sloppy:
    - a type-tag string without the leading ',' means "no arguments"
    - unknown tag characters are skipped with a warning
    - a bundle whose last element overruns the datagram is truncated,
      keeping every element parsed before it
    - a bundle cut off inside its header decodes as an empty bundle

Anything else that cannot be read inside the buffer raises MalformedPacket.
"""

import logging
import struct
from dataclasses import dataclass, field

from pythonosc import osc_message
from pythonosc.osc_message_builder import BuildError, OscMessageBuilder

log = logging.getLogger("osc.codec")

BUNDLE_TAG = b"#bundle\0"
IMMEDIATE  = 1

_INT32   = struct.Struct(">i")
_FLOAT32 = struct.Struct(">f")
_INT64   = struct.Struct(">q")
_UINT64  = struct.Struct(">Q")
_FLOAT64 = struct.Struct(">d")


class MalformedPacket(ValueError):
    """Raised when a datagram cannot be decoded as OSC."""


class Impulse:
    """The payload-less 'I' (infinitum / impulse) argument."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "Impulse"

    def __str__(self):
        return "Impulse"


IMPULSE = Impulse()


@dataclass(frozen=True)
class OscMessage:
    """
    One OSC message.

    `tags` holds the type-tag characters (without the comma) matching `args`
    one-to-one. Leave it empty when building a message by hand and the
    encoder infers tags from the Python types of `args`.
    """
    address: str
    args: tuple = ()
    tags: str = ""

    def __post_init__(self):
        # accept lists from JSON callers, store immutably
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class OscBundle:
    """A bundle flattened to its messages. Nested bundles are inlined."""
    timetag: int = IMMEDIATE
    messages: tuple = field(default_factory=tuple)


# ── Reading ──────────────────────────────────────────────────────────────────

def _padded(length: int) -> int:
    return (length + 3) & ~3


def read_padded_string(buf: bytes, offset: int) -> tuple[str, int]:
    """
    Read a NUL-terminated string starting at `offset`.

    Returns (value, next_offset). The bytes consumed, NUL and padding
    included, are always a multiple of 4.
    """
    end = buf.find(b"\0", offset)
    if end < 0:
        raise MalformedPacket(f"unterminated string at offset {offset}")
    value = buf[offset:end].decode("utf-8", errors="replace")
    return value, offset + _padded(end - offset + 1)


def _unpack(fmt: struct.Struct, buf: bytes, offset: int, tag: str):
    if offset + fmt.size > len(buf):
        raise MalformedPacket(f"argument '{tag}' at offset {offset} runs past end of packet")
    return fmt.unpack_from(buf, offset)[0]


def _read_int64(buf: bytes, offset: int, tag: str):
    """
    Read an 'h' or 't' payload as a signed 64-bit integer.

    If the integer read is rejected the same 8 bytes are reinterpreted as a
    double. This is a lenient soft spot kept for sloppy producers: with the
    stock struct reader a full 8-byte window always reads as an integer, so
    the double path only runs when the integer reader itself refuses the
    bytes. A window shorter than 8 bytes raises MalformedPacket up front.
    """
    if offset + 8 > len(buf):
        raise MalformedPacket(f"argument '{tag}' at offset {offset} runs past end of packet")
    try:
        return _INT64.unpack_from(buf, offset)[0]
    except struct.error:
        log.warning("could not read '%s' as int64 at offset %d, retrying as float64", tag, offset)
    return _FLOAT64.unpack_from(buf, offset)[0]


def _decode_message(buf: bytes) -> OscMessage:
    address, offset = read_padded_string(buf, 0)
    if offset >= len(buf):
        return OscMessage(address)

    type_tags, offset = read_padded_string(buf, offset)
    if not type_tags.startswith(","):
        return OscMessage(address)

    args = []
    tags = []
    for tag in type_tags[1:]:
        if tag == "i":
            value = _unpack(_INT32, buf, offset, tag)
            offset += 4
        elif tag == "f":
            value = _unpack(_FLOAT32, buf, offset, tag)
            offset += 4
        elif tag in ("s", "S"):
            if offset >= len(buf):
                raise MalformedPacket(f"string argument at offset {offset} runs past end of packet")
            value, offset = read_padded_string(buf, offset)
        elif tag in ("h", "t"):
            value = _read_int64(buf, offset, tag)
            offset += 8
        elif tag == "d":
            value = _unpack(_FLOAT64, buf, offset, tag)
            offset += 8
        elif tag == "b":
            size = _unpack(_INT32, buf, offset, tag)
            offset += 4
            if size < 0 or offset + size > len(buf):
                raise MalformedPacket(f"blob of {size} bytes at offset {offset} runs past end of packet")
            value = bytes(buf[offset:offset + size])
            offset += _padded(size)
        elif tag == "T":
            value = True
        elif tag == "F":
            value = False
        elif tag == "N":
            value = None
        elif tag == "I":
            value = IMPULSE
        else:
            log.warning("unknown OSC type tag %r in %s, skipping", tag, address)
            continue
        args.append(value)
        tags.append(tag)

    return OscMessage(address, tuple(args), "".join(tags))


def _walk_bundle(buf: bytes, messages: list) -> int:
    # tag (8) + timetag (8); a cut-off header is an empty bundle
    if len(buf) < 16:
        log.debug("bundle header truncated at %d bytes", len(buf))
        return IMMEDIATE
    timetag = _UINT64.unpack_from(buf, 8)[0]

    offset = 16
    while offset + 4 <= len(buf):
        size = _INT32.unpack_from(buf, offset)[0]
        offset += 4
        if size <= 0 or offset + size > len(buf):
            log.debug("bundle element of %d bytes at offset %d truncated, stopping", size, offset)
            break
        element = buf[offset:offset + size]
        if element[:8] == BUNDLE_TAG:
            _walk_bundle(element, messages)
        else:
            messages.append(_decode_message(element))
        offset += size
    return timetag


def decode(buf: bytes):
    """
    Decode one datagram.

    Returns an OscBundle when the payload starts with '#bundle\\0',
    otherwise an OscMessage. Raises MalformedPacket on unreadable input.
    """
    buf = bytes(buf)
    if not buf:
        raise MalformedPacket("empty packet")
    if buf[:8] == BUNDLE_TAG:
        messages: list = []
        timetag = _walk_bundle(buf, messages)
        return OscBundle(timetag, tuple(messages))
    return _decode_message(buf)


def messages_of(packet) -> tuple:
    """The messages carried by a decoded packet, in order."""
    if isinstance(packet, OscBundle):
        return packet.messages
    return (packet,)


# ── Writing ──────────────────────────────────────────────────────────────────

# tags python-osc can write; t, S and I are decode-only here
ENCODABLE_TAGS = "ifdhsbTFN"


def build_message(message: OscMessage) -> osc_message.OscMessage:
    """
    Build a python-osc message from `message`, ready to hand to a UDP client.

    Uses `message.tags` when given, otherwise python-osc infers a tag per
    argument. Raises ValueError for a bad address or an argument that
    cannot be written.
    """
    address = message.address
    if not isinstance(address, str) or not address.startswith("/"):
        raise ValueError(f"OSC address must be a string starting with '/': {address!r}")
    if message.tags and len(message.tags) != len(message.args):
        raise ValueError(f"{len(message.tags)} type tags for {len(message.args)} arguments")

    builder = OscMessageBuilder(address=address)
    for i, value in enumerate(message.args):
        tag = message.tags[i] if message.tags else None
        if tag is not None and tag not in ENCODABLE_TAGS:
            raise ValueError(f"type tag {tag!r} cannot be encoded")
        builder.add_arg(value, tag)
    try:
        return builder.build()
    except BuildError as exc:
        raise ValueError(str(exc)) from exc


def encode(message: OscMessage) -> bytes:
    """Encode a message; decode() reads the result back unchanged."""
    return build_message(message).dgram

"""
Packet Encoder - fixed-width ASCII command records.

Wire format (18 bytes):

    B ddd S ddd E ddd G ddd \\r\\n

Each ``ddd`` is a zero-padded 3-digit decimal. Example: base=90,
shoulder=135, elbow=45, gripper open -> ``B090S135E045G001\\r\\n``.
"""

import math
import numbers
import re
from dataclasses import dataclass
from typing import Tuple, Union

from .state import round_half_up

FIELD_MIN = 0
FIELD_MAX = 999
TERMINATOR = b"\r\n"
PAYLOAD_SIZE = 16
PACKET_SIZE = PAYLOAD_SIZE + len(TERMINATOR)

_PACKET_RE = re.compile(r"B([0-9]{3})S([0-9]{3})E([0-9]{3})G([0-9]{3})")


class PacketError(ValueError):
    """Value cannot be encoded, or bytes are not a valid record."""


def _field(name: str, value, saturate: bool) -> int:
    if isinstance(value, numbers.Integral):
        value = int(value)
    elif isinstance(value, numbers.Real):
        value = float(value)
        if math.isnan(value):
            raise PacketError(f"{name} is NaN")
        if not value.is_integer():
            if not saturate:
                raise PacketError(f"{name}={value!r} is not an integer")
            if math.isinf(value):
                value = FIELD_MAX if value > 0 else FIELD_MIN
        value = round_half_up(value)
    else:
        raise PacketError(f"{name}={value!r} is not a number")
    if value < FIELD_MIN or value > FIELD_MAX:
        if not saturate:
            raise PacketError(f"{name}={value} outside {FIELD_MIN}..{FIELD_MAX}")
        value = max(FIELD_MIN, min(FIELD_MAX, value))
    return value


def encode_packet(base, shoulder, elbow, gripper, saturate: bool = False) -> bytes:
    """
    Encode one command record.

    Args:
        base, shoulder, elbow: Joint angles in degrees
        gripper: Gripper state (0=closed, 1=open)
        saturate: Clamp out-of-range values into the 3-digit field instead
            of rejecting them

    Returns:
        The 18-byte ASCII record including the CRLF terminator

    Raises:
        PacketError: if a value is not an integer or does not fit and
            ``saturate`` is False
    """
    b = _field("base", base, saturate)
    s = _field("shoulder", shoulder, saturate)
    e = _field("elbow", elbow, saturate)
    g = _field("gripper", gripper, saturate)
    return f"B{b:03d}S{s:03d}E{e:03d}G{g:03d}".encode("ascii") + TERMINATOR


def decode_packet(data: Union[bytes, str]) -> Tuple[int, int, int, int]:
    """
    Parse a record back into (base, shoulder, elbow, gripper).

    The CRLF terminator is optional so that framed transports (WebSocket
    text frames) can be validated with the same function.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("ascii")
        except UnicodeDecodeError:
            raise PacketError("record is not ASCII")
    if data.endswith("\r\n"):
        data = data[:-2]
    match = _PACKET_RE.fullmatch(data)
    if match is None:
        raise PacketError(f"malformed record {data!r}")
    b, s, e, g = (int(x) for x in match.groups())
    return b, s, e, g


@dataclass(frozen=True)
class ArmCommand:
    """One decoded command record."""
    base: int
    shoulder: int
    elbow: int
    gripper: int

    def to_wire(self) -> bytes:
        return encode_packet(self.base, self.shoulder, self.elbow, self.gripper)

    @classmethod
    def from_wire(cls, data: Union[bytes, str]) -> 'ArmCommand':
        return cls(*decode_packet(data))

    def __str__(self) -> str:
        return self.to_wire().decode("ascii").rstrip()

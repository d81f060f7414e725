"""ICMP echo packet codec.

Echo request layout (RFC 792):
- type: 1 byte (8 = echo request, 0 = echo reply)
- code: 1 byte (0)
- checksum: 2 bytes (RFC 1071 over the whole ICMP message)
- identifier: 2 bytes (process id, masked to 16 bits)
- sequence: 2 bytes (per-host correlation tag)
- payload: send time as a network-order double, then filler

Raw ICMP sockets deliver replies with the IPv4 header still attached,
so parse_reply() skips IHL * 4 bytes before decoding.
"""

import os
import struct
from dataclasses import dataclass
from typing import Optional

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8

# Minimum ICMP message: type, code, checksum, identifier, sequence
ICMP_MINLEN = 8

# Payload size giving a conventional 64-byte ICMP message
DEFAULT_DATA_LEN = 64 - ICMP_MINLEN

_HEADER = struct.Struct("!BBHHH")
_TIMESTAMP = struct.Struct("!d")


@dataclass(frozen=True)
class EchoReply:
    """Decoded ICMP message taken from a received datagram."""

    icmp_type: int
    code: int
    identifier: int
    sequence: int
    sent_at: Optional[float] = None


def checksum(data: bytes) -> int:
    """Compute the 16-bit Internet checksum (RFC 1071).

    Sums big-endian 16-bit words into a wide accumulator, folds the carries
    back into the low 16 bits and returns the one's complement. A trailing
    odd byte is treated as the high half of a final word.
    """
    if len(data) % 2:
        data += b"\x00"

    total = sum(struct.unpack("!%dH" % (len(data) // 2), data))

    # add back carry outs from top 16 bits to low 16 bits
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def process_identifier() -> int:
    """Echo identifier shared by every probe this process sends."""
    return os.getpid() & 0xFFFF


def build_echo_request(
    identifier: int,
    sequence: int,
    sent_at: float,
    data_len: int = DEFAULT_DATA_LEN,
) -> bytes:
    """Build one ICMP echo request carrying its send time.

    Args:
        identifier: Echo identifier (16 bits).
        sequence: Sequence field, used as the per-host tag (16 bits).
        sent_at: Wall-clock send time embedded for round-trip measurement.
        data_len: Payload length; at least the 8 timestamp bytes.

    Returns:
        The ICMP message with its checksum filled in.
    """
    data_len = max(data_len, _TIMESTAMP.size)
    filler = bytes(i & 0xFF for i in range(_TIMESTAMP.size, data_len))
    payload = _TIMESTAMP.pack(sent_at) + filler

    header = _HEADER.pack(ICMP_ECHO_REQUEST, 0, 0, identifier & 0xFFFF, sequence & 0xFFFF)
    csum = checksum(header + payload)
    header = _HEADER.pack(ICMP_ECHO_REQUEST, 0, csum, identifier & 0xFFFF, sequence & 0xFFFF)
    return header + payload


def parse_reply(datagram: bytes) -> Optional[EchoReply]:
    """Decode the ICMP message inside a raw IPv4 datagram.

    Returns:
        The decoded message, or None if the datagram is too short to hold
        an IP header plus a minimal ICMP header.
    """
    if not datagram:
        return None

    header_len = (datagram[0] & 0x0F) << 2
    if len(datagram) < header_len + ICMP_MINLEN:
        return None

    icmp_type, code, _, identifier, sequence = _HEADER.unpack_from(datagram, header_len)

    sent_at = None
    payload_offset = header_len + ICMP_MINLEN
    if len(datagram) >= payload_offset + _TIMESTAMP.size:
        (sent_at,) = _TIMESTAMP.unpack_from(datagram, payload_offset)

    return EchoReply(
        icmp_type=icmp_type,
        code=code,
        identifier=identifier,
        sequence=sequence,
        sent_at=sent_at,
    )

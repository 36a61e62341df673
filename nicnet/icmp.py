"""ICMP echo messages."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, Optional

from nicnet import ipv4
from nicnet.arp import ArpTable, format_ip

logger = logging.getLogger(__name__)

HEADER_LEN = 8
PROTOCOL = 1

_HEADER = struct.Struct("!BBHHH")


class IcmpType(IntEnum):
    ECHO_REPLY = 0
    ECHO_REQUEST = 8


@dataclass(frozen=True)
class IcmpHeader:
    """An ICMP echo header."""

    icmp_type: int
    code: int = 0
    checksum: int = 0
    ident: int = 0
    seq: int = 0

    def pack(self) -> bytes:
        return _HEADER.pack(
            int(self.icmp_type), self.code, self.checksum, self.ident, self.seq
        )

    @classmethod
    def unpack(cls, data: bytes) -> "IcmpHeader":
        if len(data) < HEADER_LEN:
            raise ValueError(f"ICMP header of {len(data)} bytes is too short")
        return cls(*_HEADER.unpack_from(data))


def build_message(icmp_type: int, code: int, ident: int, seq: int, data: bytes = b"") -> bytes:
    """Return an ICMP message with its checksum filled in."""
    payload = bytes(data) if data else b""
    header = IcmpHeader(icmp_type, code, 0, ident, seq)
    value = ipv4.checksum(header.pack() + payload)
    return replace(header, checksum=value).pack() + payload


def send(
    nic: Any,
    dst_ip: int,
    icmp_type: int,
    code: int,
    ident: int,
    seq: int,
    data: bytes,
    arp_table: ArpTable,
) -> Optional[bytes]:
    """Send an ICMP message over IPv4; return the frame written, if any."""
    message = build_message(icmp_type, code, ident, seq, data)
    return ipv4.send(nic, dst_ip, PROTOCOL, message, arp_table)


def receive(nic: Any, src_ip: int, payload: bytes, arp_table: ArpTable) -> Optional[IcmpHeader]:
    """Handle an incoming ICMP message, answering echo requests.

    Returns the header received, or ``None`` if the message is too short.
    """
    payload = bytes(payload)
    if len(payload) < HEADER_LEN:
        return None
    header = IcmpHeader.unpack(payload)
    if header.icmp_type == IcmpType.ECHO_REQUEST:
        logger.info("[ICMP] Echo request from %s, replying", format_ip(src_ip))
        send(
            nic,
            src_ip,
            IcmpType.ECHO_REPLY,
            0,
            header.ident,
            header.seq,
            payload[HEADER_LEN:],
            arp_table,
        )
    elif header.icmp_type == IcmpType.ECHO_REPLY:
        logger.info("[ICMP] Echo reply from a remote host")
    return header
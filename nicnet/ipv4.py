"""IPv4 headers, the Internet checksum, sending and receive dispatch."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, replace
from typing import Any, Optional, Protocol

from nicnet import arp, icmp
from nicnet.ethernet import TYPE_IP, make_frame

logger = logging.getLogger(__name__)

HEADER_LEN = 20
BROADCAST = 0xFFFFFFFF
DEFAULT_TTL = 64
PROTO_ICMP = 1
PROTO_TCP = 6

_HEADER = struct.Struct("!BBHHHBBHII")
_MAX_PAYLOAD = 0xFFFF - HEADER_LEN


class _TcpInput(Protocol):
    def input(self, nic: Any, src_ip: int, packet: bytes) -> object: ...


def checksum(data: bytes) -> int:
    """Return the Internet checksum (RFC 1071) of ``data``."""
    data = bytes(data)
    if len(data) % 2:
        data += b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


@dataclass(frozen=True)
class Ipv4Header:
    """An IPv4 header without options; addresses are host-order integers."""

    source: int
    destination: int
    protocol: int
    total_length: int = HEADER_LEN
    version: int = 4
    ihl: int = HEADER_LEN // 4
    type_of_service: int = 0
    identification: int = 0
    flags_fragment_offset: int = 0
    time_to_live: int = DEFAULT_TTL
    header_checksum: int = 0

    @property
    def header_length(self) -> int:
        return self.ihl * 4

    def pack(self) -> bytes:
        return _HEADER.pack(
            ((self.version & 0x0F) << 4) | (self.ihl & 0x0F),
            self.type_of_service,
            self.total_length,
            self.identification,
            self.flags_fragment_offset,
            self.time_to_live,
            self.protocol,
            self.header_checksum,
            self.source & 0xFFFFFFFF,
            self.destination & 0xFFFFFFFF,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Ipv4Header":
        if len(data) < HEADER_LEN:
            raise ValueError(f"IPv4 header of {len(data)} bytes is too short")
        (
            version_ihl,
            tos,
            total_length,
            identification,
            flags_fragment,
            ttl,
            protocol,
            header_checksum,
            source,
            destination,
        ) = _HEADER.unpack_from(data)
        return cls(
            source=source,
            destination=destination,
            protocol=protocol,
            total_length=total_length,
            version=version_ihl >> 4,
            ihl=version_ihl & 0x0F,
            type_of_service=tos,
            identification=identification,
            flags_fragment_offset=flags_fragment,
            time_to_live=ttl,
            header_checksum=header_checksum,
        )


def send(nic: Any, dst_ip: int, protocol: int, data: bytes, arp_table: arp.ArpTable) -> Optional[bytes]:
    """Send ``data`` to ``dst_ip`` and return the frame written.

    When the destination MAC is not in the table an ARP request is sent
    instead and ``None`` is returned.
    """
    dst_mac = arp_table.lookup(dst_ip)
    if dst_mac is None:
        logger.info("[IPv4] MAC unknown for %s, sending ARP request", arp.format_ip(dst_ip))
        arp.send_request(nic, dst_ip, arp_table)
        return None
    payload = bytes(data) if data else b""
    if len(payload) > _MAX_PAYLOAD:
        raise ValueError(f"payload of {len(payload)} bytes is too large for IPv4")
    header = Ipv4Header(nic.ip_address, dst_ip, protocol, HEADER_LEN + len(payload))
    header = replace(header, header_checksum=checksum(header.pack()))
    frame = make_frame(dst_mac, nic.mac_address, TYPE_IP, header.pack() + payload)
    nic.send_packet(frame)
    return frame


def receive(
    nic: Any,
    packet: bytes,
    tcp_layer: Optional[_TcpInput],
    arp_table: arp.ArpTable,
) -> Optional[Ipv4Header]:
    """Handle an incoming IPv4 packet; return its header, or ``None`` if dropped."""
    packet = bytes(packet)
    if len(packet) < HEADER_LEN:
        return None
    if checksum(packet[:HEADER_LEN]) != 0:
        return None
    header = Ipv4Header.unpack(packet)
    if header.destination not in (nic.ip_address, BROADCAST):
        return None

    payload = packet[header.header_length : header.total_length]

    if header.protocol == PROTO_ICMP:
        icmp.receive(nic, header.source, payload, arp_table)
    elif header.protocol == PROTO_TCP and tcp_layer is not None:
        tcp_layer.input(nic, header.source, payload)
    else:
        logger.info("[IP] Packet received from: %s", arp.format_ip(header.source))
        logger.info("   | Protocol: %u | Data length: %u", header.protocol, len(payload))
        if payload:
            logger.info("   | Content (hex): %s", payload[:16].hex(" "))
    return header
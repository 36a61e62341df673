"""ARP packets, the address table and request/reply handling."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Protocol

from nicnet.ethernet import (
    BROADCAST_MAC,
    HDR_LEN,
    MAC_LEN,
    TYPE_ARP,
    TYPE_IP,
    format_mac,
    make_frame,
)

logger = logging.getLogger(__name__)

ETH_P_ARP = TYPE_ARP
TABLE_SIZE = 8

_PACKET = struct.Struct("!HHBBH6sI6sI")
PACKET_LEN = _PACKET.size


class ArpOperation(IntEnum):
    REQUEST = 1
    REPLY = 2


class _Device(Protocol):
    mac_address: bytes
    ip_address: int

    def send_packet(self, data: bytes) -> object: ...


def format_ip(ip: int) -> str:
    """Render a host-order IPv4 address as dotted decimal."""
    return ".".join(str((ip >> shift) & 0xFF) for shift in (24, 16, 8, 0))


@dataclass(frozen=True)
class ArpPacket:
    """An Ethernet/IPv4 ARP packet; addresses are host-order integers."""

    operation: int
    sender_mac: bytes
    sender_ip: int
    target_mac: bytes
    target_ip: int
    htype: int = 1
    ptype: int = TYPE_IP
    hlen: int = MAC_LEN
    plen: int = 4

    def pack(self) -> bytes:
        return _PACKET.pack(
            self.htype,
            self.ptype,
            self.hlen,
            self.plen,
            int(self.operation),
            bytes(self.sender_mac),
            self.sender_ip & 0xFFFFFFFF,
            bytes(self.target_mac),
            self.target_ip & 0xFFFFFFFF,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "ArpPacket":
        if len(data) < PACKET_LEN:
            raise ValueError(f"ARP packet of {len(data)} bytes is too short")
        htype, ptype, hlen, plen, oper, sha, spa, tha, tpa = _PACKET.unpack_from(data)
        return cls(oper, sha, spa, tha, tpa, htype, ptype, hlen, plen)


@dataclass(frozen=True)
class ArpEntry:
    ip: int
    mac: bytes


class ArpTable:
    """A fixed-size IP to MAC table; when full, the first slot is replaced."""

    def __init__(self, size: int = TABLE_SIZE) -> None:
        self._slots: list[Optional[ArpEntry]] = [None] * size

    def add(self, ip: int, mac: bytes) -> None:
        mac = bytes(mac)
        if len(mac) != MAC_LEN:
            raise ValueError(f"MAC address must be {MAC_LEN} bytes")
        entry = ArpEntry(ip, mac)
        for index, slot in enumerate(self._slots):
            if slot is None:
                self._slots[index] = entry
                return
        self._slots[0] = entry

    def lookup(self, ip: int) -> Optional[bytes]:
        return next((e.mac for e in self._slots if e is not None and e.ip == ip), None)

    def clear(self) -> None:
        self._slots = [None] * len(self._slots)

    def entries(self) -> list[ArpEntry]:
        return [entry for entry in self._slots if entry is not None]

    def format(self) -> str:
        lines = [
            "",
            "ARP table:",
            "IP address        MAC address",
            "----------------  -----------------",
        ]
        lines.extend(
            f"{format_ip(e.ip)}     {format_mac(e.mac)}" for e in self.entries()
        )
        return "\n".join(lines) + "\n"


def send_request(device: _Device, target_ip: int, table: Optional[ArpTable] = None) -> bytes:
    """Broadcast a who-has request for ``target_ip`` and return the frame sent.

    The table is filled in later, when the reply arrives through ``receive``.
    """
    packet = ArpPacket(
        ArpOperation.REQUEST,
        device.mac_address,
        device.ip_address,
        bytes(MAC_LEN),
        target_ip,
    )
    frame = make_frame(BROADCAST_MAC, device.mac_address, TYPE_ARP, packet.pack())
    device.send_packet(frame)
    logger.info("[ARP] Request: Who has %s?", format_ip(target_ip))
    return frame


def send_reply(device: _Device, target_mac: bytes, target_ip: int, table: ArpTable) -> bytes:
    """Answer ``target_ip`` with our address, record it, and return the frame sent."""
    packet = ArpPacket(
        ArpOperation.REPLY,
        device.mac_address,
        device.ip_address,
        bytes(target_mac),
        target_ip,
    )
    frame = make_frame(target_mac, device.mac_address, TYPE_ARP, packet.pack())
    device.send_packet(frame)
    logger.info(
        "[ARP] Reply: %s is at %s", format_ip(target_ip), format_mac(target_mac)
    )
    table.add(target_ip, target_mac)
    return frame


def receive(frame: bytes, table: ArpTable) -> Optional[ArpEntry]:
    """Learn the sender of an ARP reply frame; other frames are ignored."""
    if len(frame) < HDR_LEN + PACKET_LEN:
        return None
    if int.from_bytes(frame[12:14], "big") != ETH_P_ARP:
        return None
    packet = ArpPacket.unpack(frame[HDR_LEN:])
    if packet.operation != ArpOperation.REPLY:
        return None
    table.add(packet.sender_ip, packet.sender_mac)
    logger.info(
        "[ARP RX] Reply from %s is at %s",
        format_ip(packet.sender_ip),
        format_mac(packet.sender_mac),
    )
    return ArpEntry(packet.sender_ip, bytes(packet.sender_mac))
"""Ethernet II frame construction and parsing."""

from __future__ import annotations

import struct
from dataclasses import dataclass

MAC_LEN = 6
HDR_LEN = 14
MAX_DATA = 1500

TYPE_IP = 0x0800
TYPE_ARP = 0x0806
TYPE_TEST = 0x9000

BROADCAST_MAC = b"\xff" * MAC_LEN

_HEADER = struct.Struct("!6s6sH")


class EthernetError(ValueError):
    """Raised when a frame cannot be built or parsed."""


@dataclass(frozen=True)
class EthernetFrame:
    """A decoded Ethernet II frame."""

    dest_mac: bytes
    src_mac: bytes
    ethertype: int
    data: bytes = b""


def _check_mac(mac: bytes, what: str) -> bytes:
    if mac is None:
        raise EthernetError(f"{what} is missing")
    mac = bytes(mac)
    if len(mac) != MAC_LEN:
        raise EthernetError(f"{what} must be {MAC_LEN} bytes, got {len(mac)}")
    return mac


def make_frame(dest_mac: bytes, src_mac: bytes, ethertype: int, data: bytes = b"") -> bytes:
    """Build the wire bytes of an Ethernet frame carrying ``data``."""
    dest = _check_mac(dest_mac, "destination MAC")
    src = _check_mac(src_mac, "source MAC")
    if not 0 <= ethertype <= 0xFFFF:
        raise EthernetError(f"ethertype out of range: {ethertype:#x}")
    payload = bytes(data) if data else b""
    if len(payload) > MAX_DATA:
        raise EthernetError(f"payload of {len(payload)} bytes exceeds {MAX_DATA}")
    return _HEADER.pack(dest, src, ethertype) + payload


def read_frame(buffer: bytes) -> EthernetFrame:
    """Decode an Ethernet frame.

    A payload longer than the maximum is not carried over: the frame is
    returned with empty data.
    """
    buffer = bytes(buffer)
    if len(buffer) < HDR_LEN:
        raise EthernetError(f"frame of {len(buffer)} bytes is shorter than the header")
    dest, src, ethertype = _HEADER.unpack_from(buffer)
    payload = buffer[HDR_LEN:]
    if len(payload) > MAX_DATA:
        payload = b""
    return EthernetFrame(dest, src, ethertype, payload)


def format_mac(mac: bytes) -> str:
    """Render a MAC address as colon-separated upper-case hex."""
    return ":".join(f"{octet:02X}" for octet in bytes(mac))
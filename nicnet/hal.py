"""Raw link-layer access to a network interface."""

from __future__ import annotations

import fcntl
import socket
import struct
from dataclasses import dataclass
from types import TracebackType
from typing import Optional

IFACE_NAME = "eth0"
IFACE_NAMELEN = 32
ETH_P_ALL = 0x0003

_IFNAMSIZ = 16
_SIOCGIFADDR = 0x8915
_SIOCGIFMTU = 0x8921
_SIOCGIFHWADDR = 0x8927


class HalError(OSError):
    """Raised when the interface cannot be opened or used."""


def _ifreq(sock: socket.socket, request: int, name: str) -> bytes:
    req = struct.pack("16s24x", name.encode()[: _IFNAMSIZ - 1])
    return fcntl.ioctl(sock.fileno(), request, req)


@dataclass
class RawDevice:
    """A raw packet socket bound to one interface."""

    name: str
    sock: socket.socket
    index: int = 0
    mac: bytes = bytes(6)
    ip: int = 0
    mtu: int = 0

    @classmethod
    def open(cls, name: str = IFACE_NAME, sock: Optional[socket.socket] = None) -> "RawDevice":
        """Open ``name``; a given socket is used instead of a new raw one and closed on failure."""
        name = name[: IFACE_NAMELEN - 1]
        try:
            index = socket.if_nametoindex(name)
            if sock is None:
                family = getattr(socket, "AF_PACKET", None)
                if family is None:
                    raise OSError("raw packet sockets are not available")
                sock = socket.socket(family, socket.SOCK_RAW, socket.htons(ETH_P_ALL))
            mac = _ifreq(sock, _SIOCGIFHWADDR, name)[18:24]
            try:
                ip = int.from_bytes(_ifreq(sock, _SIOCGIFADDR, name)[20:24], "big")
            except OSError:
                ip = 0
            mtu = struct.unpack_from("i", _ifreq(sock, _SIOCGIFMTU, name), _IFNAMSIZ)[0]
            sock.bind((name, ETH_P_ALL))
        except OSError as exc:
            if sock is not None:
                sock.close()
            raise HalError(f"cannot open interface {name!r}: {exc}") from exc
        return cls(name, sock, index, bytes(mac), ip, mtu)

    def send(self, data: bytes) -> int:
        """Write one frame; return the number of bytes sent."""
        try:
            return self.sock.send(data)
        except OSError as exc:
            raise HalError(f"send on {self.name!r} failed: {exc}") from exc

    def receive(self, size: int) -> bytes:
        """Read one frame of at most ``size`` bytes."""
        try:
            return self.sock.recv(size)
        except OSError as exc:
            raise HalError(f"receive on {self.name!r} failed: {exc}") from exc

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "RawDevice":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()
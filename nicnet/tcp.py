"""A minimal TCP layer: connection table, passive open and data delivery."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Any, Callable, Optional

from nicnet import ipv4
from nicnet.arp import ArpTable

logger = logging.getLogger(__name__)

MAX_CONNECTIONS = 10
HEADER_LEN = 20
WINDOW_SIZE = 8192
PROTOCOL = 6

_HEADER = struct.Struct("!HHIIBBHHH")
_SEQ_MASK = 0xFFFFFFFF


class TcpFlag(IntFlag):
    FIN = 0x01
    SYN = 0x02
    RST = 0x04
    PSH = 0x08
    ACK = 0x10
    URG = 0x20


class TcpState(IntEnum):
    CLOSED = 0
    LISTEN = 1
    SYN_SENT = 2
    SYN_RECEIVED = 3
    ESTABLISHED = 4
    FIN_WAIT_1 = 5
    FIN_WAIT_2 = 6
    CLOSE_WAIT = 7
    CLOSING = 8
    LAST_ACK = 9
    TIME_WAIT = 10


@dataclass(frozen=True)
class TcpHeader:
    """A TCP header without options."""

    src_port: int
    dst_port: int
    seq_num: int = 0
    ack_num: int = 0
    flags: int = 0
    data_offset: int = (HEADER_LEN // 4) << 4
    window_size: int = 0
    checksum: int = 0
    urgent_ptr: int = 0

    @property
    def header_length(self) -> int:
        return (self.data_offset >> 4) * 4

    def pack(self) -> bytes:
        return _HEADER.pack(
            self.src_port,
            self.dst_port,
            self.seq_num & _SEQ_MASK,
            self.ack_num & _SEQ_MASK,
            self.data_offset,
            int(self.flags),
            self.window_size,
            self.checksum,
            self.urgent_ptr,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "TcpHeader":
        if len(data) < HEADER_LEN:
            raise ValueError(f"TCP header of {len(data)} bytes is too short")
        (src, dst, seq, ack, offset, flags, window, csum, urgent) = _HEADER.unpack_from(data)
        return cls(src, dst, seq, ack, flags, offset, window, csum, urgent)


@dataclass
class Tcb:
    """The state of one connection; addresses and ports in host order."""

    local_ip: int = 0
    remote_ip: int = 0
    local_port: int = 0
    remote_port: int = 0
    state: TcpState = TcpState.CLOSED
    seq_num_next: int = 0
    ack_num_expected: int = 0


AcceptCallback = Callable[[Tcb], object]
DataCallback = Callable[[Tcb, bytes], object]


class TcpLayer:
    """A fixed pool of connections and the application callbacks."""

    def __init__(self, arp_table: Optional[ArpTable] = None, size: int = MAX_CONNECTIONS) -> None:
        self.arp_table = arp_table if arp_table is not None else ArpTable()
        self._size = size
        self.connections: list[Tcb] = [Tcb() for _ in range(size)]
        self.on_accept: Optional[AcceptCallback] = None
        self.on_data: Optional[DataCallback] = None

    def init(self) -> None:
        """Close every connection."""
        logger.info("Initializing TCP layer...")
        self.connections = [Tcb() for _ in range(self._size)]
        logger.info("TCP layer initialized.")

    def register_callbacks(
        self, on_accept: Optional[AcceptCallback], on_data: Optional[DataCallback]
    ) -> None:
        self.on_accept = on_accept
        self.on_data = on_data

    def find_tcb(self, remote_ip: int, remote_port: int, local_port: int) -> Optional[Tcb]:
        return next(
            (
                tcb
                for tcb in self.connections
                if tcb.state != TcpState.CLOSED
                and tcb.remote_ip == remote_ip
                and tcb.remote_port == remote_port
                and tcb.local_port == local_port
            ),
            None,
        )

    def find_listening_tcb(self, local_port: int) -> Optional[Tcb]:
        return next(
            (
                tcb
                for tcb in self.connections
                if tcb.state == TcpState.LISTEN and tcb.local_port == local_port
            ),
            None,
        )

    def input(self, nic: Any, src_ip: int, packet: bytes) -> Optional[Tcb]:
        """Handle an incoming segment; return the connection it belongs to."""
        packet = bytes(packet)
        if len(packet) < HEADER_LEN:
            logger.info("TCP packet too short.")
            return None
        header = TcpHeader.unpack(packet)

        tcb = self.find_tcb(src_ip, header.src_port, header.dst_port)
        if tcb is None:
            tcb = self.find_listening_tcb(header.dst_port)
        if tcb is None:
            logger.info("TCP packet for unknown connection.")
            return None

        if tcb.state == TcpState.LISTEN:
            if header.flags & TcpFlag.SYN:
                logger.info("Received SYN on listening port %u", tcb.local_port)
                tcb.state = TcpState.SYN_RECEIVED
                tcb.remote_ip = src_ip
                tcb.remote_port = header.src_port
                tcb.ack_num_expected = (header.seq_num + 1) & _SEQ_MASK
                tcb.seq_num_next = 0
                logger.info("Sending SYN-ACK...")
                self._send_segment(nic, tcb, TcpFlag.SYN | TcpFlag.ACK, b"")
        elif tcb.state == TcpState.SYN_RECEIVED:
            if header.flags & TcpFlag.ACK and header.ack_num == (tcb.seq_num_next + 1) & _SEQ_MASK:
                logger.info("Received ACK, connection established!")
                tcb.state = TcpState.ESTABLISHED
                tcb.seq_num_next = (tcb.seq_num_next + 1) & _SEQ_MASK
                if self.on_accept is not None:
                    self.on_accept(tcb)
        elif tcb.state == TcpState.ESTABLISHED:
            logger.info("Received packet on established connection.")
            payload = packet[header.header_length :]
            if payload and self.on_data is not None:
                self.on_data(tcb, payload)
        else:
            logger.info("TCP packet received in unhandled state.")
        return tcb

    def listen(self, port: int) -> Tcb:
        """Take a free connection slot and listen on ``port``."""
        for index, slot in enumerate(self.connections):
            if slot.state == TcpState.CLOSED:
                tcb = Tcb(state=TcpState.LISTEN, local_port=port)
                self.connections[index] = tcb
                logger.info("TCP listening on port %u", port)
                return tcb
        raise RuntimeError("no available TCBs for listening")

    def close(self, tcb: Optional[Tcb]) -> None:
        """Close a connection at once, without the FIN exchange."""
        if tcb is None:
            return
        logger.info("Closing TCP connection.")
        tcb.state = TcpState.CLOSED

    def send(self, nic: Any, tcb: Optional[Tcb], data: bytes) -> Optional[bytes]:
        """Send ``data`` on an established connection; return the frame written."""
        if tcb is None or tcb.state != TcpState.ESTABLISHED:
            raise ConnectionError("cannot send data on a non-established connection")
        data = bytes(data) if data else b""
        frame = self._send_segment(nic, tcb, TcpFlag.ACK | TcpFlag.PSH, data)
        tcb.seq_num_next = (tcb.seq_num_next + len(data)) & _SEQ_MASK
        return frame

    def _send_segment(self, nic: Any, tcb: Tcb, flags: int, data: bytes) -> Optional[bytes]:
        header = TcpHeader(
            src_port=tcb.local_port,
            dst_port=tcb.remote_port,
            seq_num=tcb.seq_num_next,
            ack_num=tcb.ack_num_expected,
            flags=int(flags),
            window_size=WINDOW_SIZE,
        )
        logger.info("Sending TCP packet (flags: 0x%02X) via IPv4...", int(flags))
        return ipv4.send(nic, tcb.remote_ip, PROTOCOL, header.pack() + data, self.arp_table)
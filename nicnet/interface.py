"""A network interface driver: buffered transmit and receive with event callbacks."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, replace
from types import TracebackType
from typing import Callable, Optional, Protocol

from nicnet.hal import IFACE_NAME, RawDevice

logger = logging.getLogger(__name__)

NIC_DEFAULT_MTU = 1500
NIC_EXTRA_SIZE = 18  # Ethernet header + CRC
NIC_DEFAULT_MAC = bytes((0x00, 0x1A, 0x2B, 0x3C, 0x4D, 0x5E))
ETH_P_IP = 0x0800

_POLL_INTERVAL = 0.001
_RX_TIMEOUT = 0.05

Callback = Callable[[Optional[bytes], int], object]


class NicError(Exception):
    """Raised when the interface cannot carry out an operation."""


class InvalidParameter(NicError, ValueError):
    """Raised when an argument is missing or out of range."""


class NotSupported(NicError):
    """Raised when nothing matches the request."""


class _Hardware(Protocol):
    mac: bytes
    mtu: int

    def send(self, data: bytes) -> int: ...

    def receive(self, size: int) -> bytes: ...

    def close(self) -> None: ...


def _open_raw_device(name: str) -> RawDevice:
    device = RawDevice.open(name)
    # A finite timeout lets the worker notice when it is asked to stop.
    device.sock.settimeout(_RX_TIMEOUT)
    return device


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, TimeoutError) or isinstance(exc.__cause__, TimeoutError)


@dataclass
class NicStats:
    """Packet and error counters of an interface."""

    tx_packets: int = 0
    rx_packets: int = 0
    tx_errors: int = 0
    rx_errors: int = 0
    collisions: int = 0

    def reset(self) -> None:
        self.tx_packets = 0
        self.rx_packets = 0
        self.tx_errors = 0
        self.rx_errors = 0
        self.collisions = 0


class NicDevice:
    """A network interface backed by a hardware handle and a worker thread.

    Frames queued with ``send_packet`` are written by the worker; frames read
    from the hardware are kept, newest first, for ``receive_packet``.
    Callbacks are invoked as ``callback(data, length)``, most recently added
    first. ``ip_address`` is a host-order integer.
    """

    def __init__(
        self,
        name: str = IFACE_NAME,
        ip_address: int = 0,
        opener: Optional[Callable[[str], _Hardware]] = None,
    ) -> None:
        self.name = name
        self.ip_address = ip_address
        self.mac_address = NIC_DEFAULT_MAC
        self.mtu = NIC_DEFAULT_MTU
        self.promiscuous_mode = False
        self.stats = NicStats()
        self._opener: Callable[[str], _Hardware] = opener or _open_raw_device
        self._hw: Optional[_Hardware] = None
        self._lock = threading.Lock()
        self._rx: deque[bytes] = deque()
        self._tx: deque[bytes] = deque()
        self._rx_callbacks: list[Callback] = []
        self._tx_callbacks: list[Callback] = []
        self._error_callbacks: list[Callback] = []
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def is_up(self) -> bool:
        return self._thread is not None

    # -- lifecycle -------------------------------------------------------

    def init(self) -> None:
        """Open the hardware, reset state and start the worker."""
        self.mtu = NIC_DEFAULT_MTU
        self.promiscuous_mode = False
        self.mac_address = NIC_DEFAULT_MAC
        self.stats.reset()
        try:
            hw = self._opener(self.name)
        except OSError as exc:
            raise NicError(f"cannot initialise {self.name!r}: {exc}") from exc
        self._hw = hw
        self.mtu = hw.mtu
        self.mac_address = bytes(hw.mac)
        with self._lock:
            self._rx.clear()
            self._tx.clear()
        self._rx_callbacks.clear()
        self._tx_callbacks.clear()
        self._error_callbacks.clear()
        try:
            self.up()
        except NicError:
            hw.close()
            self._hw = None
            raise

    def shutdown(self) -> None:
        """Stop the worker, drop buffers and callbacks and release the hardware."""
        if self.is_up:
            self.down()
        with self._lock:
            self._rx.clear()
            self._tx.clear()
        self._rx_callbacks.clear()
        self._tx_callbacks.clear()
        self._error_callbacks.clear()
        if self._hw is not None:
            self._hw.close()
            self._hw = None

    def up(self) -> None:
        """Start the worker thread."""
        self._require_hw()
        if self.is_up:
            raise NicError(f"interface {self.name!r} is already up")
        self._stop.clear()
        thread = threading.Thread(target=self._run, name=f"nic-{self.name}", daemon=True)
        try:
            thread.start()
        except RuntimeError as exc:
            raise NicError(f"cannot start worker for {self.name!r}: {exc}") from exc
        self._thread = thread

    def down(self) -> None:
        """Stop the worker thread and wait for it to finish."""
        thread = self._thread
        if thread is None:
            raise NicError(f"interface {self.name!r} is not up")
        self._stop.set()
        thread.join()
        self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("NIC worker for %s failed", self.name)
            self._stop.wait(_POLL_INTERVAL)

    def _require_hw(self) -> _Hardware:
        if self._hw is None:
            raise NicError(f"interface {self.name!r} is not initialised")
        return self._hw

    # -- processing ------------------------------------------------------

    def poll(self) -> Optional[bytes]:
        """Run one receive/transmit cycle; return the frame read, if any."""
        hw = self._require_hw()

        try:
            received = bytes(hw.receive(self.mtu + NIC_EXTRA_SIZE))
        except OSError as exc:
            received = b""
            if not _is_timeout(exc):
                with self._lock:
                    self.stats.rx_errors += 1
                self._fire(self._error_callbacks, None, 0)
        if received:
            with self._lock:
                self.stats.rx_packets += 1
                self._rx.appendleft(received)

        with self._lock:
            pending = list(self._tx)
            self._tx.clear()
        transmitted = False
        for frame in pending:
            try:
                sent = hw.send(frame)
            except OSError:
                sent = -1
            if sent == len(frame):
                with self._lock:
                    self.stats.tx_packets += 1
                transmitted = True
            else:
                with self._lock:
                    self.stats.tx_errors += 1
                self._fire(self._error_callbacks, None, 0)

        if received:
            self._fire(self._rx_callbacks, received, len(received))
        if transmitted:
            self._fire(self._tx_callbacks, None, 0)
        return received or None

    @staticmethod
    def _fire(callbacks: list[Callback], data: Optional[bytes], length: int) -> None:
        for callback in list(callbacks):
            callback(data, length)

    def send_packet(self, data: bytes) -> None:
        """Queue a frame for transmission."""
        if data is None:
            raise InvalidParameter("no data to send")
        data = bytes(data)
        limit = self.mtu + NIC_EXTRA_SIZE
        if not data or len(data) > limit:
            raise InvalidParameter(f"frame length {len(data)} outside 1..{limit}")
        with self._lock:
            self._tx.append(data)

    def receive_packet(self, max_length: Optional[int] = None) -> bytes:
        """Take the most recently received frame of at most ``max_length`` bytes."""
        if max_length is None:
            max_length = self.mtu + NIC_EXTRA_SIZE
        if max_length <= 0:
            raise InvalidParameter("buffer length must be positive")
        with self._lock:
            if not self._rx:
                raise NotSupported("no packets available")
            if len(self._rx[0]) > max_length:
                raise InvalidParameter(
                    f"frame of {len(self._rx[0])} bytes exceeds buffer of {max_length}"
                )
            return self._rx.popleft()

    # -- configuration ---------------------------------------------------

    def change_mac(self, mac: bytes) -> None:
        if mac is None or len(bytes(mac)) != 6:
            raise InvalidParameter("MAC address must be 6 bytes")
        self.mac_address = bytes(mac)

    def set_mtu(self, mtu: int) -> None:
        if mtu is None or mtu < 0:
            raise InvalidParameter(f"invalid MTU: {mtu!r}")
        self.mtu = int(mtu)

    def get_stats(self) -> NicStats:
        with self._lock:
            return replace(self.stats)

    def reset_stats(self) -> None:
        with self._lock:
            self.stats.reset()

    def set_promiscuous_mode(self, enabled: bool) -> None:
        if enabled is None:
            raise InvalidParameter("promiscuous mode flag is missing")
        self.promiscuous_mode = bool(enabled)

    # -- callbacks -------------------------------------------------------

    @staticmethod
    def _add(callbacks: list[Callback], callback: Callback) -> None:
        if callback is None:
            raise InvalidParameter("callback is missing")
        callbacks.insert(0, callback)

    @staticmethod
    def _remove(callbacks: list[Callback], callback: Callback) -> None:
        if callback is None:
            raise InvalidParameter("callback is missing")
        try:
            callbacks.remove(callback)
        except ValueError:
            raise NotSupported("callback not registered") from None

    def add_rx_callback(self, callback: Callback) -> None:
        self._add(self._rx_callbacks, callback)

    def remove_rx_callback(self, callback: Callback) -> None:
        self._remove(self._rx_callbacks, callback)

    def add_tx_callback(self, callback: Callback) -> None:
        self._add(self._tx_callbacks, callback)

    def remove_tx_callback(self, callback: Callback) -> None:
        self._remove(self._tx_callbacks, callback)

    def add_error_callback(self, callback: Callback) -> None:
        self._add(self._error_callbacks, callback)

    def remove_error_callback(self, callback: Callback) -> None:
        self._remove(self._error_callbacks, callback)

    # -- context manager -------------------------------------------------

    def __enter__(self) -> "NicDevice":
        self.init()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.shutdown()
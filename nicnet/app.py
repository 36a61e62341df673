"""Command that brings up the interface, sends a test packet and listens."""

from __future__ import annotations

import argparse
import ipaddress
import sys
from typing import Any, Callable, Optional, Sequence

from nicnet import ipv4
from nicnet.arp import ArpTable, format_ip
from nicnet.ethernet import HDR_LEN, TYPE_IP
from nicnet.hal import IFACE_NAME
from nicnet.interface import NicDevice, NicError
from nicnet.tcp import TcpLayer

DEFAULT_IP = "192.168.72.132"
DEFAULT_DESTINATION = "192.168.72.130"
DEFAULT_MESSAGE = "Test message from my own IP stack"
EXPERIMENTAL_PROTOCOL = 253


def make_rx_handler(
    nic: Any, tcp_layer: Optional[TcpLayer], arp_table: ArpTable
) -> Callable[[Optional[bytes], int], Optional[ipv4.Ipv4Header]]:
    """Return a receive callback that passes IPv4 frames to the network layer."""

    def handle(data: Optional[bytes], length: int) -> Optional[ipv4.Ipv4Header]:
        if data is None or length < HDR_LEN:
            return None
        frame = bytes(data)[:length]
        if int.from_bytes(frame[12:14], "big") != TYPE_IP:
            return None
        return ipv4.receive(nic, frame[HDR_LEN:], tcp_layer, arp_table)

    return handle


def _address(text: str) -> int:
    try:
        return int(ipaddress.IPv4Address(text))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid IPv4 address: {text!r}") from exc


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nicnet", description=__doc__)
    parser.add_argument("--interface", default=IFACE_NAME, help="network interface to use")
    parser.add_argument("--ip", type=_address, default=DEFAULT_IP, help="our IPv4 address")
    parser.add_argument(
        "--dest", type=_address, default=DEFAULT_DESTINATION, help="destination of the test packet"
    )
    parser.add_argument("--message", default=DEFAULT_MESSAGE, help="text of the test packet")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    arp_table = ArpTable()
    tcp_layer = TcpLayer(arp_table)
    nic = NicDevice(args.interface, args.ip)

    try:
        nic.init()
    except NicError as exc:
        print(f"Error: could not initialise the NIC ({exc}). Are you root?", file=sys.stderr)
        return 1

    try:
        nic.add_rx_callback(make_rx_handler(nic, tcp_layer, arp_table))

        print("--- STACK INITIALISED ---")
        print(f"Interface: {nic.name}")
        print("MAC: " + ":".join(f"{octet:02x}" for octet in nic.mac_address))
        print(f"IP:  {format_ip(nic.ip_address)}")
        print("--------------------------")

        print("[TX] Sending IPv4 packet...")
        payload = args.message.encode() + b"\x00"
        ipv4.send(nic, args.dest, EXPERIMENTAL_PROTOCOL, payload, arp_table)

        print("\nListening for IP traffic... Press Enter to quit.")
        try:
            input()
        except EOFError:
            pass
    finally:
        nic.shutdown()
    print("NIC closed. Goodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
import ipaddress

import pytest

from nicnet import icmp, ipv4
from nicnet.arp import ArpTable
from nicnet.ethernet import BROADCAST_MAC, HDR_LEN, TYPE_ARP, TYPE_IP, read_frame

LOCAL_IP = int(ipaddress.IPv4Address("192.0.2.10"))
REMOTE_IP = int(ipaddress.IPv4Address("192.0.2.20"))
LOCAL_MAC = bytes.fromhex("020000000001")
REMOTE_MAC = bytes.fromhex("020000000002")


class FakeNic:
    def __init__(self, ip, mac):
        self.ip_address = ip
        self.mac_address = mac
        self.sent = []

    def send_packet(self, data):
        self.sent.append(bytes(data))


class FakeTcp:
    def __init__(self):
        self.calls = []

    def input(self, nic, src_ip, packet):
        self.calls.append((nic, src_ip, bytes(packet)))


def _ip_packet(protocol, payload, dst=LOCAL_IP):
    sender = FakeNic(REMOTE_IP, REMOTE_MAC)
    table = ArpTable()
    table.add(dst, LOCAL_MAC)
    frame = ipv4.send(sender, dst, protocol, payload, table)
    return frame[HDR_LEN:]


def test_checksum_of_known_header():
    header = bytes.fromhex("450000730000400040110000c0a80001c0a800c7")
    assert ipv4.checksum(header) == 0xB861


def test_checksum_with_checksum_inserted_is_zero():
    header = ipv4.Ipv4Header(LOCAL_IP, REMOTE_IP, 17, 40)
    value = ipv4.checksum(header.pack())
    filled = ipv4.Ipv4Header(LOCAL_IP, REMOTE_IP, 17, 40, header_checksum=value)
    assert ipv4.checksum(filled.pack()) == 0


def test_checksum_pads_odd_length_with_zero():
    assert ipv4.checksum(b"\x12\x34\x56") == ipv4.checksum(b"\x12\x34\x56\x00")


def test_header_round_trip():
    header = ipv4.Ipv4Header(
        LOCAL_IP, REMOTE_IP, 6, 60, identification=7, time_to_live=12, header_checksum=0x1234
    )
    raw = header.pack()
    assert len(raw) == ipv4.HEADER_LEN
    assert ipv4.Ipv4Header.unpack(raw) == header


def test_header_unpack_too_short():
    with pytest.raises(ValueError):
        ipv4.Ipv4Header.unpack(b"\x45" * 10)


def test_send_unknown_destination_sends_arp_request():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    result = ipv4.send(nic, REMOTE_IP, 253, b"hello", ArpTable())
    assert result is None
    assert len(nic.sent) == 1
    frame = read_frame(nic.sent[0])
    assert frame.ethertype == TYPE_ARP
    assert frame.dest_mac == BROADCAST_MAC


def test_send_known_destination_builds_frame():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    table = ArpTable()
    table.add(REMOTE_IP, REMOTE_MAC)
    payload = b"test message"
    frame = ipv4.send(nic, REMOTE_IP, 253, payload, table)
    assert nic.sent == [frame]
    eth = read_frame(frame)
    assert eth.dest_mac == REMOTE_MAC
    assert eth.src_mac == LOCAL_MAC
    assert eth.ethertype == TYPE_IP
    header = ipv4.Ipv4Header.unpack(eth.data)
    assert header.source == LOCAL_IP
    assert header.destination == REMOTE_IP
    assert header.protocol == 253
    assert header.time_to_live == 64
    assert header.version == 4
    assert header.total_length == ipv4.HEADER_LEN + len(payload)
    assert ipv4.checksum(eth.data[: ipv4.HEADER_LEN]) == 0
    assert eth.data[ipv4.HEADER_LEN :] == payload


def test_receive_dispatches_tcp():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    tcp = FakeTcp()
    header = ipv4.receive(nic, _ip_packet(6, b"segment"), tcp, ArpTable())
    assert header.protocol == 6
    assert tcp.calls == [(nic, REMOTE_IP, b"segment")]


def test_receive_drops_other_destination():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    tcp = FakeTcp()
    packet = _ip_packet(6, b"segment", dst=REMOTE_IP + 1)
    assert ipv4.receive(nic, packet, tcp, ArpTable()) is None
    assert tcp.calls == []


def test_receive_drops_corrupted_header():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    tcp = FakeTcp()
    packet = bytearray(_ip_packet(6, b"segment"))
    packet[8] ^= 0xFF
    assert ipv4.receive(nic, bytes(packet), tcp, ArpTable()) is None
    assert tcp.calls == []


def test_receive_accepts_broadcast():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    header = ipv4.receive(nic, _ip_packet(253, b"x", dst=ipv4.BROADCAST), None, ArpTable())
    assert header.destination == ipv4.BROADCAST


def test_receive_answers_echo_request():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    table = ArpTable()
    table.add(REMOTE_IP, REMOTE_MAC)
    request = icmp.build_message(icmp.IcmpType.ECHO_REQUEST, 0, 7, 3, b"ping")
    header = ipv4.receive(nic, _ip_packet(1, request), None, table)
    assert header.protocol == 1
    assert len(nic.sent) == 1
    eth = read_frame(nic.sent[0])
    assert eth.dest_mac == REMOTE_MAC
    reply = icmp.IcmpHeader.unpack(eth.data[ipv4.HEADER_LEN :])
    assert reply.icmp_type == icmp.IcmpType.ECHO_REPLY
    assert (reply.ident, reply.seq) == (7, 3)


def test_receive_other_protocol_sends_nothing():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    tcp = FakeTcp()
    header = ipv4.receive(nic, _ip_packet(253, b"data"), tcp, ArpTable())
    assert header.protocol == 253
    assert nic.sent == []
    assert tcp.calls == []


def test_receive_short_packet_is_dropped():
    nic = FakeNic(LOCAL_IP, LOCAL_MAC)
    assert ipv4.receive(nic, b"\x45\x00\x00", None, ArpTable()) is None
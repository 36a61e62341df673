import pytest

from nicnet.arp import (
    PACKET_LEN,
    TABLE_SIZE,
    ArpEntry,
    ArpOperation,
    ArpPacket,
    ArpTable,
    format_ip,
    receive,
    send_reply,
    send_request,
)
from nicnet.ethernet import BROADCAST_MAC, HDR_LEN, TYPE_ARP, TYPE_IP, make_frame, read_frame

OUR_MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])
PEER_MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x02])
OUR_IP = 0xC0A8010A
PEER_IP = 0xC0A80114


class FakeDevice:
    def __init__(self):
        self.mac_address = OUR_MAC
        self.ip_address = OUR_IP
        self.sent = []

    def send_packet(self, data):
        self.sent.append(bytes(data))


def _mac(n):
    return bytes([0x02, 0, 0, 0, 0, n])


def test_format_ip():
    assert format_ip(OUR_IP) == "192.168.1.10"


def test_packet_length_and_fixed_prefix():
    packet = ArpPacket(ArpOperation.REQUEST, OUR_MAC, OUR_IP, bytes(6), PEER_IP)
    raw = packet.pack()
    assert len(raw) == PACKET_LEN == 28
    assert raw[:8] == b"\x00\x01\x08\x00\x06\x04\x00\x01"


def test_packet_round_trip():
    packet = ArpPacket(ArpOperation.REPLY, OUR_MAC, OUR_IP, PEER_MAC, PEER_IP)
    assert ArpPacket.unpack(packet.pack()) == packet


def test_packet_unpack_too_short():
    with pytest.raises(ValueError):
        ArpPacket.unpack(bytes(PACKET_LEN - 1))


def test_table_add_and_lookup():
    table = ArpTable()
    table.add(PEER_IP, PEER_MAC)
    assert table.lookup(PEER_IP) == PEER_MAC
    assert table.lookup(OUR_IP) is None


def test_table_keeps_insertion_order():
    table = ArpTable()
    for n in range(3):
        table.add(n, _mac(n))
    assert table.entries() == [ArpEntry(n, _mac(n)) for n in range(3)]


def test_full_table_replaces_first_slot():
    table = ArpTable()
    for n in range(TABLE_SIZE):
        table.add(n, _mac(n))
    table.add(100, _mac(100))
    entries = table.entries()
    assert len(entries) == TABLE_SIZE
    assert entries[0] == ArpEntry(100, _mac(100))
    assert table.lookup(0) is None
    assert table.lookup(1) == _mac(1)


def test_table_clear():
    table = ArpTable()
    table.add(PEER_IP, PEER_MAC)
    table.clear()
    assert table.entries() == []
    assert table.lookup(PEER_IP) is None


def test_table_rejects_bad_mac():
    with pytest.raises(ValueError):
        ArpTable().add(PEER_IP, b"\x01\x02")


def test_table_format_lists_entries():
    table = ArpTable()
    table.add(PEER_IP, PEER_MAC)
    text = table.format()
    assert "IP address        MAC address" in text
    assert "192.168.1.20     02:00:00:00:00:02" in text


def test_send_request_broadcasts_who_has():
    device = FakeDevice()
    table = ArpTable()
    frame = send_request(device, PEER_IP, table)
    assert device.sent == [frame]
    eth = read_frame(frame)
    assert eth.dest_mac == BROADCAST_MAC
    assert eth.src_mac == OUR_MAC
    assert eth.ethertype == TYPE_ARP
    packet = ArpPacket.unpack(eth.data)
    assert packet.operation == ArpOperation.REQUEST
    assert packet.sender_ip == OUR_IP
    assert packet.target_ip == PEER_IP
    assert packet.target_mac == bytes(6)
    assert table.entries() == []


def test_send_reply_addresses_target_and_records_it():
    device = FakeDevice()
    table = ArpTable()
    frame = send_reply(device, PEER_MAC, PEER_IP, table)
    eth = read_frame(frame)
    assert eth.dest_mac == PEER_MAC
    packet = ArpPacket.unpack(eth.data)
    assert packet.operation == ArpOperation.REPLY
    assert packet.target_mac == PEER_MAC
    assert table.lookup(PEER_IP) == PEER_MAC


def _arp_frame(operation, ethertype=TYPE_ARP):
    packet = ArpPacket(operation, PEER_MAC, PEER_IP, OUR_MAC, OUR_IP)
    return make_frame(OUR_MAC, PEER_MAC, ethertype, packet.pack())


def test_receive_reply_learns_sender():
    table = ArpTable()
    entry = receive(_arp_frame(ArpOperation.REPLY), table)
    assert entry == ArpEntry(PEER_IP, PEER_MAC)
    assert table.lookup(PEER_IP) == PEER_MAC


def test_receive_ignores_request():
    table = ArpTable()
    assert receive(_arp_frame(ArpOperation.REQUEST), table) is None
    assert table.entries() == []


def test_receive_ignores_other_ethertype():
    table = ArpTable()
    assert receive(_arp_frame(ArpOperation.REPLY, TYPE_IP), table) is None
    assert table.entries() == []


def test_receive_ignores_short_frame():
    table = ArpTable()
    frame = _arp_frame(ArpOperation.REPLY)[: HDR_LEN + PACKET_LEN - 1]
    assert receive(frame, table) is None
    assert table.entries() == []
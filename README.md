# nicnet

A small network stack that runs in user space on top of a raw Linux packet
socket. It has these layers:

- **Device layer**: `nicnet.hal.RawDevice` opens a raw packet socket bound to
  one interface and reads its MAC address, IPv4 address and MTU.
  `nicnet.interface.NicDevice` builds on it. It has a transmit queue, a
  receive queue, packet and error counters (`NicStats`), rx/tx/error
  callbacks and a worker thread that calls `poll()` about once a
  millisecond.
- **Ethernet**: `make_frame`, `read_frame` and `format_mac` in `nicnet.ethernet`.
- **ARP**: `ArpPacket`, a fixed-size `ArpTable` (8 slots by default; when it
  is full, the first slot is replaced), `send_request`, `send_reply` and
  `receive` in `nicnet.arp`.
- **IPv4**: `Ipv4Header`, the Internet `checksum`, `send` and `receive` in
  `nicnet.ipv4`. `send` looks up the destination MAC in the ARP table. If the
  MAC is unknown, it sends an ARP request and returns `None`. `receive` checks
  the header checksum, accepts packets for our address or for the broadcast
  address, and hands ICMP and TCP payloads on to the layer above.
- **ICMP**: `build_message`, `send` and `receive` in `nicnet.icmp`. Echo
  requests are answered with echo replies that carry the same identifier,
  sequence number and data.
- **TCP**: `TcpLayer` in `nicnet.tcp` keeps a pool of 10 connection blocks
  (`Tcb`). It offers `listen`, `close`, `send`, the passive handshake
  (SYN, SYN-ACK, ACK) and `register_callbacks(on_accept, on_data)`.
- **HTTP**: `parse_request` and `handle_request` in `nicnet.http_server`
  handle GET, HEAD, POST, PUT and DELETE against a directory. Any other
  method gets `501 Not Implemented`.

IPv4 addresses are host-order integers throughout.

## Installation

```
pip install .
```

There are no runtime dependencies. The tests need pytest:

```
pip install .[test]
```

## Running

```
sudo nicnet
```

The command opens the interface through a raw socket, so it needs root
privileges or `CAP_NET_RAW`. It then does the following:

1. Gives the stack an IPv4 address.
2. Prints the interface name, MAC and IP.
3. Sends one test IPv4 packet, using experimental protocol 253, whose payload
   is the message text followed by a NUL byte. If the destination's MAC is
   not in the ARP table, an ARP request goes out instead.
4. Passes incoming IPv4 frames to the stack until you press Enter.
5. Shuts the device down.

Options:

| Option | Default | Meaning |
| --- | --- | --- |
| `--interface` | `eth0` | interface to open |
| `--ip` | `192.168.72.132` | our IPv4 address |
| `--dest` | `192.168.72.130` | destination of the test packet |
| `--message` | `Test message from my own IP stack` | text of the test packet |

The layers report what they do through the standard `logging` module, under
loggers named after their modules.

## Library use

```python
from nicnet.ethernet import make_frame, read_frame
from nicnet.arp import ArpTable
from nicnet.http_server import parse_request, handle_request

frame = make_frame(b"\xff" * 6, bytes(6), 0x0806, b"payload")
parsed = read_frame(frame)

table = ArpTable()
table.add(0xC0A80001, bytes.fromhex("020000000001"))
print(table.format())

request = parse_request(b"GET / HTTP/1.1\r\n\r\n")
response = handle_request(request, "./www")  # bytes of the full response
```

`NicDevice` works as a context manager. Entering it calls `init()`, and
leaving it calls `shutdown()`. You can pass `NicDevice(opener=...)` a
function that returns any object with `mac`, `mtu`, `send`, `receive` and
`close`. Such an object can stand in for a raw socket.

In the HTTP handler, a request for `/` is served as `/index.html`. POST
bodies are appended to `post_log.txt` in the served directory.

## What it does not do

- The `nicnet` command passes only IPv4 frames to the stack. It does not
  answer or learn from incoming ARP traffic, so its table stays empty and
  the test packet always goes out as an ARP request. `nicnet.arp.receive`
  can be called on frames directly to learn from ARP replies.
- The command does not open a TCP listener. The HTTP handler is not
  connected to the TCP layer, so there is no running web server. The handler
  turns request bytes into response bytes for you to carry.
- The TCP layer computes and checks no checksums. It does not retransmit or
  reorder segments, does not send RST, and closes connections at once,
  without the FIN exchange. It handles segments only in the LISTEN,
  SYN_RECEIVED and ESTABLISHED states.
- IPv4 packets are neither fragmented nor reassembled, and IP options are
  not sent.
- Raw device access works only on Linux.
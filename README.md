# iptrap

A fast, stateless TCP sinkhole.

`iptrap` listens on a network interface and answers every TCP connection
attempt aimed at the local IPv4 address, on every port. It replies to a
SYN with a SYN-ACK whose sequence number is a keyed SipHash-1-3 cookie,
so no per-connection state is kept. When the client then sends a data
segment whose acknowledgement number matches the cookie (for the current
second, or for the timestamp 64 seconds earlier), the payload is recorded
and the connection is closed with an RST-ACK.

Each recorded payload is published as a compact JSON object, keys sorted,
on a ZeroMQ PUB socket bound to `tcp://0.0.0.0:9922`, and written to the
log at INFO level:

```json
{"dport":8080,"ip_src":"192.0.2.10","payload":"GET / HTTP/1.0\r\n","ts":1700000000}
```

The payload is decoded as UTF-8 (invalid bytes become replacement
characters), and every character other than printable ASCII, tab, CR and
LF is replaced with `?`.

Traffic to port 22 (SSH) and to port 9922 (the event stream) is left alone.

## Installation

```
pip install .
```

## Usage

```
iptrap <device> <local ip address> <uid> <gid>
```

For example:

```
sudo iptrap eth0 192.0.2.1 65534 65534
```

With the wrong number of arguments, or an address that is not a valid
IPv4 address, the usage line is printed and the command exits.

The device is opened first, as a raw `AF_PACKET` socket in promiscuous
mode, which needs Linux and, usually, root privileges. The process then
switches to the given group ID, drops its supplementary groups and
switches to the given user ID before it handles any traffic; a `uid` or
`gid` that is not a number is left unchanged. Only Ethernet framing is
supported (Ethernet and loopback interfaces); any other link type stops
the program with a `CaptureError`.

Make sure the kernel does not answer on the same ports itself, for
instance by dropping its own outgoing RSTs with a firewall rule.

To watch the stream, subscribe to the PUB socket with any ZeroMQ client:

```python
import zmq

sub = zmq.Context().socket(zmq.SUB)
sub.connect("tcp://127.0.0.1:9922")
sub.setsockopt(zmq.SUBSCRIBE, b"")
while True:
    print(sub.recv_json())
```

## Library

The building blocks are importable:

- `iptrap.packet`: the `EtherHeader`, `IpHeader` and `TcpHeader`
  dataclasses with `pack()` and `unpack()`; `EmptyTcpPacket`, a reply
  frame carrying an MSS option of 1460 and no data; `ip_header_checksum()`
  and `tcp_header_checksum()`; `dissect(local_ip, frame)`, which returns a
  `DissectedPacket` and raises `DissectionError` (a `ValueError`) for any
  frame that is not TCP over IPv4 addressed to `local_ip`.
- `iptrap.cookie`: `SipHashKey` (with `SipHashKey.generate()` for a random
  key), `siphash13()` and `tcp_cookie()`.
- `iptrap.escape`: `escape_default_except_lf()`.
- `iptrap.capture`: `Capture`, with `open_live()`, `data_link_type()`,
  `next_packet()`, `send_packet()` and `close()` (also usable as a context
  manager); `DataLinkType`; `CaptureError`; `switch_user()`.
- `iptrap.cli`: `build_synack()`, `build_rst()`, `ack_record()`,
  `should_bypass()` and `main()`.

## Limitations

- Capture and injection use Linux raw packet sockets only; there is no
  support for other platforms or for reading capture files.
- Only IPv4 is handled; IPv6 frames are ignored.

## Tests

```
pip install ".[test]"
pytest
```
"""The sinkhole: answers every SYN, logs the first data segment and resets."""

from __future__ import annotations

import ipaddress
import json
import logging
import queue
import sys
import threading
import time

import zmq

from iptrap.capture import Capture, CaptureError, DataLinkType, switch_user
from iptrap.cookie import SipHashKey, tcp_cookie
from iptrap.escape import escape_default_except_lf
from iptrap.packet import (
    TH_ACK,
    TH_RST,
    TH_SYN,
    DissectedPacket,
    DissectionError,
    EmptyTcpPacket,
    dissect,
    ip_header_checksum,
    tcp_header_checksum,
)

STREAM_PORT = 9922
SSH_PORT = 22

# Window, in seconds, of the previous timestamp still accepted for a cookie.
_PREVIOUS_COOKIE_AGE = 0x40
_MASK32 = (1 << 32) - 1

log = logging.getLogger("iptrap")


def _reply_to(packet: DissectedPacket) -> EmptyTcpPacket:
    reply = EmptyTcpPacket()
    reply.ether.shost = packet.ether.dhost
    reply.ether.dhost = packet.ether.shost
    reply.ip.src = packet.ip.dst
    reply.ip.dst = packet.ip.src
    reply.ip.checksum = ip_header_checksum(reply.ip)
    reply.tcp.sport = packet.tcp.dport
    reply.tcp.dport = packet.tcp.sport
    return reply


def build_synack(key: SipHashKey, packet: DissectedPacket, ts: int) -> EmptyTcpPacket:
    """Return the SYN-ACK answering ``packet``, its sequence number a cookie."""
    reply = _reply_to(packet)
    reply.tcp.flags = TH_SYN | TH_ACK
    reply.tcp.ack = (packet.tcp.seq + 1) & _MASK32
    reply.tcp.seq = tcp_cookie(
        reply.ip.src, reply.ip.dst, reply.tcp.sport, reply.tcp.dport, key, ts
    )
    reply.tcp.checksum = tcp_header_checksum(reply.ip, reply.tcp, reply.options)
    return reply


def build_rst(packet: DissectedPacket) -> EmptyTcpPacket:
    """Return the RST-ACK that closes the connection ``packet`` belongs to."""
    reply = _reply_to(packet)
    reply.tcp.ack = packet.tcp.seq
    reply.tcp.seq = packet.tcp.ack
    reply.tcp.flags = TH_RST | TH_ACK
    reply.tcp.checksum = tcp_header_checksum(reply.ip, reply.tcp, reply.options)
    return reply


def _cookie_matches(key: SipHashKey, packet: DissectedPacket, ts: int) -> bool:
    cookie = tcp_cookie(packet.ip.dst, packet.ip.src, packet.tcp.dport, packet.tcp.sport, key, ts)
    return packet.tcp.ack == (cookie + 1) & _MASK32


def ack_record(key: SipHashKey, packet: DissectedPacket, ts: int) -> str | None:
    """Return the JSON record for a data segment acknowledging one of our cookies.

    Returns None when the segment carries no data or its acknowledgement
    matches neither the cookie for ``ts`` nor the one for the previous window.
    """
    if not packet.tcp_data:
        return None
    if not _cookie_matches(key, packet, ts):
        previous = ts - _PREVIOUS_COOKIE_AGE
        if previous < 0 or not _cookie_matches(key, packet, previous):
            return None
    payload = packet.tcp_data.decode("utf-8", errors="replace")
    record = {
        "ts": ts,
        "ip_src": str(ipaddress.IPv4Address(packet.ip.src)),
        "dport": packet.tcp.dport,
        "payload": escape_default_except_lf(payload),
    }
    return json.dumps(record, sort_keys=True, separators=(",", ":"))


def should_bypass(packet: DissectedPacket) -> bool:
    """Leave the log stream and SSH ports to the real services."""
    return packet.tcp.dport in (STREAM_PORT, SSH_PORT)


def _usage() -> int:
    print("Usage: iptrap <device> <local ip address> <uid> <gid>")
    return 0


def _parse_id(text: str) -> int | None:
    try:
        value = int(text)
    except ValueError:
        return None
    return value if 0 <= value <= 0xFFFFFFFF else None


def _writer(capture: Capture, outgoing: queue.Queue) -> None:
    while True:
        reply = outgoing.get()
        try:
            capture.send_packet(reply.pack())
        except CaptureError:
            pass


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 4:
        return _usage()
    device, address, uid_text, gid_text = args
    try:
        local_ip = ipaddress.IPv4Address(address).packed
    except ValueError:
        return _usage()

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    capture = Capture.open_live(device)
    switch_user(_parse_id(uid_text), _parse_id(gid_text))
    if capture.data_link_type() is not DataLinkType.ETHERNET:
        raise CaptureError("Unsupported data link type")

    key = SipHashKey.generate()
    outgoing: queue.Queue = queue.Queue()
    threading.Thread(target=_writer, args=(capture, outgoing), daemon=True).start()

    context = zmq.Context()
    publisher = context.socket(zmq.PUB)
    publisher.setsockopt(zmq.LINGER, 1)
    try:
        publisher.bind(f"tcp://0.0.0.0:{STREAM_PORT}")
    except zmq.ZMQError:
        pass

    try:
        for frame in iter(capture.next_packet, None):
            try:
                packet = dissect(local_ip, frame)
            except DissectionError:
                continue
            if should_bypass(packet):
                continue
            ts = int(time.time())
            flags = packet.tcp.flags
            if flags == TH_SYN:
                outgoing.put(build_synack(key, packet, ts))
            elif flags & TH_ACK and not flags & TH_SYN:
                record = ack_record(key, packet, ts)
                if record is not None:
                    try:
                        publisher.send(record.encode(), zmq.NOBLOCK)
                    except zmq.ZMQError:
                        pass
                    log.info("%s", record)
                    outgoing.put(build_rst(packet))
    finally:
        publisher.close()
        context.term()
        capture.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
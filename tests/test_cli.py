import json

import pytest

from iptrap.cli import ack_record, build_rst, build_synack, main, should_bypass
from iptrap.cookie import SipHashKey, tcp_cookie
from iptrap.packet import (
    TH_ACK,
    TH_RST,
    TH_SYN,
    EtherHeader,
    IpHeader,
    TcpHeader,
    dissect,
    ip_header_checksum,
    tcp_header_checksum,
)

LOCAL_IP = bytes([10, 0, 0, 1])
REMOTE_IP = bytes([192, 168, 1, 7])
LOCAL_MAC = bytes([0x02, 0, 0, 0, 0, 0x01])
REMOTE_MAC = bytes([0x02, 0, 0, 0, 0, 0x02])
KEY = SipHashKey(0x0123456789ABCDEF, 0xFEDCBA9876543210)
TS = 1_700_000_000


def make_frame(*, dport=80, seq=1000, ack=0, flags=TH_SYN, payload=b""):
    tcp = TcpHeader(sport=40000, dport=dport, seq=seq, ack=ack, flags=flags, win=1024)
    ip = IpHeader(
        length=IpHeader.SIZE + TcpHeader.SIZE + len(payload),
        ttl=64,
        src=REMOTE_IP,
        dst=LOCAL_IP,
    )
    ether = EtherHeader(dhost=LOCAL_MAC, shost=REMOTE_MAC)
    return ether.pack() + ip.pack() + tcp.pack() + payload


def make_packet(**kwargs):
    return dissect(LOCAL_IP, make_frame(**kwargs))


def test_synack_swaps_endpoints():
    reply = build_synack(KEY, make_packet(), TS)
    assert reply.ether.dhost == REMOTE_MAC
    assert reply.ether.shost == LOCAL_MAC
    assert reply.ip.src == LOCAL_IP
    assert reply.ip.dst == REMOTE_IP
    assert (reply.tcp.sport, reply.tcp.dport) == (80, 40000)


def test_synack_flags_and_numbers():
    reply = build_synack(KEY, make_packet(seq=1000), TS)
    assert reply.tcp.flags == TH_SYN | TH_ACK
    assert reply.tcp.ack == 1001
    assert reply.tcp.seq == tcp_cookie(LOCAL_IP, REMOTE_IP, 80, 40000, KEY, TS)


def test_synack_ack_wraps():
    reply = build_synack(KEY, make_packet(seq=0xFFFFFFFF), TS)
    assert reply.tcp.ack == 0


def test_synack_checksums_verify():
    reply = build_synack(KEY, make_packet(), TS)
    assert ip_header_checksum(reply.ip) == 0
    assert tcp_header_checksum(reply.ip, reply.tcp, reply.options) == 0


def test_rst_mirrors_sequence_numbers():
    packet = make_packet(seq=5000, ack=7000, flags=TH_ACK, payload=b"hi")
    reply = build_rst(packet)
    assert reply.tcp.flags == TH_RST | TH_ACK
    assert reply.tcp.ack == 5000
    assert reply.tcp.seq == 7000
    assert reply.ip.dst == REMOTE_IP
    assert tcp_header_checksum(reply.ip, reply.tcp, reply.options) == 0


def _client_ack(ts, payload=b"GET / HTTP/1.0\r\n"):
    synack = build_synack(KEY, make_packet(), ts)
    return make_packet(
        seq=1001, ack=(synack.tcp.seq + 1) & 0xFFFFFFFF, flags=TH_ACK, payload=payload
    )


def test_ack_record_round_trip():
    record = ack_record(KEY, _client_ack(TS), TS)
    assert json.loads(record) == {
        "ts": TS,
        "ip_src": "192.168.1.7",
        "dport": 80,
        "payload": "GET / HTTP/1.0\r\n",
    }


def test_ack_record_keys_sorted():
    record = ack_record(KEY, _client_ack(TS), TS)
    assert list(json.loads(record)) == ["dport", "ip_src", "payload", "ts"]


def test_ack_record_accepts_previous_window():
    assert ack_record(KEY, _client_ack(TS), TS + 0x40) is not None
    assert ack_record(KEY, _client_ack(TS), TS + 0x80) is None


def test_ack_record_rejects_bad_cookie():
    packet = make_packet(seq=1001, ack=12345, flags=TH_ACK, payload=b"x")
    assert ack_record(KEY, packet, TS) is None


def test_ack_record_needs_data():
    assert ack_record(KEY, _client_ack(TS, payload=b""), TS) is None


def test_ack_record_escapes_payload():
    record = ack_record(KEY, _client_ack(TS, payload=b"a\x00b\xffc\n"), TS)
    assert json.loads(record)["payload"] == "a?b?c\n"


@pytest.mark.parametrize("port, expected", [(22, True), (9922, True), (80, False)])
def test_should_bypass(port, expected):
    assert should_bypass(make_packet(dport=port)) is expected


def test_main_wrong_argument_count(capsys):
    assert main(["eth0"]) == 0
    assert "Usage: iptrap" in capsys.readouterr().out


def test_main_bad_address(capsys):
    assert main(["eth0", "not-an-ip", "1000", "1000"]) == 0
    assert "Usage: iptrap" in capsys.readouterr().out
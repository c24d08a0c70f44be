"""Ethernet, IPv4 and TCP headers: encoding, checksums and dissection."""

from __future__ import annotations

import secrets
import struct
from dataclasses import dataclass, field
from typing import ClassVar

ETHERTYPE_IP = 0x0800
IPPROTO_TCP = 6
TH_SYN = 0x02
TH_RST = 0x04
TH_PUSH = 0x08
TH_ACK = 0x10


def _require_length(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes long, got {len(value)}")


def _pack(fmt: struct.Struct, *values) -> bytes:
    try:
        return fmt.pack(*values)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


def _unpack(fmt: struct.Struct, data: bytes, what: str) -> tuple:
    if len(data) < fmt.size:
        raise ValueError(f"{what} needs {fmt.size} bytes, got {len(data)}")
    return fmt.unpack_from(data)


@dataclass
class EtherHeader:
    """An Ethernet II header; the type is a host integer."""

    dhost: bytes = bytes(6)
    shost: bytes = bytes(6)
    ether_type: int = ETHERTYPE_IP

    _FORMAT: ClassVar[struct.Struct] = struct.Struct("!6s6sH")
    SIZE: ClassVar[int] = _FORMAT.size

    def pack(self) -> bytes:
        _require_length("dhost", self.dhost, 6)
        _require_length("shost", self.shost, 6)
        return _pack(self._FORMAT, bytes(self.dhost), bytes(self.shost), self.ether_type)

    @classmethod
    def unpack(cls, data: bytes) -> EtherHeader:
        return cls(*_unpack(cls._FORMAT, data, "Ethernet header"))


@dataclass
class IpHeader:
    """An IPv4 header without options; numeric fields are host integers."""

    vhl: int = (4 << 4) | 5
    tos: int = 0
    length: int = 0
    ident: int = 0
    offset: int = 0
    ttl: int = 0
    protocol: int = IPPROTO_TCP
    checksum: int = 0
    src: bytes = bytes(4)
    dst: bytes = bytes(4)

    _FORMAT: ClassVar[struct.Struct] = struct.Struct("!BBHHHBBH4s4s")
    SIZE: ClassVar[int] = _FORMAT.size

    @property
    def version(self) -> int:
        return (self.vhl >> 4) & 0xF

    @property
    def header_length(self) -> int:
        """Header length in bytes, as announced by the IHL field."""
        return (self.vhl & 0xF) * 4

    def pack(self) -> bytes:
        _require_length("src", self.src, 4)
        _require_length("dst", self.dst, 4)
        return _pack(
            self._FORMAT,
            self.vhl,
            self.tos,
            self.length,
            self.ident,
            self.offset,
            self.ttl,
            self.protocol,
            self.checksum,
            bytes(self.src),
            bytes(self.dst),
        )

    @classmethod
    def unpack(cls, data: bytes) -> IpHeader:
        return cls(*_unpack(cls._FORMAT, data, "IPv4 header"))


@dataclass
class TcpHeader:
    """A TCP header without options; numeric fields are host integers."""

    sport: int = 0
    dport: int = 0
    seq: int = 0
    ack: int = 0
    off_x2: int = 5 << 4
    flags: int = 0
    win: int = 0
    checksum: int = 0
    urp: int = 0

    _FORMAT: ClassVar[struct.Struct] = struct.Struct("!HHIIBBHHH")
    SIZE: ClassVar[int] = _FORMAT.size

    @property
    def data_offset(self) -> int:
        """Header length in bytes, options included."""
        return ((self.off_x2 >> 4) & 0xF) * 4

    def pack(self) -> bytes:
        return _pack(
            self._FORMAT,
            self.sport,
            self.dport,
            self.seq,
            self.ack,
            self.off_x2,
            self.flags,
            self.win,
            self.checksum,
            self.urp,
        )

    @classmethod
    def unpack(cls, data: bytes) -> TcpHeader:
        return cls(*_unpack(cls._FORMAT, data, "TCP header"))


# A single MSS option announcing 1460 bytes.
_TCP_OPTIONS = bytes([0x02, 0x04, 0x05, 0xB4])


def _empty_ip_header() -> IpHeader:
    return IpHeader(
        vhl=(4 << 4) | (IpHeader.SIZE // 4),
        tos=0,
        length=IpHeader.SIZE + TcpHeader.SIZE + len(_TCP_OPTIONS),
        ident=secrets.randbits(16),
        offset=0,
        ttl=42,
        protocol=IPPROTO_TCP,
        checksum=0,
    )


def _empty_tcp_header() -> TcpHeader:
    return TcpHeader(off_x2=((TcpHeader.SIZE + len(_TCP_OPTIONS)) // 4) << 4, win=65535)


@dataclass
class EmptyTcpPacket:
    """An Ethernet frame carrying a TCP segment with an MSS option and no data."""

    ether: EtherHeader = field(default_factory=EtherHeader)
    ip: IpHeader = field(default_factory=_empty_ip_header)
    tcp: TcpHeader = field(default_factory=_empty_tcp_header)
    options: bytes = _TCP_OPTIONS

    def pack(self) -> bytes:
        return self.ether.pack() + self.ip.pack() + self.tcp.pack() + bytes(self.options)


def _fold(data: bytes, initial: int = 0) -> int:
    """Sum big-endian 16-bit words and fold the carries into 16 bits."""
    total = initial + sum(word for (word,) in struct.iter_unpack("!H", data))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return total


def ip_header_checksum(iphdr: IpHeader) -> int:
    """Return the checksum of ``iphdr`` as it stands, checksum field included."""
    return ~_fold(iphdr.pack()) & 0xFFFF


def tcp_header_checksum(iphdr: IpHeader, tcphdr: TcpHeader, options: bytes = b"") -> int:
    """Return the checksum of a TCP header and its options, without payload.

    The pseudo-header counts the header length given by the data offset, and
    the sum covers exactly that many bytes of header and ``options``.
    """
    length = tcphdr.data_offset
    if length < TcpHeader.SIZE:
        raise ValueError("TCP data offset is shorter than the TCP header")
    segment = tcphdr.pack() + bytes(options)
    if len(segment) < length:
        raise ValueError("TCP data offset covers more bytes than were supplied")
    _require_length("src", iphdr.src, 4)
    _require_length("dst", iphdr.dst, 4)
    pseudo = length + iphdr.protocol
    pseudo += sum(word for (word,) in struct.iter_unpack("!H", bytes(iphdr.src) + bytes(iphdr.dst)))
    return ~_fold(segment[:length], pseudo) & 0xFFFF


class DissectionError(ValueError):
    """A frame that is not a well-formed TCP/IPv4 packet for the local address."""


@dataclass(frozen=True)
class DissectedPacket:
    """The headers and TCP payload found in a captured Ethernet frame."""

    frame: bytes
    ether: EtherHeader
    ip: IpHeader
    tcp: TcpHeader
    tcp_data: bytes


def dissect(local_ip: bytes, frame: bytes) -> DissectedPacket:
    """Split ``frame`` into its headers and TCP payload.

    Raises DissectionError unless the frame holds a TCP segment over IPv4
    addressed to ``local_ip``.
    """
    frame = bytes(frame)
    local_ip = bytes(local_ip)

    if len(frame) < EtherHeader.SIZE:
        raise DissectionError("Short ethernet frame")
    ether = EtherHeader.unpack(frame)
    if ether.ether_type != ETHERTYPE_IP:
        raise DissectionError("Unsupported type of ethernet frame")

    ip_offset = EtherHeader.SIZE
    available = len(frame) - ip_offset
    if available < IpHeader.SIZE:
        raise DissectionError("Short IP packet")
    ip = IpHeader.unpack(frame[ip_offset:])
    ip_header_len = ip.header_length
    if ip_header_len < IpHeader.SIZE or available < ip_header_len:
        raise DissectionError("Short IP packet")
    if ip.version != 4:
        raise DissectionError("Unsupported IP version")
    if ip.protocol != IPPROTO_TCP:
        raise DissectionError("Unsupported IP protocol")
    if ip.dst != local_ip:
        raise DissectionError("Packet destination is not the local IP")

    tcp_offset = ip_offset + ip_header_len
    if len(frame) - tcp_offset < TcpHeader.SIZE:
        raise DissectionError("Short TCP packet")
    tcp = TcpHeader.unpack(frame[tcp_offset:])
    tcp_header_len = tcp.data_offset
    if tcp_header_len < TcpHeader.SIZE:
        raise DissectionError("Short TCP data offset")
    if len(frame) - tcp_offset < tcp_header_len:
        raise DissectionError("Truncated TCP packet - no data")

    data_offset = tcp_offset + tcp_header_len
    captured = len(frame) - data_offset
    announced = ip.length - ip_header_len - tcp_header_len
    # A total length too small to hold the headers leaves the capture as the only bound.
    data_len = captured if announced < 0 else min(announced, captured)
    return DissectedPacket(
        frame=frame,
        ether=ether,
        ip=ip,
        tcp=tcp,
        tcp_data=frame[data_offset : data_offset + data_len],
    )
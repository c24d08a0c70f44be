"""Live packet capture and injection on a network interface, and privilege dropping."""

from __future__ import annotations

import enum
import os
import socket
import struct

SNAPLEN = 65536
READ_TIMEOUT = 0.5

ETH_P_ALL = 0x0003
SOL_PACKET = 263
PACKET_ADD_MEMBERSHIP = 1
PACKET_MR_PROMISC = 1

ARPHRD_ETHER = 1
ARPHRD_LOOPBACK = 772


class CaptureError(OSError):
    """A capture device could not be opened, read or written."""


class DataLinkType(enum.IntEnum):
    NULL = 0
    ETHERNET = 1


# Link-layer framing delivered by a raw packet socket for each hardware type.
_LINK_TYPES = {
    ARPHRD_ETHER: DataLinkType.ETHERNET,
    ARPHRD_LOOPBACK: DataLinkType.ETHERNET,
}


class Capture:
    """A raw packet socket that reads and writes whole link-layer frames."""

    def __init__(self, sock: socket.socket, hardware_type: int = ARPHRD_ETHER) -> None:
        self._sock = sock
        self.hardware_type = hardware_type
        self._sock.settimeout(READ_TIMEOUT)

    @classmethod
    def open_live(cls, device: str) -> Capture:
        """Open ``device`` in promiscuous mode for capture and injection."""
        family = getattr(socket, "AF_PACKET", None)
        if family is None:
            raise CaptureError("raw packet sockets are not available on this platform")
        try:
            sock = socket.socket(family, socket.SOCK_RAW, socket.htons(ETH_P_ALL))
        except OSError as exc:
            raise CaptureError(f"{device}: {exc.strerror or exc}") from exc
        try:
            sock.bind((device, ETH_P_ALL))
            membership = struct.pack(
                "iHH8s", socket.if_nametoindex(device), PACKET_MR_PROMISC, 0, bytes(8)
            )
            sock.setsockopt(SOL_PACKET, PACKET_ADD_MEMBERSHIP, membership)
            hardware_type = sock.getsockname()[3]
        except OSError as exc:
            sock.close()
            raise CaptureError(f"{device}: {exc.strerror or exc}") from exc
        return cls(sock, hardware_type)

    def data_link_type(self) -> DataLinkType:
        """Return the framing of captured frames; unknown framings are an error."""
        try:
            return _LINK_TYPES[self.hardware_type]
        except KeyError:
            raise CaptureError("Unsupported data link type") from None

    def next_packet(self) -> bytes | None:
        """Wait for the next frame and return it, or None once reading fails."""
        while True:
            try:
                return self._sock.recv(SNAPLEN)
            except TimeoutError:
                continue
            except OSError:
                return None

    def send_packet(self, data: bytes) -> None:
        """Inject one whole frame."""
        frame = bytes(data)
        try:
            sent = self._sock.send(frame)
        except OSError as exc:
            raise CaptureError("Unable to send packet") from exc
        if sent != len(frame):
            raise CaptureError("Unable to send packet")

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> Capture:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def switch_user(uid: int | None, gid: int | None) -> None:
    """Switch to ``gid`` and then ``uid``, dropping supplementary groups with the user."""
    if gid is not None:
        try:
            os.setgid(gid)
        except OSError as exc:
            raise OSError(exc.errno, "setgid()") from exc
    if uid is not None:
        try:
            os.setgroups([])
        except OSError:
            pass
        try:
            os.setuid(uid)
        except OSError as exc:
            raise OSError(exc.errno, "setuid()") from exc
"""Writing libpcap capture files and wrapping payloads in link/IP headers.

NGAP traffic is written as SCTP over IPv4 in Linux "cooked" frames and
GTP-U traffic as UDP over IPv4 in Ethernet frames, so packet analysers can
dissect both.
"""

from __future__ import annotations

import ipaddress
import struct
import threading
import time
from typing import Union

LINK_TYPE_ETHERNET = 1
LINK_TYPE_LINUX_SLL = 113

PCAP_MAGIC = 0xA1B2C3D4
PCAP_VERSION_MAJOR = 2
PCAP_VERSION_MINOR = 4
PCAP_SNAPLEN = 65535

NGAP_PPID = 60
IP_PROTO_SCTP = 132
IP_PROTO_UDP = 17

AddressLike = Union[str, bytes, int, ipaddress.IPv4Address]


class PcapWriter:
    """Appends timestamped packets to a libpcap file. Safe to share between threads."""

    def __init__(self, path, link_type: int) -> None:
        self._lock = threading.Lock()
        self._link_type = link_type
        self._count = 0
        self._file = open(path, "wb")
        try:
            self._file.write(
                struct.pack(
                    "<IHHIIII",
                    PCAP_MAGIC,
                    PCAP_VERSION_MAJOR,
                    PCAP_VERSION_MINOR,
                    0,
                    0,
                    PCAP_SNAPLEN,
                    link_type,
                )
            )
        except OSError:
            self._file.close()
            raise
        print(f"[PCAP] Writing to {path} (link type {link_type})")

    @property
    def link_type(self) -> int:
        return self._link_type

    def write_packet(self, data: bytes) -> None:
        """Append one frame, starting at the link layer, stamped with the current time."""
        now = time.time_ns()
        sec = (now // 1_000_000_000) & 0xFFFFFFFF
        usec = (now % 1_000_000_000) // 1000
        length = len(data)
        record = struct.pack("<IIII", sec, usec, length, length)
        with self._lock:
            self._file.write(record)
            self._file.write(data)
            self._count += 1

    def close(self) -> None:
        """Flush and close the file; further calls do nothing."""
        with self._lock:
            if self._file.closed:
                return
            print(f"[PCAP] Closed ({self._count} packets written)")
            self._file.close()

    def count(self) -> int:
        """Number of packets written so far."""
        with self._lock:
            return self._count

    def __enter__(self) -> "PcapWriter":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _ipv4_bytes(address: AddressLike) -> bytes:
    try:
        return ipaddress.IPv4Address(address).packed
    except (ipaddress.AddressValueError, ValueError, TypeError) as exc:
        raise ValueError(f"invalid IPv4 address: {address!r}") from exc


def _ipv4_header(src: AddressLike, dst: AddressLike, proto: int, payload_len: int) -> bytes:
    """Minimal IPv4 header with DF set; the checksum is left zero."""
    return struct.pack(
        "!BBHHHBBH4s4s",
        0x45,
        0x00,
        20 + payload_len,
        0x0001,
        0x4000,
        64,
        proto,
        0,
        _ipv4_bytes(src),
        _ipv4_bytes(dst),
    )


def build_sctp_frame(
    src_ip: AddressLike, dst_ip: AddressLike, src_port: int, dst_port: int, payload: bytes
) -> bytes:
    """Wrap an NGAP payload in Linux SLL, IPv4, SCTP and a single DATA chunk."""
    sll = struct.pack("!HHH8sH", 4, 0, 0, b"", 0x0800)
    sctp = struct.pack("!HHII", src_port, dst_port, 1, 0)
    chunk = struct.pack("!BBHIHHI", 0x00, 0x03, 16 + len(payload), 1, 1, 0, NGAP_PPID)
    sctp_body = chunk + bytes(payload)
    ip = _ipv4_header(src_ip, dst_ip, IP_PROTO_SCTP, len(sctp) + len(sctp_body))
    return sll + ip + sctp + sctp_body


def build_udp_frame(
    src_ip: AddressLike, dst_ip: AddressLike, src_port: int, dst_port: int, payload: bytes
) -> bytes:
    """Wrap a GTP-U payload in Ethernet, IPv4 and UDP headers."""
    eth = bytes([0, 0, 0, 0, 0, 2, 0, 0, 0, 0, 0, 1, 0x08, 0x00])
    udp_len = 8 + len(payload)
    udp = struct.pack("!HHHH", src_port, dst_port, udp_len, 0)
    ip = _ipv4_header(src_ip, dst_ip, IP_PROTO_UDP, udp_len)
    return eth + ip + udp + bytes(payload)
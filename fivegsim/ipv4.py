"""IPv4 and ICMP packet helpers used by the user-plane functions."""

from __future__ import annotations

import ipaddress
import struct
from typing import Optional, Tuple, Union

IPV4_HEADER_LEN = 20
ICMP_HEADER_LEN = 8

PROTO_ICMP = 1
PROTO_TCP = 6
PROTO_UDP = 17

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8

_DEFAULT_TTL = 64

_PROTOCOL_NAMES = {
    PROTO_ICMP: "ICMP",
    PROTO_TCP: "TCP",
    PROTO_UDP: "UDP",
}

AddressLike = Union[str, bytes, int, ipaddress.IPv4Address]


def _ipv4_bytes(address: AddressLike) -> bytes:
    """Return the four network-order bytes of an IPv4 address."""
    try:
        return ipaddress.IPv4Address(address).packed
    except (ipaddress.AddressValueError, ValueError, TypeError) as exc:
        raise ValueError(f"invalid IPv4 address: {address!r}") from exc


def _check_u16(name: str, value: int) -> None:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"{name} must fit in 16 bits, got {value}")


def internet_checksum(data: bytes) -> int:
    """Compute the RFC 1071 Internet checksum of ``data``."""
    if len(data) % 2:
        data = bytes(data) + b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def build_icmp_echo_request(
    src_ip: AddressLike, dst_ip: AddressLike, identifier: int, seq: int
) -> bytes:
    """Build an IPv4 ICMP echo request from ``src_ip`` to ``dst_ip`` (RFC 792)."""
    src = _ipv4_bytes(src_ip)
    dst = _ipv4_bytes(dst_ip)
    _check_u16("identifier", identifier)
    _check_u16("seq", seq)

    icmp = bytearray(struct.pack("!BBHHH", ICMP_ECHO_REQUEST, 0, 0, identifier, seq))
    struct.pack_into("!H", icmp, 2, internet_checksum(icmp))

    total_len = IPV4_HEADER_LEN + ICMP_HEADER_LEN
    header = bytearray(
        struct.pack(
            "!BBHHHBBH4s4s",
            0x45, 0, total_len, 0, 0, _DEFAULT_TTL, PROTO_ICMP, 0, src, dst,
        )
    )
    struct.pack_into("!H", header, 10, internet_checksum(header))
    return bytes(header + icmp)


def build_icmp_echo_reply(request: bytes) -> bytes:
    """Turn an ICMP echo request into the matching echo reply.

    Source and destination are swapped, the ICMP type becomes 0 and both
    checksums are recomputed.
    """
    if len(request) < IPV4_HEADER_LEN + ICMP_HEADER_LEN:
        raise ValueError(f"packet too short for an ICMP echo: {len(request)} bytes")

    reply = bytearray(request)
    reply[12:16] = request[16:20]
    reply[16:20] = request[12:16]
    reply[20] = ICMP_ECHO_REPLY

    reply[22:24] = b"\x00\x00"
    struct.pack_into("!H", reply, 22, internet_checksum(reply[20:]))

    reply[10:12] = b"\x00\x00"
    struct.pack_into("!H", reply, 10, internet_checksum(reply[:IPV4_HEADER_LEN]))
    return bytes(reply)


def is_icmp_echo_reply(pkt: bytes, expected_dst: Optional[AddressLike] = None) -> bool:
    """Tell whether ``pkt`` is an IPv4 ICMP echo reply, optionally to ``expected_dst``."""
    if (
        len(pkt) < IPV4_HEADER_LEN + ICMP_HEADER_LEN
        or pkt[0] >> 4 != 4
        or pkt[9] != PROTO_ICMP
    ):
        return False
    if expected_dst is not None:
        try:
            wanted = _ipv4_bytes(expected_dst)
        except ValueError:
            return False
        if bytes(pkt[16:20]) != wanted:
            return False
    return pkt[20] == ICMP_ECHO_REPLY


def protocol_name(proto: int) -> str:
    """Short name of an IPv4 protocol number."""
    return _PROTOCOL_NAMES.get(proto, "IPv4")


def summarize_ipv4(pkt: bytes) -> Optional[Tuple[str, str, int]]:
    """Return ``(src, dst, protocol)`` of an IPv4 packet, or None if it is not one."""
    if len(pkt) < IPV4_HEADER_LEN or pkt[0] >> 4 != 4:
        return None
    src = str(ipaddress.IPv4Address(bytes(pkt[12:16])))
    dst = str(ipaddress.IPv4Address(bytes(pkt[16:20])))
    return src, dst, pkt[9]


def icmp_type_name(pkt: bytes) -> str:
    """Describe the ICMP type of ``pkt``; empty when it is not ICMP."""
    if len(pkt) < IPV4_HEADER_LEN + 1 or pkt[9] != PROTO_ICMP:
        return ""
    icmp_type = pkt[20]
    if icmp_type == ICMP_ECHO_REQUEST:
        return "ICMP echo request"
    if icmp_type == ICMP_ECHO_REPLY:
        return "ICMP echo reply"
    return "ICMP"
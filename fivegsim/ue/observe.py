"""Observatory events for user-plane packets crossing the UE's GTP-U tunnel."""

from __future__ import annotations

from typing import Optional

from fivegsim import obspub
from fivegsim.ipv4 import icmp_type_name, protocol_name, summarize_ipv4
from fivegsim.seqdiag import Node

_SPEC_REF = "TS 29.281 §5.1"


def describe_packet(pkt: bytes) -> Optional[str]:
    """One-line summary ``src → dst (kind) N bytes`` of an IPv4 packet, or None."""
    summary = summarize_ipv4(pkt)
    if summary is None:
        return None
    src, dst, proto = summary
    detail = icmp_type_name(pkt) or protocol_name(proto)
    return f"{src} → {dst} ({detail}) {len(pkt)} bytes"


def _emit(from_node, to_node, direction: str, supi: str, teid: int, pkt: bytes) -> None:
    summary = describe_packet(pkt)
    if summary is None or not obspub.enabled():
        return
    obspub.emit_packet(
        from_node,
        to_node,
        direction,
        summary,
        _SPEC_REF,
        {"supi": supi, "teid": f"0x{teid:08X}"},
    )


def emit_uplink_obs(ue_ip: str, supi: str, teid: int, pkt: bytes) -> None:
    """Publish an uplink packet sent from the UE toward the gNB."""
    _emit(Node.UE, Node.GNB, "ul", supi, teid, pkt)


def emit_downlink_obs(supi: str, teid: int, pkt: bytes) -> None:
    """Publish a downlink packet delivered from the gNB to the UE."""
    _emit(Node.GNB, Node.UE, "dl", supi, teid, pkt)
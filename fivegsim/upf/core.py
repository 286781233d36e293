"""User plane function: per-session GTP-U handling, N6 forwarding and the PFCP-sim API.

The UPF does not own a GTP-U socket itself. It is given two callables:

* ``send_gpdu(addr, teid, packet)`` sends a G-PDU toward a gNB, where
  ``addr`` is a ``(host, port)`` tuple;
* ``n6_inject(packet)`` hands a decapsulated packet to the data network.
  When it is None the UPF answers ICMP echo requests itself.

Routes of the PFCP-sim API:
    POST   /pfcp-sim/v1/sessions          register or update a session
    DELETE /pfcp-sim/v1/sessions/{teid}   release a session
"""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Tuple
from urllib.parse import urlsplit

from fivegsim import obspub
from fivegsim.ipv4 import (
    ICMP_ECHO_REQUEST,
    IPV4_HEADER_LEN,
    PROTO_ICMP,
    build_icmp_echo_reply,
    icmp_type_name,
    protocol_name,
    summarize_ipv4,
)
from fivegsim.seqdiag import Node
from fivegsim.upf.config import Config

SESSIONS_PATH = "/pfcp-sim/v1/sessions"

Address = Tuple[str, int]
SendGPDU = Callable[[Address, int, bytes], Any]
N6Inject = Callable[[bytes], Any]

_JSON = "application/json"
_TEXT = "text/plain; charset=utf-8"
_UINT32_MAX = 0xFFFFFFFF
_LOG_PROTOCOLS = {1: "ICMP", 6: "TCP", 17: "UDP"}
_LEADING_UINT = re.compile(r"\s*\+?(\d+)")


def byte_size(n: int) -> str:
    """``"1 byte"`` or ``"<n> bytes"``."""
    return "1 byte" if n == 1 else f"{n} bytes"


def teid_hex(teid: int) -> str:
    """A TEID as ``0x`` followed by eight upper-case hex digits."""
    return f"0x{teid & _UINT32_MAX:08X}"


def _uint32_field(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"field {key!r} out of range for 32-bit unsigned: {value}")
    return value


def _str_field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _leading_uint(text: str) -> int:
    """Leading decimal number of ``text``; 0 when there is none or it overflows 32 bits."""
    match = _LEADING_UINT.match(text)
    if match is None:
        return 0
    value = int(match.group(1))
    return value if value <= _UINT32_MAX else 0


def _split_host_port(address: str) -> Optional[Address]:
    """Split ``host:port`` (``[v6]:port`` allowed); None when there is no port part."""
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or not address[end + 1:].startswith(":"):
            return None
        host, port_text = address[1:end], address[end + 2:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep or ":" in host:
            return None
    return host, _leading_uint(port_text)


def _format_addr(addr: Optional[Address]) -> str:
    if addr is None:
        return "<nil>"
    host, port = addr
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


@dataclass
class SessionRequest:
    """Session announcement sent by the SMF (or the gNB) to the UPF."""

    ul_teid: int = 0
    dl_teid: int = 0
    gnb_address: str = ""
    ue_ip_address: str = ""

    @classmethod
    def from_dict(cls, data) -> "SessionRequest":
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return cls(
            ul_teid=_uint32_field(data, "ulTeid"),
            dl_teid=_uint32_field(data, "dlTeid"),
            gnb_address=_str_field(data, "gnbAddress"),
            ue_ip_address=_str_field(data, "ueIpAddress"),
        )


@dataclass
class UPFSession:
    """User-plane state of one UE session."""

    teid: int
    gnb_addr: Optional[Address] = None
    gn_teid: int = 0
    ue_ip_address: str = ""


class _Reply(NamedTuple):
    status: int
    headers: Dict[str, str]
    body: bytes


def _emit_packet_obs(to_node: Node, direction: str, spec_ref: str,
                     fields: Optional[dict], pkt: bytes) -> None:
    summary = summarize_ipv4(pkt)
    if summary is None or not obspub.enabled():
        return
    src, dst, proto = summary
    detail = icmp_type_name(pkt) or protocol_name(proto)
    obspub.emit_packet(
        Node.UPF, to_node, direction,
        f"{src} → {dst} ({detail}) {byte_size(len(pkt))}",
        spec_ref, fields,
    )


def _emit_uplink_obs(sess: UPFSession, pkt: bytes) -> None:
    _emit_packet_obs(Node.GNB, "ul", "TS 29.281 §5.1",
                     {"ue_ip": sess.ue_ip_address, "teid": teid_hex(sess.teid)}, pkt)


def _emit_inject_obs(pkt: bytes) -> None:
    _emit_packet_obs(Node.UE, "n6_inject", "TS 23.501 §5.8.2.11.3", None, pkt)


def _emit_downlink_obs(sess: UPFSession, pkt: bytes) -> None:
    _emit_packet_obs(Node.GNB, "dl", "TS 29.281 §5.1",
                     {"ue_ip": sess.ue_ip_address, "teid": teid_hex(sess.gn_teid)}, pkt)


class UPF:
    """User plane function: maps TEIDs and UE addresses to sessions and moves packets."""

    def __init__(self, config: Config, send_gpdu: SendGPDU,
                 n6_inject: Optional[N6Inject] = None) -> None:
        self.config = config
        self._send_gpdu = send_gpdu
        self._n6_inject = n6_inject
        self.virtual_n6 = n6_inject is None
        self._lock = threading.Lock()
        self._sessions: Dict[int, UPFSession] = {}
        self._sessions_by_ue_ip: Dict[str, UPFSession] = {}

    def register_session(self, sess: UPFSession) -> None:
        """Start handling G-PDUs for ``sess.teid``."""
        with self._lock:
            self._sessions[sess.teid] = sess
            if sess.ue_ip_address:
                self._sessions_by_ue_ip[sess.ue_ip_address] = sess
        print(
            f"[UPF] Session registered: TEID=0x{sess.teid:08X} "
            f"UE={sess.ue_ip_address} gNB={_format_addr(sess.gnb_addr)}"
        )

    def deregister_session(self, teid: int) -> Optional[UPFSession]:
        """Stop handling ``teid``; returns the removed session, if there was one."""
        with self._lock:
            sess = self._sessions.pop(teid, None)
            if sess is not None and sess.ue_ip_address:
                self._sessions_by_ue_ip.pop(sess.ue_ip_address, None)
        return sess

    def session(self, teid: int) -> Optional[UPFSession]:
        """Session for an uplink TEID, or None."""
        with self._lock:
            return self._sessions.get(teid)

    def session_by_ue_ip(self, ue_ip: str) -> Optional[UPFSession]:
        """Session owning a UE address, or None."""
        with self._lock:
            return self._sessions_by_ue_ip.get(ue_ip)

    def handle_gpdu(self, teid: int, src: Optional[Address], pkt: bytes) -> bool:
        """Dispatch a decapsulated G-PDU to its session; False when the TEID is unknown."""
        sess = self.session(teid)
        if sess is None:
            print(f"[UPF] No session for TEID=0x{teid:08X} — dropped")
            return False
        return self.handle_uplink_packet(sess, src, pkt)

    def handle_uplink_packet(self, sess: UPFSession, src: Optional[Address],
                             pkt: bytes) -> bool:
        """Forward an uplink packet to N6, or answer an ICMP echo without N6.

        Returns True when the packet was injected or an echo reply was sent.
        """
        if len(pkt) < IPV4_HEADER_LEN:
            print(f"[UPF] Uplink packet too short: {len(pkt)} bytes")
            return False

        src_ip = ".".join(str(b) for b in pkt[12:16])
        dst_ip = ".".join(str(b) for b in pkt[16:20])
        protocol = pkt[9]
        name = _LOG_PROTOCOLS.get(protocol, f"proto={protocol}")
        print(
            f"[UPF] ▲ Uplink: {src_ip} → {dst_ip} ({name}) {len(pkt)} bytes "
            f"via TEID=0x{sess.teid:08X}"
        )
        _emit_uplink_obs(sess, pkt)

        if self._n6_inject is not None:
            try:
                self._n6_inject(bytes(pkt))
            except OSError as exc:
                print(f"[UPF] N6 inject error: {exc}")
                return False
            _emit_inject_obs(pkt)
            return True

        if protocol != PROTO_ICMP or len(pkt) < 28 or pkt[20] != ICMP_ECHO_REQUEST:
            return False
        label = "virtual N6" if self.virtual_n6 else "no N6"
        print(f"[UPF] ({label}) ICMP echo reply to {src_ip}")
        reply = build_icmp_echo_reply(bytes(pkt))
        if sess.gnb_addr is None:
            return False
        _emit_downlink_obs(sess, reply)
        try:
            self._send_gpdu(sess.gnb_addr, sess.gn_teid, reply)
        except OSError as exc:
            print(f"[UPF] Failed to send downlink: {exc}")
            return False
        print(
            f"[UPF] ▼ Downlink: {dst_ip} → {src_ip} (ICMP reply) "
            f"via TEID=0x{sess.gn_teid:08X}"
        )
        return True

    def handle_n6_packet(self, pkt: bytes) -> bool:
        """Send a packet from the data network to the gNB of the session owning its destination."""
        summary = summarize_ipv4(pkt)
        if summary is None:
            return False
        src_ip, dst_ip, _ = summary
        sess = self.session_by_ue_ip(dst_ip)
        if sess is None:
            print(f"[UPF] N6 drop: no session for dst {dst_ip} (src={src_ip})")
            return False
        if sess.gnb_addr is None:
            print(f"[UPF] N6 drop: session for {dst_ip} has no gNB addr yet")
            return False
        try:
            self._send_gpdu(sess.gnb_addr, sess.gn_teid, bytes(pkt))
        except OSError as exc:
            print(f"[UPF] N6→gNB send error: {exc}")
            return False
        print(
            f"[UPF] ▼ Downlink: {src_ip} → {dst_ip} ({len(pkt)} bytes) "
            f"via DL-TEID=0x{sess.gn_teid:08X}"
        )
        _emit_downlink_obs(sess, pkt)
        return True

    def handle_pfcp_request(self, method: str, path: str,
                            body: Optional[bytes] = None) -> _Reply:
        """Serve one PFCP-sim request; returns ``(status, headers, body)``."""
        method = method.upper()
        path = urlsplit(path).path
        if path == "/health":
            return _Reply(200, {"Content-Type": _TEXT}, b"ok")
        if path == SESSIONS_PATH:
            if method != "POST":
                return _Reply(405, {}, b"")
            return self._create_session(body or b"")
        if path.startswith(SESSIONS_PATH + "/"):
            if method != "DELETE":
                return _Reply(405, {}, b"")
            teid = _leading_uint(path[len(SESSIONS_PATH) + 1:])
            self.deregister_session(teid)
            print(f"[UPF] PFCP-sim: session released TEID=0x{teid:08X}")
            return _Reply(204, {}, b"")
        return _Reply(404, {"Content-Type": _TEXT}, b"404 page not found\n")

    def _create_session(self, body: bytes) -> _Reply:
        try:
            request = SessionRequest.from_dict(json.loads(body))
        except ValueError as exc:
            return _Reply(400, {"Content-Type": _TEXT}, f"{exc}\n".encode("utf-8"))

        gnb_addr = _split_host_port(request.gnb_address) if request.gnb_address else None

        updated = False
        with self._lock:
            existing = self._sessions.get(request.ul_teid)
            if existing is not None and request.gnb_address:
                existing.gnb_addr = gnb_addr
                existing.gn_teid = request.dl_teid
                if request.ue_ip_address and existing.ue_ip_address != request.ue_ip_address:
                    self._sessions_by_ue_ip.pop(existing.ue_ip_address, None)
                    existing.ue_ip_address = request.ue_ip_address
                    self._sessions_by_ue_ip[request.ue_ip_address] = existing
                updated = True

        if updated:
            print(
                f"[UPF] PFCP-sim: session updated UL-TEID=0x{request.ul_teid:08X} "
                f"DL-TEID=0x{request.dl_teid:08X} gNB={request.gnb_address}"
            )
        else:
            self.register_session(UPFSession(
                teid=request.ul_teid,
                gnb_addr=gnb_addr,
                gn_teid=request.dl_teid,
                ue_ip_address=request.ue_ip_address,
            ))
            print(
                f"[UPF] PFCP-sim: session registered UL-TEID=0x{request.ul_teid:08X} "
                f"UE={request.ue_ip_address} gNB={request.gnb_address}"
            )
            obspub.procedure_with_detail(
                Node.UPF, Node.SMF, "PFCP Session Est. Resp.",
                "TEID allocated: " + teid_hex(request.ul_teid),
                "TS 29.244 §6.3.3",
                {"ue_ip": request.ue_ip_address, "ul_teid": teid_hex(request.ul_teid)},
            )

        body_out = (json.dumps({"status": "ok"}) + "\n").encode("utf-8")
        return _Reply(201, {"Content-Type": _JSON}, body_out)

    def make_pfcp_server(self, host: str, port: int) -> ThreadingHTTPServer:
        """Build (but do not start) an HTTP server for the PFCP-sim API."""
        upf = self

        class _Handler(BaseHTTPRequestHandler):
            def _dispatch(self) -> None:
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    length = 0
                body = self.rfile.read(length) if length > 0 else b""
                reply = upf.handle_pfcp_request(self.command, self.path, body)
                self.send_response(reply.status)
                for name, value in reply.headers.items():
                    self.send_header(name, value)
                if reply.status != 204:
                    self.send_header("Content-Length", str(len(reply.body)))
                self.end_headers()
                if reply.body and self.command != "HEAD":
                    self.wfile.write(reply.body)

            do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _dispatch

            def log_message(self, format, *args) -> None:
                pass

        print(f"[UPF] PFCP-sim HTTP server listening on {host}:{port}")
        return ThreadingHTTPServer((host, port), _Handler)
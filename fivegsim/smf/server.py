"""Nsmf_PDUSession HTTP service of the session management function (N11).

Routes:
    POST   /nsmf-pdusession/v1/sm-contexts        create a session
    GET    /nsmf-pdusession/v1/sm-contexts/{id}   read a session
    DELETE /nsmf-pdusession/v1/sm-contexts/{id}   release a session
"""

from __future__ import annotations

import json
from datetime import datetime
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, NamedTuple, Optional
from urllib.parse import urlsplit

from fivegsim import obspub
from fivegsim.seqdiag import Node
from fivegsim.smf.clients import (
    SM_CONTEXTS_PATH,
    ClientError,
    PfcpClient,
    PFCPSessionRequest,
)
from fivegsim.smf.models import (
    Config,
    ErrorResponse,
    GTPTunnel,
    PDUAddress,
    PDUSessionStatus,
    PDUSessionType,
    SmContext,
    SmContextCreateRequest,
    SmContextCreateResponse,
    allocate_teid,
)
from fivegsim.smf.pool import IPPool, PoolExhaustedError, SessionStore

_JSON = "application/json"
_PROBLEM_JSON = "application/problem+json"
_TEXT = "text/plain; charset=utf-8"


class _Reply(NamedTuple):
    status: int
    headers: Dict[str, str]
    body: bytes


def _json_body(doc: dict) -> bytes:
    return (json.dumps(doc, ensure_ascii=False) + "\n").encode("utf-8")


def _error(status: int, detail: str) -> _Reply:
    problem = ErrorResponse(title=HTTPStatus(status).phrase, status=status, detail=detail)
    return _Reply(status, {"Content-Type": _PROBLEM_JSON}, _json_body(problem.to_dict()))


def emit_pfcp_procedure(supi: str, ul_teid: int, ue_ip: str) -> None:
    """Publish the SMF→UPF PFCP session establishment step."""
    obspub.procedure_with_detail(
        Node.SMF,
        Node.UPF,
        "PFCP Session Est.",
        "FAR/PDR rules pushed",
        "TS 29.244 §6.3.3",
        {"supi": supi, "ul_teid": f"0x{ul_teid:08X}", "ue_ip": ue_ip},
    )


def emit_create_sm_context(supi: str, dnn: str) -> None:
    """Publish the AMF→SMF context creation step."""
    obspub.procedure_with_detail(
        Node.AMF,
        Node.SMF,
        "Nsmf_PDUSession_Create",
        "DNN: " + dnn,
        "TS 29.502 §5.2.2.2",
        {"supi": supi, "dnn": dnn},
    )


class SMF:
    """Runtime SMF: an address pool, a session store and the HTTP API over them."""

    def __init__(self, config: Config) -> None:
        try:
            self.pool = IPPool(config.ip_pool_cidr)
        except ValueError as exc:
            raise ValueError(f"IP pool: {exc}") from exc
        self.config = config
        self.sessions = SessionStore()

    def handle_request(self, method: str, path: str, body: Optional[bytes] = None) -> _Reply:
        """Serve one request; returns ``(status, headers, body)``."""
        method = method.upper()
        path = urlsplit(path).path

        if path == "/health":
            return _Reply(200, {"Content-Type": _TEXT}, b"ok")

        if path == SM_CONTEXTS_PATH:
            if method == "POST":
                return self._create_sm_context(body or b"")
            return _error(405, "method not allowed")

        prefix = SM_CONTEXTS_PATH + "/"
        if path.startswith(prefix):
            ctx_id = path[len(prefix):]
            if not ctx_id:
                return _error(400, "missing context ID")
            if method == "GET":
                return self._get_sm_context(ctx_id)
            if method == "DELETE":
                return self._release_sm_context(ctx_id)
            return _error(405, "method not allowed")

        return _Reply(404, {"Content-Type": _TEXT}, b"404 page not found\n")

    def _create_sm_context(self, body: bytes) -> _Reply:
        try:
            doc = json.loads(body)
            request = SmContextCreateRequest.from_dict({} if doc is None else doc)
        except ValueError as exc:
            return _error(400, f"invalid JSON: {exc}")

        print(
            f"[SMF] CreateSMContext: supi={request.supi} pduSessionId={request.pdu_session_id} "
            f"dnn={request.dnn} type={request.pdu_session_type}"
        )

        if not request.pdu_session_type:
            request.pdu_session_type = PDUSessionType.IPV4
        if not request.dnn:
            request.dnn = "internet"
        emit_create_sm_context(request.supi, request.dnn)

        try:
            ip = self.pool.allocate(request.supi)
        except PoolExhaustedError as exc:
            return _error(503, f"IP allocation failed: {exc}")

        ul_teid = allocate_teid()
        upf_addr = self.config.upf_gtp_address
        tunnel = GTPTunnel(upf_address=upf_addr, ul_teid=ul_teid)
        ctx = SmContext(
            supi=request.supi,
            pdu_session_id=request.pdu_session_id,
            dnn=request.dnn,
            s_nssai=request.s_nssai,
            pdu_session_type=request.pdu_session_type,
            allocated_ip=ip,
            status=PDUSessionStatus.ACTIVE,
            gtp_tunnel=tunnel,
            created_at=datetime.now().astimezone(),
        )
        ctx_id = self.sessions.add(ctx)
        print(f"[SMF] GTP tunnel: UL-TEID=0x{ul_teid:08X} UPF={upf_addr}")

        smf_base = f"http://{self.config.bind_address}:{self.config.port}"
        response = SmContextCreateResponse(
            sm_context_ref=f"{smf_base}{SM_CONTEXTS_PATH}/{ctx_id}",
            pdu_address=PDUAddress(pdu_session_type=PDUSessionType.IPV4, ipv4_addr=ip),
            gtp_tunnel=tunnel,
        )
        print(f"[SMF] Session created: id={ctx_id} ip={ip} UL-TEID=0x{ul_teid:08X} ✓")

        pfcp = PfcpClient(self.config.upf_pfcp_address)
        try:
            pfcp.establish_session(PFCPSessionRequest(ul_teid=ul_teid, ue_ip_address=ip))
        except ClientError as exc:
            print(f"[SMF] PFCP notify failed (UPF may not be running): {exc}")
        else:
            emit_pfcp_procedure(request.supi, ul_teid, ip)

        headers = {"Content-Type": _JSON, "Location": response.sm_context_ref}
        return _Reply(201, headers, _json_body(response.to_dict()))

    def _get_sm_context(self, ctx_id: str) -> _Reply:
        ctx = self.sessions.get(ctx_id)
        if ctx is None:
            return _error(404, f"SM context {ctx_id} not found")
        return _Reply(200, {"Content-Type": _JSON}, _json_body(ctx.to_dict()))

    def _release_sm_context(self, ctx_id: str) -> _Reply:
        ctx = self.sessions.get(ctx_id)
        if ctx is None:
            return _error(404, f"SM context {ctx_id} not found")
        self.pool.release(ctx.allocated_ip)
        self.sessions.delete(ctx_id)
        print(f"[SMF] Session released: id={ctx_id} ip={ctx.allocated_ip}")
        return _Reply(204, {}, b"")

    def make_server(self, host: str, port: int) -> ThreadingHTTPServer:
        """Build (but do not start) an HTTP server serving this SMF."""
        smf = self

        class _Handler(BaseHTTPRequestHandler):
            def _dispatch(self) -> None:
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    length = 0
                body = self.rfile.read(length) if length > 0 else b""
                reply = smf.handle_request(self.command, self.path, body)
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

        return ThreadingHTTPServer((host, port), _Handler)

    def start(self) -> None:
        """Serve the Nsmf_PDUSession API on the configured port until interrupted."""
        print(
            f"[SMF] Starting — ID: {self.config.instance_id}  PLMN: {self.config.plmn}  "
            f"Pool: {self.config.ip_pool_cidr}"
        )
        server = self.make_server("", self.config.port)
        print(f"[SMF] HTTP server listening on :{self.config.port}")
        print("[SMF] Routes:")
        print("[SMF]   POST   /nsmf-pdusession/v1/sm-contexts       → Create session")
        print("[SMF]   GET    /nsmf-pdusession/v1/sm-contexts/{id}  → Get session")
        print("[SMF]   DELETE /nsmf-pdusession/v1/sm-contexts/{id}  → Release session")
        with server:
            server.serve_forever()
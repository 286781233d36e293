"""Nudm_UECM HTTP service of the UDM and the client the AMF and UE use to call it.

Routes:
    GET    /nudm-uecm/v1/{supi}
    PUT    /nudm-uecm/v1/{supi}/registrations/amf-3gpp-access
    DELETE /nudm-uecm/v1/{supi}/registrations/amf-3gpp-access
"""

from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.request
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, NamedTuple, Optional, Tuple
from urllib.parse import urlsplit

from fivegsim.udm.models import (
    Amf3GppAccessRegistration,
    Config,
    ErrorResponse,
    SubscriptionData,
)
from fivegsim.udm.registry import Registry, SubscriberNotFoundError

UECM_PREFIX = "/nudm-uecm/v1/"
REGISTRATION_SUFFIX = "/registrations/amf-3gpp-access"
DEFAULT_AMF_INSTANCE_ID = "amf-sim-001"
CLIENT_TIMEOUT = 10.0

_JSON = "application/json"
_PROBLEM_JSON = "application/problem+json"
_TEXT = "text/plain; charset=utf-8"


class UdmClientError(Exception):
    """A call to the UDM failed; ``status`` holds the HTTP status when one was received."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


def _send(
    method: str, url: str, body: Optional[bytes], timeout: float, headers: Optional[dict] = None
) -> Tuple[int, str, bytes]:
    try:
        request = urllib.request.Request(url, data=body, method=method, headers=headers or {})
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return response.status, response.reason, response.read()
    except urllib.error.HTTPError as exc:
        with exc:
            return exc.code, str(exc.reason), exc.read()
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
        raise UdmClientError(f"{method} {url}: {exc}") from exc


def _decode_subscription(payload: bytes, status: int, what: str) -> SubscriptionData:
    try:
        return SubscriptionData.from_dict(json.loads(payload))
    except ValueError as exc:
        raise UdmClientError(f"{what}: {exc}", status) from exc


class UdmClient:
    """Calls Nudm_UECM, e.g. ``UdmClient("http://127.0.0.1:8004")``."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.timeout = CLIENT_TIMEOUT

    def register_amf_3gpp_access(self, supi: str, amf_instance_id: str) -> SubscriptionData:
        """Register the UE at the UDM on behalf of an AMF; returns its subscription data."""
        body = json.dumps({"amfInstanceId": amf_instance_id}).encode("utf-8")
        url = f"{self.base_url}/nudm-uecm/v1/{supi}{REGISTRATION_SUFFIX}"
        status, reason, payload = _send(
            "PUT", url, body, self.timeout, {"Content-Type": _JSON}
        )
        text = payload.decode("utf-8", "replace")
        if status == 404:
            raise UdmClientError(f"UDM: subscriber not provisioned: {text}", status)
        if status not in (200, 201):
            raise UdmClientError(f"UDM returned {status} {reason}: {text}", status)
        return _decode_subscription(payload, status, "decode UDM response")

    def get_subscription(self, supi: str) -> SubscriptionData:
        """Check that ``supi`` is provisioned and return its subscription data."""
        url = f"{self.base_url}/nudm-uecm/v1/{supi}"
        status, reason, payload = _send("GET", url, None, self.timeout)
        if status == 404:
            raise UdmClientError(f"subscriber not provisioned: {supi}", status)
        if status != 200:
            text = payload.decode("utf-8", "replace")
            raise UdmClientError(f"UDM GET {status} {reason}: {text}", status)
        return _decode_subscription(payload, status, "decode UDM response")


class _Reply(NamedTuple):
    status: int
    headers: Dict[str, str]
    body: bytes


def _json_reply(status: int, doc: dict) -> _Reply:
    body = (json.dumps(doc, ensure_ascii=False) + "\n").encode("utf-8")
    return _Reply(status, {"Content-Type": _JSON}, body)


def _error(status: int, detail: str) -> _Reply:
    problem = ErrorResponse(title=HTTPStatus(status).phrase, status=status, detail=detail)
    body = (json.dumps(problem.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")
    return _Reply(status, {"Content-Type": _PROBLEM_JSON}, body)


class UDM:
    """Runtime UDM: a subscriber registry served over HTTP."""

    def __init__(self, config: Config, registry: Registry) -> None:
        self.config = config
        self.registry = registry

    def handle_request(self, method: str, path: str, body: Optional[bytes] = None) -> _Reply:
        """Serve one request; returns ``(status, headers, body)``."""
        method = method.upper()
        path = urlsplit(path).path

        if path == "/health":
            return _Reply(200, {"Content-Type": _TEXT}, b"ok")
        if not path.startswith(UECM_PREFIX):
            return _Reply(404, {"Content-Type": _TEXT}, b"404 page not found\n")

        rest = path[len(UECM_PREFIX):].strip("/")
        if not rest:
            return _error(400, "missing supi in path")

        if rest.endswith(REGISTRATION_SUFFIX):
            supi = rest[: -len(REGISTRATION_SUFFIX)]
            if method == "PUT":
                return self._put_amf_registration(supi, body or b"")
            if method == "DELETE":
                return self._delete_amf_registration(supi)
            return _error(405, "method not allowed")

        if method != "GET":
            return _error(405, "method not allowed")
        return self._get_subscription(rest)

    def _get_subscription(self, supi: str) -> _Reply:
        sub = self.registry.get_subscriber(supi)
        if sub is None:
            return _error(404, "subscriber not provisioned")
        data = SubscriptionData(
            supi=sub.supi, allowed_dnns=sub.allowed_dnns, default_snssai=sub.default_snssai
        )
        return _json_reply(200, data.to_dict())

    def _put_amf_registration(self, supi: str, body: bytes) -> _Reply:
        registration = Amf3GppAccessRegistration()
        try:
            doc = json.loads(body) if body.strip() else None
        except ValueError:
            doc = None
        if isinstance(doc, dict) and isinstance(doc.get("amfInstanceId"), str):
            registration.amf_instance_id = doc["amfInstanceId"]
        amf_id = registration.amf_instance_id or DEFAULT_AMF_INSTANCE_ID

        try:
            data = self.registry.register_amf_3gpp_access(supi, amf_id)
        except SubscriberNotFoundError as exc:
            return _error(404, str(exc))
        print(f"[UDM] AMF 3GPP registration: {supi} via {amf_id}")
        return _json_reply(201, data.to_dict())

    def _delete_amf_registration(self, supi: str) -> _Reply:
        if self.registry.get_subscriber(supi) is None:
            return _error(404, "subscriber not provisioned")
        self.registry.deregister_amf_3gpp_access(supi)
        return _Reply(204, {}, b"")

    def make_server(self, host: str, port: int) -> ThreadingHTTPServer:
        """Build (but do not start) an HTTP server serving this UDM."""
        udm = self

        class _Handler(BaseHTTPRequestHandler):
            def _dispatch(self) -> None:
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    length = 0
                body = self.rfile.read(length) if length > 0 else b""
                reply = udm.handle_request(self.command, self.path, body)
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
        """Serve the Nudm_UECM API on the configured address until interrupted."""
        server = self.make_server(self.config.bind_address, self.config.port)
        print(f"[UDM] HTTP server listening on http://{self.config.bind_address}:{self.config.port}")
        print(f"[UDM] Subscribers loaded: {self.registry.subscriber_count()}")
        print("[UDM] Routes:")
        print("[UDM]   GET    /nudm-uecm/v1/{supi}")
        print("[UDM]   PUT    /nudm-uecm/v1/{supi}/registrations/amf-3gpp-access")
        print("[UDM]   DELETE /nudm-uecm/v1/{supi}/registrations/amf-3gpp-access")
        with server:
            server.serve_forever()
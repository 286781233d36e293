"""HTTP clients for the SMF's session API (N11) and the UPF's PFCP-sim API."""

from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Optional, Tuple

from fivegsim.smf.models import SmContextCreateRequest, SmContextCreateResponse

SM_CONTEXTS_PATH = "/nsmf-pdusession/v1/sm-contexts"
PFCP_SESSIONS_PATH = "/pfcp-sim/v1/sessions"

SMF_TIMEOUT = 10.0
PFCP_TIMEOUT = 5.0

_JSON_HEADERS = {"Content-Type": "application/json"}


class ClientError(Exception):
    """A remote call failed; ``status`` holds the HTTP status when one was received."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


def _send(
    method: str, url: str, body: Optional[bytes], timeout: float, headers: Optional[dict] = None
) -> Tuple[int, str, bytes]:
    """Perform one request and return ``(status, reason, body)``."""
    try:
        request = urllib.request.Request(url, data=body, method=method, headers=headers or {})
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return response.status, response.reason, response.read()
    except urllib.error.HTTPError as exc:
        with exc:
            return exc.code, str(exc.reason), exc.read()
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
        raise ClientError(f"{method} {url}: {exc}") from exc


@dataclass
class PFCPSessionRequest:
    """Session the SMF announces to the UPF."""

    ul_teid: int
    dl_teid: int = 0
    gnb_address: str = ""
    ue_ip_address: str = ""

    def to_dict(self) -> dict:
        return {
            "ulTeid": self.ul_teid,
            "dlTeid": self.dl_teid,
            "gnbAddress": self.gnb_address,
            "ueIpAddress": self.ue_ip_address,
        }


class SmfClient:
    """Calls the SMF's Nsmf_PDUSession API, e.g. ``SmfClient("http://127.0.0.1:8001")``."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.timeout = SMF_TIMEOUT

    def create_sm_context(self, request: SmContextCreateRequest) -> SmContextCreateResponse:
        """Ask the SMF to create a PDU session; returns the created context."""
        url = f"{self.base_url}{SM_CONTEXTS_PATH}"
        body = json.dumps(request.to_dict()).encode("utf-8")
        status, reason, payload = _send("POST", url, body, self.timeout, _JSON_HEADERS)
        if status != 201:
            raise ClientError(
                f"SMF returned {status} {reason}: {payload.decode('utf-8', 'replace')}", status
            )
        try:
            result = SmContextCreateResponse.from_dict(json.loads(payload))
        except ValueError as exc:
            raise ClientError(f"decode response: {exc}", status) from exc

        ip = result.pdu_address.ipv4_addr if result.pdu_address is not None else ""
        print(f"[SMF Client] SM context created: ref={result.sm_context_ref} ip={ip}")
        return result

    def release_sm_context(self, sm_context_ref: str) -> None:
        """Ask the SMF to release the session at the full context URL ``sm_context_ref``."""
        status, reason, payload = _send("DELETE", sm_context_ref, None, self.timeout)
        if status != 204:
            raise ClientError(
                f"SMF returned {status} {reason}: {payload.decode('utf-8', 'replace')}", status
            )
        print(f"[SMF Client] SM context released: {sm_context_ref}")


class PfcpClient:
    """Calls the UPF's PFCP-sim API, e.g. ``PfcpClient("http://127.0.0.1:8002")``."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.timeout = PFCP_TIMEOUT

    def establish_session(self, request: PFCPSessionRequest) -> None:
        """Tell the UPF about a new UE session so it can register the TEID."""
        url = self.base_url + PFCP_SESSIONS_PATH
        body = json.dumps(request.to_dict()).encode("utf-8")
        status, reason, _ = _send("POST", url, body, self.timeout, _JSON_HEADERS)
        if status != 201:
            raise ClientError(f"UPF returned {status} {reason}", status)
        print(
            f"[SMF] PFCP session established with UPF: "
            f"UL-TEID=0x{request.ul_teid:08X} UE={request.ue_ip_address}"
        )
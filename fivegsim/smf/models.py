"""Data types, configuration and TEID allocation for the session management function."""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml


class PDUSessionType(str, Enum):
    """Type of a PDU session (TS 23.501 §5.8.2)."""

    IPV4 = "IPV4"
    IPV6 = "IPV6"
    IPV4V6 = "IPV4V6"
    ETHERNET = "ETHERNET"

    def __str__(self) -> str:
        return self.value


class PDUSessionStatus(str, Enum):
    """Lifecycle state of a PDU session."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    RELEASED = "RELEASED"

    def __str__(self) -> str:
        return self.value


SessionTypeLike = Union[PDUSessionType, str]
SessionStatusLike = Union[PDUSessionStatus, str]

_ZERO_TIME = "0001-01-01T00:00:00Z"
_UINT32_BITS = 32


def _text(value: Union[Enum, str]) -> str:
    return value.value if isinstance(value, Enum) else value


def _session_type(value: str) -> SessionTypeLike:
    try:
        return PDUSessionType(value)
    except ValueError:
        return value


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _str_field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _int_field(data: Mapping[str, Any], key: str, bits: Optional[int] = None) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer, got {type(value).__name__}")
    if bits is not None and not 0 <= value < 1 << bits:
        raise ValueError(f"field {key!r} out of range for {bits}-bit unsigned: {value}")
    return value


@dataclass
class SNssai:
    """Single network slice selection assistance information."""

    sst: int = 0
    sd: str = ""

    def to_dict(self) -> dict:
        out: dict = {"sst": self.sst}
        if self.sd:
            out["sd"] = self.sd
        return out

    @classmethod
    def from_dict(cls, data) -> "SNssai":
        data = _mapping(data, "sNssai")
        return cls(sst=_int_field(data, "sst"), sd=_str_field(data, "sd"))


@dataclass
class GTPTunnel:
    """UPF-side GTP-U endpoint and uplink TEID handed to the gNB."""

    upf_address: str = ""
    ul_teid: int = 0

    def to_dict(self) -> dict:
        return {"upfAddress": self.upf_address, "ulTeid": self.ul_teid}

    @classmethod
    def from_dict(cls, data) -> "GTPTunnel":
        data = _mapping(data, "gtpTunnel")
        return cls(
            upf_address=_str_field(data, "upfAddress"),
            ul_teid=_int_field(data, "ulTeid", _UINT32_BITS),
        )

    def __str__(self) -> str:
        return f"UPF={self.upf_address} UL-TEID=0x{self.ul_teid:08X}"


@dataclass
class PDUAddress:
    """Address or prefix allocated to the UE."""

    pdu_session_type: SessionTypeLike = PDUSessionType.IPV4
    ipv4_addr: str = ""
    ipv6_prefix: str = ""

    def to_dict(self) -> dict:
        out: dict = {"pduSessionType": _text(self.pdu_session_type)}
        if self.ipv4_addr:
            out["ipv4Addr"] = self.ipv4_addr
        if self.ipv6_prefix:
            out["ipv6Prefix"] = self.ipv6_prefix
        return out

    @classmethod
    def from_dict(cls, data) -> "PDUAddress":
        data = _mapping(data, "pduAddress")
        return cls(
            pdu_session_type=_session_type(_str_field(data, "pduSessionType")),
            ipv4_addr=_str_field(data, "ipv4Addr"),
            ipv6_prefix=_str_field(data, "ipv6Prefix"),
        )


@dataclass
class SmContextCreateRequest:
    """Body of Nsmf_PDUSession_CreateSMContext sent by the AMF."""

    supi: str = ""
    pdu_session_id: int = 0
    dnn: str = ""
    s_nssai: SNssai = field(default_factory=SNssai)
    pdu_session_type: SessionTypeLike = ""
    serving_nf_id: str = ""
    serving_network: str = ""
    pei: str = ""
    gpsi: str = ""
    n1_sm_msg: str = ""

    def to_dict(self) -> dict:
        out: dict = {"supi": self.supi}
        if self.pei:
            out["pei"] = self.pei
        if self.gpsi:
            out["gpsi"] = self.gpsi
        out["pduSessionId"] = self.pdu_session_id
        out["dnn"] = self.dnn
        out["sNssai"] = self.s_nssai.to_dict()
        out["pduSessionType"] = _text(self.pdu_session_type)
        out["servingNfId"] = self.serving_nf_id
        out["servingNetwork"] = self.serving_network
        if self.n1_sm_msg:
            out["n1SmMsg"] = self.n1_sm_msg
        return out

    @classmethod
    def from_dict(cls, data) -> "SmContextCreateRequest":
        data = _mapping(data, "request")
        raw_snssai = data.get("sNssai")
        return cls(
            supi=_str_field(data, "supi"),
            pdu_session_id=_int_field(data, "pduSessionId"),
            dnn=_str_field(data, "dnn"),
            s_nssai=SNssai.from_dict(raw_snssai) if raw_snssai is not None else SNssai(),
            pdu_session_type=_session_type(_str_field(data, "pduSessionType")),
            serving_nf_id=_str_field(data, "servingNfId"),
            serving_network=_str_field(data, "servingNetwork"),
            pei=_str_field(data, "pei"),
            gpsi=_str_field(data, "gpsi"),
            n1_sm_msg=_str_field(data, "n1SmMsg"),
        )


@dataclass
class SmContextCreateResponse:
    """Answer to a context creation: reference, UE address and tunnel."""

    sm_context_ref: str = ""
    pdu_address: Optional[PDUAddress] = None
    n1_sm_msg: str = ""
    gtp_tunnel: Optional[GTPTunnel] = None
    cause: str = ""

    def to_dict(self) -> dict:
        out: dict = {"smContextRef": self.sm_context_ref}
        if self.pdu_address is not None:
            out["pduAddress"] = self.pdu_address.to_dict()
        if self.n1_sm_msg:
            out["n1SmMsg"] = self.n1_sm_msg
        if self.gtp_tunnel is not None:
            out["gtpTunnel"] = self.gtp_tunnel.to_dict()
        if self.cause:
            out["cause"] = self.cause
        return out

    @classmethod
    def from_dict(cls, data) -> "SmContextCreateResponse":
        data = _mapping(data, "response")
        raw_address = data.get("pduAddress")
        raw_tunnel = data.get("gtpTunnel")
        return cls(
            sm_context_ref=_str_field(data, "smContextRef"),
            pdu_address=PDUAddress.from_dict(raw_address) if raw_address is not None else None,
            n1_sm_msg=_str_field(data, "n1SmMsg"),
            gtp_tunnel=GTPTunnel.from_dict(raw_tunnel) if raw_tunnel is not None else None,
            cause=_str_field(data, "cause"),
        )


@dataclass
class SmContext:
    """The SMF's record of one active PDU session."""

    supi: str = ""
    pdu_session_id: int = 0
    dnn: str = ""
    s_nssai: SNssai = field(default_factory=SNssai)
    pdu_session_type: SessionTypeLike = ""
    allocated_ip: str = ""
    status: SessionStatusLike = ""
    amf_address: str = ""
    gtp_tunnel: Optional[GTPTunnel] = None
    created_at: Optional[datetime] = None
    id: str = ""

    def to_dict(self) -> dict:
        return {
            "ID": self.id,
            "SUPI": self.supi,
            "PDUSessionID": self.pdu_session_id,
            "DNN": self.dnn,
            "SNssai": self.s_nssai.to_dict(),
            "PDUSessionType": _text(self.pdu_session_type),
            "AllocatedIP": self.allocated_ip,
            "Status": _text(self.status),
            "AMFAddress": self.amf_address,
            "GTPTunnel": self.gtp_tunnel.to_dict() if self.gtp_tunnel is not None else None,
            "CreatedAt": self.created_at.isoformat() if self.created_at is not None else _ZERO_TIME,
        }


@dataclass
class ErrorResponse:
    """Problem-details body for API errors."""

    title: str
    status: int
    detail: str = ""

    def to_dict(self) -> dict:
        out: dict = {"title": self.title, "status": self.status}
        if self.detail:
            out["detail"] = self.detail
        return out


@dataclass(frozen=True)
class Config:
    """Start-up configuration of the SMF."""

    bind_address: str = "127.0.0.1"
    instance_id: str = "smf-sim-001"
    port: int = 8001
    plmn: str = "00101"
    ip_pool_cidr: str = "10.0.0.0/24"
    nrf_address: str = "http://127.0.0.1:8000"
    upf_pfcp_address: str = "http://127.0.0.1:8002"
    upf_gtp_address: str = "127.0.0.1:2152"


_INT_KEYS = frozenset({"port"})
_YAML_NULLS = frozenset({"", "~", "null", "Null", "NULL"})


def load_config(path) -> Config:
    """Read a YAML file and lay its keys over the default configuration.

    Raises OSError when the file cannot be read and ValueError when it
    cannot be parsed.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise ValueError(f"parse config {path}: {exc}") from exc
    if doc is None:
        return Config()
    if not isinstance(doc, dict):
        raise ValueError(f"parse config {path}: top level must be a mapping")

    changes = {}
    for f in dataclasses.fields(Config):
        if f.name not in doc:
            continue
        raw = doc[f.name]
        if not isinstance(raw, str):
            raise ValueError(f"parse config {path}: {f.name} must be a scalar")
        if f.name in _INT_KEYS:
            if raw in _YAML_NULLS:
                changes[f.name] = 0
                continue
            try:
                changes[f.name] = int(raw.strip())
            except ValueError as exc:
                raise ValueError(
                    f"parse config {path}: {f.name} must be an integer, got {raw!r}"
                ) from exc
        else:
            changes[f.name] = "" if raw in _YAML_NULLS else raw
    return dataclasses.replace(Config(), **changes)


class _TeidCounter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def next(self) -> int:
        with self._lock:
            self._value = (self._value + 1) & 0xFFFFFFFF
            return self._value


_teid_counter = _TeidCounter()


def allocate_teid() -> int:
    """Hand out the next process-wide 32-bit TEID, starting from 1."""
    return _teid_counter.next()
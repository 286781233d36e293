"""Data types and configuration of the unified data management function."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml

_NULLS = frozenset({"", "~", "null", "Null", "NULL"})
_TRUE = frozenset({"true", "yes", "on", "y"})
_FALSE = frozenset({"false", "no", "off", "n"})


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what}: expected a mapping, got {type(data).__name__}")
    return data


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _as_str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return "" if value in _NULLS else value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"{name} must be a string, got {type(value).__name__}")


def _as_int(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _NULLS:
            return 0
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    raise ValueError(f"{name} must be an integer, got {type(value).__name__}")


def _as_bool(value: Any, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _NULLS:
            return False
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _as_str_list(value: Any, name: str) -> List[str]:
    if value is None or (isinstance(value, str) and value in _NULLS):
        return []
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list, got {type(value).__name__}")
    return [_as_str(item, name) for item in value]


@dataclass
class ErrorResponse:
    """Problem-details body for API errors."""

    title: str
    status: int
    detail: str = ""
    type: str = ""
    instance: str = ""

    def to_dict(self) -> dict:
        out: dict = {}
        if self.type:
            out["type"] = self.type
        out["title"] = self.title
        out["status"] = self.status
        if self.detail:
            out["detail"] = self.detail
        if self.instance:
            out["instance"] = self.instance
        return out


@dataclass
class Snssai:
    """Slice selection information."""

    sst: int = 0
    sd: str = ""

    def to_dict(self) -> dict:
        out: dict = {"sst": self.sst}
        if self.sd:
            out["sd"] = self.sd
        return out

    @classmethod
    def from_dict(cls, data) -> "Snssai":
        if data is None or (isinstance(data, str) and data in _NULLS):
            return cls()
        data = _mapping(data, "snssai")
        return cls(sst=_as_int(data.get("sst"), "sst"), sd=_as_str(data.get("sd"), "sd"))


@dataclass
class Subscriber:
    """Provisioned subscription data of one UE."""

    supi: str = ""
    enabled: bool = False
    allowed_dnns: List[str] = field(default_factory=list)
    default_snssai: Snssai = field(default_factory=Snssai)

    @classmethod
    def from_dict(cls, data) -> "Subscriber":
        """Build from a provisioning entry; YAML and JSON key spellings are both accepted."""
        data = _mapping(data, "subscriber")
        return cls(
            supi=_as_str(data.get("supi"), "supi"),
            enabled=_as_bool(data.get("enabled"), "enabled"),
            allowed_dnns=_as_str_list(
                _pick(data, "allowed_dnns", "allowedDnns"), "allowed_dnns"
            ),
            default_snssai=Snssai.from_dict(_pick(data, "default_snssai", "defaultSnssai")),
        )


@dataclass
class Amf3GppAccessRegistration:
    """Body of the AMF's 3GPP access registration."""

    amf_instance_id: str = ""


@dataclass
class SubscriptionData:
    """Subscription summary returned to the AMF."""

    supi: str = ""
    allowed_dnns: List[str] = field(default_factory=list)
    default_snssai: Snssai = field(default_factory=Snssai)

    def to_dict(self) -> dict:
        return {
            "supi": self.supi,
            "allowedDnns": list(self.allowed_dnns),
            "defaultSnssai": self.default_snssai.to_dict(),
        }

    @classmethod
    def from_dict(cls, data) -> "SubscriptionData":
        data = _mapping(data, "subscription data")
        return cls(
            supi=_as_str(data.get("supi"), "supi"),
            allowed_dnns=_as_str_list(data.get("allowedDnns"), "allowedDnns"),
            default_snssai=Snssai.from_dict(data.get("defaultSnssai")),
        )


@dataclass
class UeRegistration:
    """The AMF's registration of a UE at the UDM."""

    supi: str
    amf_instance_id: str
    registered_at: Optional[datetime] = None


@dataclass(frozen=True)
class Config:
    """Start-up settings of the UDM."""

    bind_address: str = "127.0.0.1"
    port: int = 8004
    nrf_address: str = "http://127.0.0.1:8000"
    instance_id: str = "udm-sim-001"
    subscribers_path: str = "configs/subscribers.yaml"


def load_config(path) -> Config:
    """Read a YAML file and lay its keys over the defaults.

    Raises OSError when the file cannot be read and ValueError when it
    cannot be parsed.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise ValueError(f"udm: parse config {path}: {exc}") from exc
    if doc is None:
        return Config()
    if not isinstance(doc, dict):
        raise ValueError(f"udm: parse config {path}: top level must be a mapping")

    changes = {}
    try:
        for f in dataclasses.fields(Config):
            if f.name not in doc:
                continue
            raw = doc[f.name]
            if f.name == "port":
                changes[f.name] = _as_int(raw, f.name)
            else:
                changes[f.name] = _as_str(raw, f.name)
    except ValueError as exc:
        raise ValueError(f"udm: parse config {path}: {exc}") from exc
    return dataclasses.replace(Config(), **changes)
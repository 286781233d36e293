"""UE simulator configuration: connection presets, YAML overlays and data-plane mode."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

PROFILE_LOCAL = "local"
PROFILE_CLAB = "clab"

DATA_PLANE_MODE_AUTO = "auto"
DATA_PLANE_MODE_FABRIC = "fabric"
DATA_PLANE_MODE_STANDALONE = "standalone"

DEFAULT_CONNECTIVITY_TARGET = "10.100.0.1"

_NULLS = frozenset({"", "~", "null", "Null", "NULL"})


@dataclass(frozen=True)
class SliceConfig:
    """Network slice the UE requests."""

    sst: int = 1
    sd: str = "000001"


@dataclass(frozen=True)
class Config:
    """Start-up configuration of a UE; the defaults are the local development preset."""

    supi: str = "imsi-001010000000001"
    gnb_address: str = "127.0.0.1"
    gnb_sctp_port: int = 38413
    gnb_gtp_address: str = "127.0.0.1:2153"
    dnn: str = "internet"
    slice: SliceConfig = field(default_factory=SliceConfig)
    udm_address: str = "http://127.0.0.1:8004"
    instance_id: str = ""
    tun_name: str = ""
    uplink_teid: int = 0
    data_plane_mode: str = ""
    connectivity_target_addr: str = ""

    def connectivity_target(self) -> str:
        """Address used for post-attach connectivity checks."""
        return self.connectivity_target_addr.strip() or DEFAULT_CONNECTIVITY_TARGET

    def effective_data_plane_mode(self) -> str:
        """Data-plane mode from ``UE_DATA_PLANE_MODE`` or the configuration, default auto."""
        env = os.environ.get("UE_DATA_PLANE_MODE", "")
        if env:
            return env.strip().lower()
        return self.data_plane_mode.strip().lower() or DATA_PLANE_MODE_AUTO


def default_config() -> Config:
    """Configuration for local development."""
    return Config()


def default_clab_config() -> Config:
    """Preset pointing at a gNB on the lab fabric."""
    return Config(gnb_address="10.1.1.1", gnb_gtp_address="10.1.1.1:2153")


def base_config_for_profile(name: str) -> Config:
    """Preset for ``"local"`` (or empty) or ``"clab"``; other names raise ValueError."""
    profile = name.strip().lower()
    if profile in ("", PROFILE_LOCAL):
        return default_config()
    if profile == PROFILE_CLAB:
        return default_clab_config()
    raise ValueError(
        f'ue: unknown profile "{name.strip()}" (use "{PROFILE_LOCAL}" or "{PROFILE_CLAB}")'
    )


def load_config(path) -> Config:
    """Read a YAML file laid over the local defaults."""
    return load_config_over(default_config(), path)


_STR_FIELDS = frozenset(
    {
        "supi",
        "gnb_address",
        "gnb_gtp_address",
        "dnn",
        "udm_address",
        "instance_id",
        "tun_name",
        "data_plane_mode",
        "connectivity_target_addr",
    }
)
_INT_FIELDS = {"gnb_sctp_port": None, "uplink_teid": 32}


def _as_str(raw: Any, name: str) -> str:
    if not isinstance(raw, str):
        raise ValueError(f"{name} must be a scalar")
    return "" if raw in _NULLS else raw


def _as_int(raw: Any, name: str, bits: Optional[int]) -> int:
    if not isinstance(raw, str):
        raise ValueError(f"{name} must be a scalar")
    if raw in _NULLS:
        return 0
    text = raw.strip()
    try:
        value = int(text)
    except ValueError:
        try:
            value = int(text, 0)
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if bits is not None and not 0 <= value < 1 << bits:
        raise ValueError(f"{name} out of range for {bits}-bit unsigned: {value}")
    return value


def _merge_slice(base: SliceConfig, raw: Any) -> SliceConfig:
    if isinstance(raw, str) and raw in _NULLS:
        return SliceConfig(sst=0, sd="")
    if not isinstance(raw, dict):
        raise ValueError("slice must be a mapping")
    changes = {}
    if "sst" in raw:
        changes["sst"] = _as_int(raw["sst"], "slice.sst", 8)
    if "sd" in raw:
        changes["sd"] = _as_str(raw["sd"], "slice.sd")
    return dataclasses.replace(base, **changes)


def load_config_over(base: Config, path) -> Config:
    """Lay a YAML file over ``base``; keys left out of the file keep the base values.

    Raises OSError when the file cannot be read and ValueError when it
    cannot be parsed.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise ValueError(f"ue: parse config {path}: {exc}") from exc
    if doc is None:
        return base
    if not isinstance(doc, dict):
        raise ValueError(f"ue: parse config {path}: top level must be a mapping")

    changes = {}
    try:
        for key, raw in doc.items():
            if key in _STR_FIELDS:
                changes[key] = _as_str(raw, key)
            elif key in _INT_FIELDS:
                changes[key] = _as_int(raw, key, _INT_FIELDS[key])
            elif key == "slice":
                changes[key] = _merge_slice(base.slice, raw)
    except ValueError as exc:
        raise ValueError(f"ue: parse config {path}: {exc}") from exc
    return dataclasses.replace(base, **changes)
"""Start-up configuration and data-plane mode of the user plane function."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import yaml

if TYPE_CHECKING:
    from fivegsim.obshub import Hub

GTPU_PORT = 2152

DATA_PLANE_MODE_AUTO = "auto"
DATA_PLANE_MODE_FABRIC = "fabric"
DATA_PLANE_MODE_STANDALONE = "standalone"

_NULLS = frozenset({"", "~", "null", "Null", "NULL"})


@dataclass(frozen=True)
class Config:
    """UPF settings: GTP-U and PFCP-sim ports, N6 interface and data-plane mode.

    ``hub`` is an optional observability hub for packet capture; it is
    never read from YAML.
    """

    gtp_port: int = GTPU_PORT
    bind_addr: str = "0.0.0.0"
    pfcp_sim_port: int = 8002
    n6_iface: str = "upf-n6"
    n6_cidr: str = "10.45.0.254/24"
    data_plane_mode: str = DATA_PLANE_MODE_AUTO
    hub: Optional["Hub"] = field(default=None, compare=False, repr=False)

    def effective_data_plane_mode(self) -> str:
        """Mode from ``UPF_DATA_PLANE_MODE`` or the configuration, default auto."""
        env = os.environ.get("UPF_DATA_PLANE_MODE", "")
        if env:
            return env.strip().lower()
        return self.data_plane_mode.strip().lower() or DATA_PLANE_MODE_AUTO


_INT_FIELDS = frozenset({"gtp_port", "pfcp_sim_port"})
_STR_FIELDS = frozenset({"bind_addr", "n6_iface", "n6_cidr", "data_plane_mode"})


def _convert(name: str, raw: Any):
    if not isinstance(raw, str):
        raise ValueError(f"{name} must be a scalar")
    if name in _STR_FIELDS:
        return "" if raw in _NULLS else raw
    if raw in _NULLS:
        return 0
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def load_config(path) -> Config:
    """Read a YAML file and lay its keys over the defaults.

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
    try:
        for key, raw in doc.items():
            if key in _INT_FIELDS or key in _STR_FIELDS:
                changes[key] = _convert(key, raw)
    except ValueError as exc:
        raise ValueError(f"parse config {path}: {exc}") from exc
    return dataclasses.replace(Config(), **changes)
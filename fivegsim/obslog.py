"""Structured logging of procedure events for the network functions.

Every entry carries a timestamp, the component name, a message, an optional
3GPP spec reference and key/value fields. Entries go to the console, to an
optional JSON-lines file and to an optional publish hook.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Callable, Dict, Optional, TextIO

COLOUR_RESET = "\033[0m"


class Level(IntEnum):
    """Severity of a log entry."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @property
    def label(self) -> str:
        """Fixed-width name used in output."""
        return _LABELS[self]

    @property
    def colour(self) -> str:
        """ANSI colour escape used on the console."""
        return _COLOURS[self]


_LABELS = {
    Level.DEBUG: "DEBUG",
    Level.INFO: "INFO ",
    Level.WARN: "WARN ",
    Level.ERROR: "ERROR",
}

_COLOURS = {
    Level.DEBUG: "\033[36m",
    Level.INFO: "\033[32m",
    Level.WARN: "\033[33m",
    Level.ERROR: "\033[31m",
}


@dataclass(frozen=True)
class Entry:
    """One structured log record."""

    timestamp: datetime
    component: str
    level: str
    message: str
    spec_ref: str = ""
    fields: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """JSON form of the entry; empty spec reference and fields are left out."""
        out = {
            "ts": self.timestamp.isoformat(),
            "component": self.component,
            "level": self.level,
            "msg": self.message,
        }
        if self.spec_ref:
            out["specRef"] = self.spec_ref
        if self.fields:
            out["fields"] = dict(self.fields)
        return out


PublishHook = Callable[[Entry], None]


class _Sink:
    """Process-wide output target shared by all loggers."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.json_file: Optional[TextIO] = None
        self.coloured = True
        self.hook: Optional[PublishHook] = None


_sink = _Sink()


def set_publish_hook(fn: Optional[PublishHook]) -> Optional[PublishHook]:
    """Register a callback run after each entry is written; returns the previous one."""
    with _sink.lock:
        previous = _sink.hook
        _sink.hook = fn
    return previous


def init_file(path) -> None:
    """Open a JSON-lines log file shared by every logger."""
    handle = open(path, "w", encoding="utf-8")
    with _sink.lock:
        if _sink.json_file is not None:
            _sink.json_file.close()
        _sink.json_file = handle
    print(f"[obslog] JSON log: {path}")


def close() -> None:
    """Flush and close the JSON-lines log file, if one is open."""
    with _sink.lock:
        if _sink.json_file is not None:
            _sink.json_file.close()
            _sink.json_file = None


def _write_console(level: Level, entry: Entry) -> None:
    ts = entry.timestamp.strftime("%H:%M:%S.") + f"{entry.timestamp.microsecond // 1000:03d}"
    field_str = ""
    if entry.fields:
        field_str = "  " + " ".join(f"{k}={v}" for k, v in entry.fields.items())
    spec_str = f"  \033[2m[{entry.spec_ref}]\033[0m" if entry.spec_ref else ""
    colour, reset = (level.colour, COLOUR_RESET) if _sink.coloured else ("", "")
    print(
        f"{colour}{ts} [{entry.component}] {level.label:<4} "
        f"{entry.message}{field_str}{spec_str}{reset}"
    )


class Logger:
    """Emits structured entries for one named component."""

    def __init__(self, component: str) -> None:
        self.component = component

    def debug(self, msg: str, spec_ref: str, *args: str) -> None:
        """Log a debug event; ``args`` are alternating keys and values."""
        self._log(Level.DEBUG, msg, spec_ref, args)

    def info(self, msg: str, spec_ref: str, *args: str) -> None:
        """Log an informational event; ``args`` are alternating keys and values."""
        self._log(Level.INFO, msg, spec_ref, args)

    def warn(self, msg: str, spec_ref: str, *args: str) -> None:
        """Log a warning; ``args`` are alternating keys and values."""
        self._log(Level.WARN, msg, spec_ref, args)

    def error(self, msg: str, spec_ref: str, *args: str) -> None:
        """Log an error; ``args`` are alternating keys and values."""
        self._log(Level.ERROR, msg, spec_ref, args)

    def _log(self, level: Level, msg: str, spec_ref: str, args) -> None:
        fields = dict(zip(args[0::2], args[1::2]))
        entry = Entry(
            timestamp=datetime.now().astimezone(),
            component=self.component,
            level=level.label,
            message=msg,
            spec_ref=spec_ref,
            fields=fields,
        )
        with _sink.lock:
            _write_console(level, entry)
            if _sink.json_file is not None:
                _sink.json_file.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                _sink.json_file.flush()
            hook = _sink.hook
        if hook is not None:
            hook(entry)
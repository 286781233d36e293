"""Publishing observability events to an observatory sidecar over HTTP.

Set ``OBSERVATORY_URL`` before start-up or call :func:`configure`. Events
are posted in the background; failures are dropped.
"""

from __future__ import annotations

import dataclasses
import json
import os
import threading
import time
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from fivegsim import obslog

EVENTS_PATH = "/api/v1/events"
POST_TIMEOUT = 2.0
PACKET_EMIT_MIN_INTERVAL = 0.2

_ZERO_TS = "0001-01-01T00:00:00Z"


@dataclass
class Event:
    """JSON payload posted to the observatory."""

    kind: str
    id: str = ""
    ts: Optional[datetime] = None
    from_node: str = ""
    to_node: str = ""
    type: str = ""
    detail: str = ""
    spec: str = ""
    component: str = ""
    level: str = ""
    fields: Optional[Dict[str, str]] = None

    def to_dict(self) -> dict:
        """JSON form; empty optional fields are left out."""
        out = {
            "id": self.id,
            "ts": self.ts.isoformat() if self.ts is not None else _ZERO_TS,
            "kind": self.kind,
        }
        optional = (
            ("from", self.from_node),
            ("to", self.to_node),
            ("type", self.type),
            ("detail", self.detail),
            ("spec", self.spec),
            ("component", self.component),
            ("level", self.level),
        )
        out.update((key, value) for key, value in optional if value)
        if self.fields:
            out["fields"] = dict(self.fields)
        return out


class _State:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.base_url = ""
        self.seq = 0
        self.throttle_lock = threading.Lock()
        self.throttle_last: Dict[str, float] = {}


_state = _State()


def configure(url: str) -> None:
    """Set the observatory base URL; an empty URL disables publishing."""
    with _state.lock:
        _state.base_url = (url or "").rstrip("/")


def enabled() -> bool:
    """Whether publishing is active."""
    with _state.lock:
        return _state.base_url != ""


def _next_id() -> str:
    with _state.lock:
        _state.seq += 1
        n = _state.seq
    return f"{datetime.now().strftime('%Y%m%d%H%M%S')}-{n}"


def _post(url: str, event: Event) -> None:
    body = json.dumps(event.to_dict(), ensure_ascii=False).encode("utf-8")
    request = urllib.request.Request(
        url, data=body, headers={"Content-Type": "application/json"}, method="POST"
    )
    try:
        with urllib.request.urlopen(request, timeout=POST_TIMEOUT) as response:
            response.read()
    except (OSError, ValueError):
        pass


def emit(event: Event) -> None:
    """Send an event to the observatory without blocking the caller."""
    with _state.lock:
        url = _state.base_url
    if not url:
        return
    changes = {}
    if not event.id:
        changes["id"] = _next_id()
    if event.ts is None:
        changes["ts"] = datetime.now().astimezone()
    if changes:
        event = dataclasses.replace(event, **changes)
    threading.Thread(target=_post, args=(url + EVENTS_PATH, event), daemon=True).start()


def from_log_entry(entry: obslog.Entry) -> Event:
    """Map a log entry to an observatory event."""
    return Event(
        id=_next_id(),
        ts=entry.timestamp,
        kind="log",
        type=entry.message,
        detail=entry.message,
        spec=entry.spec_ref,
        component=entry.component,
        level=entry.level.rstrip(" "),
        fields=entry.fields,
    )


def from_procedure(from_node, to_node, label: str, spec_ref: str, fields=None) -> Event:
    """Map a procedure step between two nodes to an observatory event."""
    return Event(
        id=_next_id(),
        ts=datetime.now().astimezone(),
        kind="procedure",
        from_node=str(from_node),
        to_node=str(to_node),
        type=label,
        detail=label,
        spec=spec_ref,
        component=str(from_node),
        level="INFO",
        fields=fields,
    )


def procedure_with_detail(
    from_node, to_node, typ: str, detail: str, spec_ref: str, fields=None
) -> None:
    """Emit a procedure step; ``typ`` is the short name and ``detail`` the description."""
    if not enabled():
        return
    event = from_procedure(from_node, to_node, typ, spec_ref, fields)
    if detail:
        event.detail = detail
    emit(event)


def emit_packet(
    from_node, to_node, direction: str, summary: str, spec_ref: str, fields=None
) -> None:
    """Publish a user-plane packet observation, at most one per edge every 200 ms."""
    if not enabled():
        return
    key = f"{from_node}|{to_node}|{direction}"
    now = time.monotonic()
    with _state.throttle_lock:
        last = _state.throttle_last.get(key)
        if last is not None and now - last < PACKET_EMIT_MIN_INTERVAL:
            return
        _state.throttle_last[key] = now

    if direction:
        fields = dict(fields or {})
        fields["direction"] = direction
    emit(
        Event(
            id=_next_id(),
            ts=datetime.now().astimezone(),
            kind="packet",
            from_node=str(from_node),
            to_node=str(to_node),
            type=summary,
            detail=summary,
            spec=spec_ref,
            component=str(from_node),
            level="INFO",
            fields=fields,
        )
    )


def _publish_log_entry(entry: obslog.Entry) -> None:
    if enabled():
        emit(from_log_entry(entry))


if os.environ.get("OBSERVATORY_URL"):
    configure(os.environ["OBSERVATORY_URL"])
obslog.set_publish_hook(_publish_log_entry)
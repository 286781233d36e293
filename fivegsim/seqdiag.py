"""Recording procedure events and rendering them as Mermaid sequence diagrams."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Tuple, Union

MERMAID_SCRIPT = "mermaid.min.js"


class Node(str, Enum):
    """A network function shown as a participant."""

    UE = "UE"
    GNB = "gNB"
    AMF = "AMF"
    SMF = "SMF"
    UPF = "UPF"
    NRF = "NRF"
    UDM = "UDM"

    def __str__(self) -> str:
        return self.value


NodeLike = Union[Node, str]


def _node_name(node: NodeLike) -> str:
    return node.value if isinstance(node, Node) else str(node)


class EventKind(Enum):
    MESSAGE = auto()
    NOTE = auto()
    SEPARATOR = auto()


@dataclass(frozen=True)
class Event:
    """One entry in the procedure trace."""

    kind: EventKind
    timestamp: float
    from_node: NodeLike = ""
    to_node: NodeLike = ""
    label: str = ""
    spec_ref: str = ""
    nodes: Tuple[NodeLike, ...] = ()
    note: str = ""
    title: str = ""


_PARTICIPANTS = ("UE", "gNB", "AMF", "SMF", "UPF", "NRF")

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>fivegsim — Procedure Sequence Diagram</title>
  <script src="{script}"></script>
  <style>
    body {{ font-family: monospace; padding: 2em; background: #fafafa; }}
    h1 {{ color: #333; }}
    .mermaid {{ background: white; padding: 2em; border-radius: 8px;
               box-shadow: 0 2px 8px rgba(0,0,0,0.1); }}
    .meta {{ color: #888; font-size: 0.85em; margin-bottom: 1em; }}
  </style>
</head>
<body>
  <h1>fivegsim — 5G Procedure Sequence Diagram</h1>
  <p class="meta">Generated by the fivegsim observability layer</p>
  <div class="mermaid">
{diagram}
  </div>
  <script>mermaid.initialize({{startOnLoad:true, theme:'default'}});</script>
</body>
</html>"""


class Recorder:
    """Collects procedure events; safe for concurrent use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[Event] = []
        self._start = time.monotonic()

    def _append(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    def message(self, from_node: NodeLike, to_node: NodeLike, label: str, spec_ref: str) -> None:
        """Record a message from one node to another."""
        self._append(
            Event(
                EventKind.MESSAGE,
                time.monotonic(),
                from_node=from_node,
                to_node=to_node,
                label=label,
                spec_ref=spec_ref,
            )
        )

    def note(self, text: str, *args: NodeLike) -> None:
        """Record a note over the given nodes."""
        self._append(Event(EventKind.NOTE, time.monotonic(), nodes=tuple(args), note=text))

    def separator(self, title: str) -> None:
        """Record a labelled break between procedures."""
        self._append(Event(EventKind.SEPARATOR, time.monotonic(), title=title))

    def render(self) -> str:
        """Render the recorded events as a Mermaid sequenceDiagram."""
        with self._lock:
            events = list(self._events)

        lines = ["sequenceDiagram\n", "  autonumber\n"]
        lines.extend(f"  participant {name}\n" for name in _PARTICIPANTS)
        lines.append("\n")

        for ev in events:
            elapsed = int((ev.timestamp - self._start) * 1000)
            if ev.kind is EventKind.MESSAGE:
                label = ev.label
                if ev.spec_ref:
                    label = f"{ev.label}<br/><small>[{ev.spec_ref}]</small>"
                lines.append(
                    f"  {_node_name(ev.from_node)}->{_node_name(ev.to_node)}: "
                    f"{label} (+{elapsed}ms)\n"
                )
            elif ev.kind is EventKind.NOTE:
                names = ",".join(_node_name(n) for n in ev.nodes)
                lines.append(f"  Note over {names}: {ev.note}\n")
            elif ev.kind is EventKind.SEPARATOR:
                lines.append("\n  rect rgb(240, 240, 240)\n")
                lines.append(f"    Note over UE,NRF: {ev.title}\n")
                lines.append("  end\n\n")

        return "".join(lines)

    def write_file(self, path) -> None:
        """Write the Mermaid diagram to a .mmd file."""
        Path(path).write_text(self.render(), encoding="utf-8")
        print(f"[SeqDiag] Written to {path} ({self.event_count()} events)")

    def event_count(self) -> int:
        """Number of recorded events."""
        with self._lock:
            return len(self._events)

    def write_html(self, path) -> None:
        """Write a self-contained HTML page that renders the diagram with Mermaid."""
        html = _HTML_TEMPLATE.format(script=MERMAID_SCRIPT, diagram=self.render())
        Path(path).write_text(html, encoding="utf-8")
        print(f"[SeqDiag] HTML written to {path}")
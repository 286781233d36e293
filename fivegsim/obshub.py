"""Observability hub fanning events out to pcap files, a sequence diagram and logs."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

from fivegsim import obslog, obspub
from fivegsim.pcap import (
    LINK_TYPE_ETHERNET,
    LINK_TYPE_LINUX_SLL,
    PcapWriter,
    build_sctp_frame,
    build_udp_frame,
)
from fivegsim.seqdiag import Recorder

_LOOPBACK = "127.0.0.1"
_NGAP_SRC_PORT = 54321
_NGAP_DST_PORT = 38412
_GTPU_PORT = 2152


class Hub:
    """Central observability coordinator, one per process."""

    def __init__(self, directory) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

        ngap_path = self._dir / "ngap.pcap"
        gtp_path = self._dir / "gtpu.pcap"
        log_path = self._dir / "sim.jsonl"

        self._ngap_pcap = PcapWriter(ngap_path, LINK_TYPE_LINUX_SLL)
        self._gtp_pcap = PcapWriter(gtp_path, LINK_TYPE_ETHERNET)
        obslog.init_file(log_path)

        print(f"[obs] Capture directory: {self._dir}")
        print(f"[obs] NGAP pcap:         {ngap_path}")
        print(f"[obs] GTP-U pcap:        {gtp_path}")
        print(f"[obs] Structured log:    {log_path}")

        self._seq = Recorder()
        self._started = time.monotonic()

    @property
    def directory(self) -> Path:
        return self._dir

    def ngap(self, from_node, to_node, payload: bytes) -> None:
        """Record an NGAP PDU as an SCTP frame."""
        frame = build_sctp_frame(_LOOPBACK, _LOOPBACK, _NGAP_SRC_PORT, _NGAP_DST_PORT, payload)
        try:
            self._ngap_pcap.write_packet(frame)
        except (OSError, ValueError) as exc:
            print(f"[obs] NGAP pcap write error: {exc}")

    def gtpu(self, from_node, to_node, payload: bytes) -> None:
        """Record a GTP-U frame (header and inner packet) as a UDP frame."""
        self._write_gtpu(payload)

    def _write_gtpu(self, payload: bytes) -> None:
        frame = build_udp_frame(_LOOPBACK, _LOOPBACK, _GTPU_PORT, _GTPU_PORT, payload)
        try:
            self._gtp_pcap.write_packet(frame)
        except (OSError, ValueError) as exc:
            print(f"[obs] GTP-U pcap write error: {exc}")

    def make_capture_func(self, from_node, to_node) -> Callable[[str, bytes], None]:
        """Return a ``(direction, data)`` callback writing GTP-U packets to the pcap."""

        def capture(direction: str, data: bytes) -> None:
            self._write_gtpu(data)

        return capture

    def procedure(self, from_node, to_node, label: str, spec_ref: str, *args: str) -> None:
        """Record a procedure step for the diagram, the observatory and the log."""
        self.procedure_with_detail(from_node, to_node, label, label, spec_ref, *args)

    def procedure_with_detail(
        self, from_node, to_node, typ: str, detail: str, spec_ref: str, *args: str
    ) -> None:
        """Record a procedure step with separate short type and detail strings."""
        self._seq.message(from_node, to_node, typ, spec_ref)
        fields = dict(zip(args[0::2], args[1::2]))
        if obspub.enabled():
            obspub.procedure_with_detail(from_node, to_node, typ, detail, spec_ref, fields)
        obslog.Logger(str(from_node)).info(f"→ {to_node}: {typ}", spec_ref, *args)

    def note(self, text: str, *args) -> None:
        """Annotate the given nodes in the sequence diagram."""
        self._seq.note(text, *args)

    def separator(self, title: str) -> None:
        """Add a procedure boundary to the sequence diagram."""
        self._seq.separator(title)

    def log(self, component: str) -> obslog.Logger:
        """Structured logger for the named component."""
        return obslog.Logger(component)

    def flush(self) -> None:
        """Write the sequence diagram files."""
        mmd_path = self._dir / "procedure.mmd"
        html_path = self._dir / "procedure.html"
        try:
            self._seq.write_file(mmd_path)
        except OSError as exc:
            print(f"[obs] seqdiag write error: {exc}")
        try:
            self._seq.write_html(html_path)
        except OSError as exc:
            print(f"[obs] seqdiag HTML error: {exc}")
        print(f"[obs] Sequence diagram: open {html_path} in a browser")
        print(f"[obs] NGAP capture:     wireshark {self._dir}/ngap.pcap")
        print(f"[obs] GTP-U capture:    wireshark {self._dir}/gtpu.pcap")

    def close(self) -> None:
        """Flush all outputs and close file handles."""
        self.flush()
        self._ngap_pcap.close()
        self._gtp_pcap.close()
        obslog.close()

    def __enter__(self) -> "Hub":
        return self

    def __exit__(self, *args) -> None:
        self.close()
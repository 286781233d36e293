"""UE address pool and PDU session store of the SMF; both live in memory."""

from __future__ import annotations

import ipaddress
import threading
from typing import Dict, Optional

from fivegsim.smf.models import SmContext


class PoolExhaustedError(RuntimeError):
    """No address is left in the pool."""


class IPPool:
    """Hands out IPv4 addresses of a CIDR range in order, from network+1 to broadcast-1."""

    def __init__(self, cidr: str) -> None:
        try:
            network = ipaddress.ip_network(cidr, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid CIDR {cidr}: {exc}") from exc
        if not isinstance(network, ipaddress.IPv4Network):
            raise ValueError(f"invalid CIDR {cidr}: only IPv4 ranges are supported")

        self._lock = threading.Lock()
        self.network = network
        self._next = int(network.network_address) + 1
        self._last = int(network.broadcast_address) - 1
        self._allocated: Dict[str, str] = {}

    def allocate(self, supi: str) -> str:
        """Assign the next address to ``supi``; raise PoolExhaustedError when none is left."""
        with self._lock:
            if self._next > self._last:
                raise PoolExhaustedError("IP pool exhausted")
            ip = str(ipaddress.IPv4Address(self._next))
            self._next += 1
            self._allocated[ip] = supi
        print(f"[SMF] Allocated IP {ip} to SUPI {supi}")
        return ip

    def release(self, ip: str) -> None:
        """Return an address to the pool."""
        with self._lock:
            self._allocated.pop(ip, None)
        print(f"[SMF] Released IP {ip}")

    def count(self) -> int:
        """Number of addresses currently allocated."""
        with self._lock:
            return len(self._allocated)


class SessionStore:
    """Active PDU session contexts keyed by context ID."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, SmContext] = {}
        self._counter = 0

    def add(self, ctx: SmContext) -> str:
        """Store ``ctx``, assign it an ID of the form ``ctx-00001`` and return that ID."""
        with self._lock:
            self._counter += 1
            ctx.id = f"ctx-{self._counter:05d}"
            self._sessions[ctx.id] = ctx
        print(
            f"[SMF] Session created: id={ctx.id} supi={ctx.supi} "
            f"ip={ctx.allocated_ip} dnn={ctx.dnn}"
        )
        return ctx.id

    def get(self, ctx_id: str) -> Optional[SmContext]:
        """The context with this ID, or None."""
        with self._lock:
            return self._sessions.get(ctx_id)

    def delete(self, ctx_id: str) -> None:
        """Remove a context; unknown IDs are ignored."""
        with self._lock:
            self._sessions.pop(ctx_id, None)

    def count(self) -> int:
        """Number of active sessions."""
        with self._lock:
            return len(self._sessions)
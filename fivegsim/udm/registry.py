"""Provisioned subscribers and the AMF registrations made against them."""

from __future__ import annotations

import dataclasses
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import yaml

from fivegsim.udm.models import Subscriber, SubscriptionData, UeRegistration

_NULLS = frozenset({"", "~", "null", "Null", "NULL"})


class SubscriberNotFoundError(LookupError):
    """The SUPI is not provisioned or its subscription is disabled."""


def _normalize_supi(supi: str) -> str:
    return supi.strip().lower()


class Registry:
    """Subscriber allowlist and runtime AMF registrations; safe for concurrent use."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: Dict[str, Subscriber] = {}
        self._registrations: Dict[str, UeRegistration] = {}

    def get_subscriber(self, supi: str) -> Optional[Subscriber]:
        """The enabled subscriber with this SUPI, or None."""
        with self._lock:
            sub = self._subscribers.get(_normalize_supi(supi))
        if sub is None or not sub.enabled:
            return None
        return sub

    def register_amf_3gpp_access(self, supi: str, amf_instance_id: str) -> SubscriptionData:
        """Record the AMF's registration of ``supi`` and return its subscription data."""
        sub = self.get_subscriber(supi)
        if sub is None:
            raise SubscriberNotFoundError(f"subscriber not found: {supi}")
        key = _normalize_supi(supi)
        with self._lock:
            self._registrations[key] = UeRegistration(
                supi=key,
                amf_instance_id=amf_instance_id,
                registered_at=datetime.now().astimezone(),
            )
        return SubscriptionData(
            supi=sub.supi,
            allowed_dnns=list(sub.allowed_dnns),
            default_snssai=dataclasses.replace(sub.default_snssai),
        )

    def deregister_amf_3gpp_access(self, supi: str) -> None:
        """Forget the AMF registration of ``supi``, if any."""
        with self._lock:
            self._registrations.pop(_normalize_supi(supi), None)

    def is_dnn_allowed(self, supi: str, dnn: str) -> bool:
        """Whether the subscriber's profile allows a PDU session to ``dnn``."""
        sub = self.get_subscriber(supi)
        if sub is None:
            return False
        wanted = dnn.strip().lower()
        return any(allowed.strip().lower() == wanted for allowed in sub.allowed_dnns)

    def subscriber_count(self) -> int:
        """Number of provisioned subscribers, enabled or not."""
        with self._lock:
            return len(self._subscribers)


def load_subscribers_from_file(path) -> Registry:
    """Build a registry from a YAML file with a top-level ``subscribers`` list.

    Entries without a SUPI are skipped. Raises OSError when the file cannot be
    read and ValueError when it cannot be parsed or provisions nobody.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise ValueError(f"parse subscribers {path}: {exc}") from exc

    entries = []
    if doc is not None:
        if not isinstance(doc, dict):
            raise ValueError(f"parse subscribers {path}: top level must be a mapping")
        raw = doc.get("subscribers")
        if isinstance(raw, list):
            entries = raw
        elif not (raw is None or (isinstance(raw, str) and raw in _NULLS)):
            raise ValueError(f"parse subscribers {path}: subscribers must be a list")

    registry = Registry()
    for item in entries:
        try:
            sub = Subscriber.from_dict(item)
        except ValueError as exc:
            raise ValueError(f"parse subscribers {path}: {exc}") from exc
        if not sub.supi:
            continue
        registry._subscribers[_normalize_supi(sub.supi)] = sub

    if not registry._subscribers:
        raise ValueError(f"no subscribers in {path}")
    return registry
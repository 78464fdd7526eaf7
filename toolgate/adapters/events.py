"""Event types emitted by the approval bus.

Each ask/update/say on the bus is recorded as a typed dataclass for
safe consumption by a UI layer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ApprovalEvent:
    """Base event from the approval bus."""
    event_type: str = ""
    ts: int = 0


@dataclass
class AskRequested(ApprovalEvent):
    event_type: str = "ask_requested"
    kind: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class AskUpdated(ApprovalEvent):
    event_type: str = "ask_updated"
    kind: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class AskResolved(ApprovalEvent):
    event_type: str = "ask_resolved"
    response: str = ""
    text: str | None = None
    images: list[str] = field(default_factory=list)


@dataclass
class AskSuperseded(ApprovalEvent):
    event_type: str = "ask_superseded"


@dataclass
class Notification(ApprovalEvent):
    event_type: str = "say"
    channel: str = ""
    text: str | None = None
    images: list[str] = field(default_factory=list)


# Map of event type strings to dataclass constructors
_EVENT_MAP: dict[str, type[ApprovalEvent]] = {
    "ask_requested": AskRequested,
    "ask_updated": AskUpdated,
    "ask_resolved": AskResolved,
    "ask_superseded": AskSuperseded,
    "say": Notification,
}


def event_to_dict(event: ApprovalEvent) -> dict[str, Any]:
    """Convert a typed event dataclass to a plain dict for JSON serialization."""
    d: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        val = getattr(event, f)
        if val is not None:
            d[f] = val
    if "event_type" in d:
        d["event"] = d.pop("event_type")
    return d


def dict_to_event(data: dict[str, Any]) -> ApprovalEvent:
    """Convert a plain dict back to a typed event dataclass."""
    event_type = data.get("event", "")
    cls = _EVENT_MAP.get(event_type, ApprovalEvent)
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    if "event" in data and "event_type" not in filtered:
        filtered["event_type"] = data["event"]
    return cls(**filtered)

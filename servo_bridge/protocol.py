"""
Wire contract between the browser frontend and the bridge.

Every frame is a JSON object tagged by ``type``. Commands flow inbound and
always name a ``tabId``; events flow outbound. A single command can produce
zero or more events, which are delivered in the order they are returned.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar

PROTOCOL_VERSION = "2026-10-01"


class ProtocolError(ValueError):
    """Inbound frame could not be decoded into a command."""


# ─────────────────────────────────────────────────────────────────────────────
# Commands (frontend -> bridge)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class Initialize:
    TYPE: ClassVar[str] = "initialize"

    tab_id: str


@dataclass(slots=True, frozen=True)
class Navigate:
    TYPE: ClassVar[str] = "navigate"

    tab_id: str
    url: str


@dataclass(slots=True, frozen=True)
class Back:
    TYPE: ClassVar[str] = "back"

    tab_id: str


@dataclass(slots=True, frozen=True)
class Forward:
    TYPE: ClassVar[str] = "forward"

    tab_id: str


@dataclass(slots=True, frozen=True)
class Refresh:
    TYPE: ClassVar[str] = "refresh"

    tab_id: str


@dataclass(slots=True, frozen=True)
class Shutdown:
    TYPE: ClassVar[str] = "shutdown"

    tab_id: str


Command = Initialize | Navigate | Back | Forward | Refresh | Shutdown

COMMAND_TYPES: dict[str, type] = {
    cls.TYPE: cls for cls in (Initialize, Navigate, Back, Forward, Refresh, Shutdown)
}


# ─────────────────────────────────────────────────────────────────────────────
# Events (bridge -> frontend)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class Ready:
    TYPE: ClassVar[str] = "ready"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE}


@dataclass(slots=True, frozen=True)
class TitleChange:
    TYPE: ClassVar[str] = "titleChange"

    tab_id: str
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "tabId": self.tab_id, "title": self.title}


@dataclass(slots=True, frozen=True)
class UrlChange:
    TYPE: ClassVar[str] = "urlChange"

    tab_id: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "tabId": self.tab_id, "url": self.url}


@dataclass(slots=True, frozen=True)
class LoadStart:
    TYPE: ClassVar[str] = "loadStart"

    tab_id: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "tabId": self.tab_id, "url": self.url}


@dataclass(slots=True, frozen=True)
class LoadComplete:
    TYPE: ClassVar[str] = "loadComplete"

    tab_id: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "tabId": self.tab_id, "url": self.url}


@dataclass(slots=True, frozen=True)
class ProcessCrash:
    TYPE: ClassVar[str] = "processCrash"

    tab_id: str
    process_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, "tabId": self.tab_id, "processId": self.process_id}


Event = Ready | TitleChange | UrlChange | LoadStart | LoadComplete | ProcessCrash

EVENT_TYPES: dict[str, type] = {
    cls.TYPE: cls for cls in (Ready, TitleChange, UrlChange, LoadStart, LoadComplete, ProcessCrash)
}


# ─────────────────────────────────────────────────────────────────────────────
# Codec
# ─────────────────────────────────────────────────────────────────────────────


def _require_str(msg: dict[str, Any], key: str, mtype: str) -> str:
    value = msg.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"{mtype}: '{key}' must be a string")
    return value


def decode_command(raw: str | bytes) -> Command:
    """Decode one inbound frame into a command.

    Raises:
        ProtocolError: invalid JSON, not an object, unknown or outbound-only type,
            or a missing/non-string field.
    """
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"invalid JSON: {exc}") from exc

    if not isinstance(msg, dict):
        raise ProtocolError("message must be a JSON object")

    mtype = msg.get("type")
    if not isinstance(mtype, str) or not mtype:
        raise ProtocolError("missing message type")
    if mtype in EVENT_TYPES:
        raise ProtocolError(f"'{mtype}' is an outbound-only message type")

    cls = COMMAND_TYPES.get(mtype)
    if cls is None:
        raise ProtocolError(f"unknown message type: {mtype}")

    tab_id = _require_str(msg, "tabId", mtype)
    if cls is Navigate:
        return Navigate(tab_id=tab_id, url=_require_str(msg, "url", mtype))
    return cls(tab_id=tab_id)


def encode_event(event: Event) -> str:
    return json.dumps(event.to_dict(), ensure_ascii=False)

"""Telemetry records and the events synthesized for subscribers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

SERIAL_STATUS_EVENT = "serial_status"
HARDWARE_RESET_EVENT = "hardware_reset"


class RecordKind(str, Enum):
    """Record types emitted by the ELCB controller."""

    BOOT = "boot"
    """Controller finished booting (``status`` = ``"ready"``)."""

    DATA = "data"
    """Periodic sample of voltage, current and fault state."""

    FAULT = "fault"
    """Relay tripped on earth leakage."""

    RESET = "reset"
    """Controller acknowledged a re-arm command."""

    @classmethod
    def from_value(cls, value: Any) -> Optional["RecordKind"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    """One decoded line from the device.

    ``raw`` holds the trimmed line exactly as received so it can be forwarded
    to subscribers verbatim; ``payload`` is the parsed object, read-only.
    """

    kind: Optional[RecordKind]
    payload: Mapping[str, Any]
    raw: str = field(compare=False)

    @classmethod
    def from_line(cls, line: str, payload: dict[str, Any]) -> "TelemetryRecord":
        return cls(
            kind=RecordKind.from_value(payload.get("type")),
            payload=MappingProxyType(dict(payload)),
            raw=line,
        )

    @property
    def voltage(self) -> Optional[float]:
        return _as_float(self.payload.get("voltage"))

    @property
    def current(self) -> Optional[float]:
        return _as_float(self.payload.get("current"))

    @property
    def fault(self) -> Optional[bool]:
        value = self.payload.get("fault")
        return value if isinstance(value, bool) else None

    @property
    def trip_current(self) -> Optional[float]:
        return _as_float(self.payload.get("tripCurrent"))

    @property
    def trip_time(self) -> Optional[int]:
        value = self.payload.get("tripTime")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)

    @property
    def status(self) -> Optional[str]:
        value = self.payload.get("status")
        return value if isinstance(value, str) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def serial_status_event(connected: bool, error: Optional[str] = None) -> dict[str, Any]:
    event: dict[str, Any] = {"type": SERIAL_STATUS_EVENT, "connected": connected}
    if error:
        event["error"] = error
    return event


def hardware_reset_event() -> dict[str, Any]:
    return {"type": HARDWARE_RESET_EVENT}


def serialize_event(event: TelemetryRecord | Mapping[str, Any] | str) -> str:
    """Render an event as the text frame sent to subscribers."""

    if isinstance(event, TelemetryRecord):
        return event.raw
    if isinstance(event, str):
        return event
    return json.dumps(dict(event), separators=(",", ":"))

"""Health of the serial link and the subscriber side, served at ``/healthz``."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class Component(str, Enum):
    """Parts of the bridge that report health."""

    SERIAL = "serial"
    """The device link; unhealthy while no transport is open."""

    CLIENTS = "clients"
    """The subscriber registry; always healthy, detail carries the count."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ComponentHealth:
    component: Component
    healthy: bool
    detail: Optional[str] = None
    since: datetime = field(default_factory=_now)

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.component.value,
            "healthy": self.healthy,
            "detail": self.detail,
            "since": self.since.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Holds the latest health of each :class:`Component`.

    ``since`` records when a component last changed between healthy and
    unhealthy, so a degraded snapshot shows how long the device has been
    unreachable rather than when the last retry failed.
    """

    def __init__(self) -> None:
        self._components: Dict[Component, ComponentHealth] = {}
        self._lock = asyncio.Lock()

    async def update(
        self, component: Component | str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        component = Component(component)
        async with self._lock:
            previous = self._components.get(component)
            if previous is not None and previous.healthy == healthy:
                self._components[component] = replace(previous, detail=detail)
            else:
                self._components[component] = ComponentHealth(component, healthy, detail)

    async def report_serial(self, connected: bool, detail: Optional[str] = None) -> None:
        await self.update(Component.SERIAL, connected, detail)

    async def report_clients(self, count: int) -> None:
        await self.update(Component.CLIENTS, True, f"{count} connected")

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            components = [
                self._components[component].as_dict()
                for component in Component
                if component in self._components
            ]

        overall = "ok" if all(item["healthy"] for item in components) else "degraded"
        return {"status": overall, "components": components}

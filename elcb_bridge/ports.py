"""Serial endpoint discovery for operator setup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from serial.tools import list_ports


@dataclass(frozen=True, slots=True)
class PortDescriptor:
    path: str
    name: Optional[str] = None
    description: Optional[str] = None
    hwid: Optional[str] = None
    manufacturer: Optional[str] = None
    serial_number: Optional[str] = None
    vid: Optional[int] = None
    pid: Optional[int] = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "path": self.path,
            "name": self.name,
            "description": self.description,
            "hwid": self.hwid,
            "manufacturer": self.manufacturer,
            "serialNumber": self.serial_number,
            "vid": self.vid,
            "pid": self.pid,
        }


def _describe(port: Any) -> PortDescriptor:
    description = getattr(port, "description", None)
    hwid = getattr(port, "hwid", None)
    return PortDescriptor(
        path=port.device,
        name=getattr(port, "name", None),
        description=description if description and description != "n/a" else None,
        hwid=hwid if hwid and hwid != "n/a" else None,
        manufacturer=getattr(port, "manufacturer", None),
        serial_number=getattr(port, "serial_number", None),
        vid=getattr(port, "vid", None),
        pid=getattr(port, "pid", None),
    )


def list_endpoints(
    enumerate_ports: Callable[[], Iterable[Any]] = list_ports.comports,
) -> List[PortDescriptor]:
    """Return the serial ports visible to this host, ordered by path."""

    return sorted((_describe(port) for port in enumerate_ports()), key=lambda d: d.path)

from types import SimpleNamespace

from elcb_bridge.ports import PortDescriptor, list_endpoints


def _port(device, **extra):
    defaults = {
        "name": device.rsplit("/", 1)[-1],
        "description": "n/a",
        "hwid": "n/a",
        "manufacturer": None,
        "serial_number": None,
        "vid": None,
        "pid": None,
    }
    defaults.update(extra)
    return SimpleNamespace(device=device, **defaults)


def test_list_endpoints_orders_by_path():
    ports = [
        _port("/dev/ttyUSB0", description="CP2102 USB to UART Bridge Controller"),
        _port(
            "/dev/ttyACM0",
            description="Arduino Uno",
            hwid="USB VID:PID=2341:0043 SER=85736323838351F0F0A1",
            manufacturer="Arduino (www.arduino.cc)",
            serial_number="85736323838351F0F0A1",
            vid=0x2341,
            pid=0x0043,
        ),
        _port("/dev/ttyS0"),
    ]

    endpoints = list_endpoints(lambda: ports)

    assert [endpoint.path for endpoint in endpoints] == [
        "/dev/ttyACM0",
        "/dev/ttyS0",
        "/dev/ttyUSB0",
    ]
    arduino = endpoints[0]
    assert arduino.name == "ttyACM0"
    assert arduino.vid == 0x2341
    assert arduino.as_dict()["serialNumber"] == "85736323838351F0F0A1"


def test_placeholder_fields_are_dropped():
    (endpoint,) = list_endpoints(lambda: [_port("/dev/ttyS0")])

    assert endpoint == PortDescriptor(path="/dev/ttyS0", name="ttyS0")
    assert endpoint.as_dict()["description"] is None


def test_no_ports():
    assert list_endpoints(lambda: []) == []

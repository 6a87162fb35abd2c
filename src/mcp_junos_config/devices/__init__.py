"""Transports for Junos devices."""
from .base import (
    DeviceTransport,
    DeviceConfig,
    DeviceMessage,
    SystemInformation,
    EMPTY_OUTPUT,
)
from .netconf import NetconfTransport
from .setfile import SetFileWriter

__all__ = [
    "DeviceTransport",
    "DeviceConfig",
    "DeviceMessage",
    "SystemInformation",
    "EMPTY_OUTPUT",
    "NetconfTransport",
    "SetFileWriter",
    "create_transport",
]

# Transport type registry
TRANSPORT_TYPES = {
    "netconf": NetconfTransport,
}


def create_transport(device_id: str, config: DeviceConfig) -> DeviceTransport:
    """Factory function to create transport instances."""
    transport_type = config.type.lower()
    if transport_type not in TRANSPORT_TYPES:
        raise ValueError(f"Unknown transport type: {transport_type}")

    transport_class = TRANSPORT_TYPES[transport_type]
    return transport_class(device_id, config)

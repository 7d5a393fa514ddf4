"""Static capabilities, VM defaults and the OS-listing probe."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, NamedTuple, Optional

from ovirt_adapter.constants import (
    CAPABILITIES,
    DEFAULT_CORES,
    DEFAULT_MEMORY,
    DEFAULT_MONITORS,
    DEFAULT_SOCKETS,
    DISPLAY_PORT_UNSET,
    MAX_CPU_COUNT,
    MAX_MEMORY,
    MAX_SOCKET_COUNT,
    NIC_TYPES,
)
from ovirt_adapter.exceptions import NotFound, TrustRequired, UnsupportedOperationError
from ovirt_adapter.models import ComputeResourceConfig, OSDescriptor, OsCapability, OsCapabilityState
from ovirt_adapter.utils import log


class NicType(NamedTuple):
    id: str
    name: str


class Limits(NamedTuple):
    max_cpu_count: int
    max_socket_count: int
    max_memory: int


def capabilities() -> List[str]:
    return list(CAPABILITIES)


def limits() -> Limits:
    return Limits(MAX_CPU_COUNT, MAX_SOCKET_COUNT, MAX_MEMORY)


def nictypes() -> List[NicType]:
    return [NicType(id=nic_id, name=name) for nic_id, name in NIC_TYPES]


def vm_instance_defaults(cfg: ComputeResourceConfig) -> Dict[str, Any]:
    return {
        "memory": DEFAULT_MEMORY,
        "cores": DEFAULT_CORES,
        "sockets": DEFAULT_SOCKETS,
        "display": {
            "type": cfg.display_type,
            "keyboard_layout": cfg.keyboard_layout,
            "port": DISPLAY_PORT_UNSET,
            "monitors": DEFAULT_MONITORS,
        },
    }


class OperatingSystemsProbe:
    """Tracks whether the platform can list guest OS types.

    The result is cached on the resource config and handed to `on_change`
    for persistence, so the engine is only probed while the state is unknown.
    """

    def __init__(
        self,
        config: ComputeResourceConfig,
        connection: Any,
        on_change: Optional[Callable[[OsCapability], None]] = None,
    ) -> None:
        self.config = config
        self.connection = connection
        self.on_change = on_change

    @property
    def capability(self) -> OsCapability:
        return self.config.available_operating_systems

    def supports_operating_systems(self) -> bool:
        try:
            client = self.connection.get_connection()
            if not hasattr(client, "operating_systems"):
                return False
            if not self.capability.is_known:
                self.update_available_operating_systems()
        except TrustRequired:
            log("INFO", "Unable to verify OS capabilities, SSL certificate verification failed")
            return False
        return self.capability.state is OsCapabilityState.AVAILABLE

    def update_available_operating_systems(self) -> OsCapability:
        client = self.connection.get_connection()
        if not hasattr(client, "operating_systems"):
            return self.capability
        try:
            systems = client.operating_systems()
        except NotFound:
            log("DEBUG", "Engine does not expose the operating systems collection")
            capability = OsCapability.unsupported()
        else:
            capability = OsCapability.available(systems)
        self._store(capability)
        return capability

    def refresh(self) -> OsCapability:
        self._store(OsCapability.unknown())
        return self.update_available_operating_systems()

    def available_operating_systems(self) -> List[OSDescriptor]:
        if self.capability.state is not OsCapabilityState.AVAILABLE:
            raise UnsupportedOperationError("Listing operating systems is not supported by the current version")
        return list(self.capability.systems)

    def _store(self, capability: OsCapability) -> None:
        self.config.available_operating_systems = capability
        if capability.is_known and self.on_change is not None:
            self.on_change(capability)

"""Data models for the oVirt compute adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

from ovirt_adapter.constants import (
    DEFAULT_DISPLAY_TYPE,
    DEFAULT_KEYBOARD_LAYOUT,
    DEFAULT_MONITORS,
    DISPLAY_PORT_UNSET,
)
from ovirt_adapter.utils import coerce_use_v4, is_blank

Number = Union[int, str]


class Datacenter(NamedTuple):
    id: str
    name: str


class Cluster(NamedTuple):
    id: str
    name: str


class Network(NamedTuple):
    id: str
    name: str


class StorageDomain(NamedTuple):
    id: str
    name: str


class TemplateDisk(NamedTuple):
    id: str
    storage_domain: Optional[str]


@dataclass
class Template:
    id: str
    name: str
    cores: Optional[int] = None
    memory: Optional[int] = None
    disks: List[TemplateDisk] = field(default_factory=list)


@dataclass
class InstanceType:
    id: str
    name: str
    cores: Optional[int] = None
    memory: Optional[int] = None


@dataclass(frozen=True)
class OSDescriptor:
    id: str
    name: str
    href: Optional[str] = None


class OsCapabilityState(Enum):
    UNKNOWN = "unknown"
    UNSUPPORTED = "unsupported"
    AVAILABLE = "available"


@dataclass(frozen=True)
class OsCapability:
    """Whether the platform lists guest OS types, and the cached list when it does."""

    state: OsCapabilityState
    systems: Tuple[OSDescriptor, ...] = ()

    @classmethod
    def unknown(cls) -> "OsCapability":
        return cls(OsCapabilityState.UNKNOWN)

    @classmethod
    def unsupported(cls) -> "OsCapability":
        return cls(OsCapabilityState.UNSUPPORTED)

    @classmethod
    def available(cls, systems: List[OSDescriptor]) -> "OsCapability":
        return cls(OsCapabilityState.AVAILABLE, tuple(systems))

    @property
    def is_known(self) -> bool:
        return self.state is not OsCapabilityState.UNKNOWN


@dataclass
class ComputeResourceConfig:
    url: str
    user: str
    password: str
    datacenter: Optional[str] = None
    display_type: str = DEFAULT_DISPLAY_TYPE
    keyboard_layout: str = DEFAULT_KEYBOARD_LAYOUT
    public_key: Optional[str] = None
    quota: Optional[str] = None
    use_v4: Any = False
    name: str = "ovirt"
    available_operating_systems: OsCapability = field(default_factory=OsCapability.unknown)

    def __post_init__(self):
        self.display_type = (self.display_type or DEFAULT_DISPLAY_TYPE).lower()
        self.keyboard_layout = (self.keyboard_layout or DEFAULT_KEYBOARD_LAYOUT).lower()
        if is_blank(self.quota):
            self.quota = None
        if is_blank(self.public_key):
            self.public_key = None
        self.use_v4 = coerce_use_v4(self.use_v4)

    @property
    def api_version(self) -> str:
        return "v4" if self.use_v4 else "v3"


@dataclass
class TrustState:
    pinned: Optional[str] = None
    validated: bool = False


class ConnectionState(Enum):
    NO_CREDENTIALS = "no_credentials"
    DIALING = "dialing"
    CONNECTED = "connected"
    UNTRUSTED = "untrusted"
    UNAUTHORIZED = "unauthorized"
    UNREACHABLE = "unreachable"


@dataclass
class ConnectionReport:
    state: ConnectionState
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state is ConnectionState.CONNECTED and not self.errors

    def add(self, key: str, message: str) -> None:
        self.errors.setdefault(key, []).append(message)


@dataclass
class DisplaySpec:
    type: str = DEFAULT_DISPLAY_TYPE
    keyboard_layout: str = DEFAULT_KEYBOARD_LAYOUT
    port: int = DISPLAY_PORT_UNSET
    monitors: int = DEFAULT_MONITORS

    def to_attributes(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "keyboard_layout": self.keyboard_layout,
            "port": self.port,
            "monitors": self.monitors,
        }


@dataclass
class InterfaceSpec:
    id: Optional[str] = None
    name: str = ""
    network: Optional[str] = None
    interface: Optional[str] = None
    delete: bool = False
    # The empty "add new" row submitted alongside real entries.
    placeholder: bool = False

    def to_attributes(self) -> Dict[str, Any]:
        attrs = {"id": self.id, "name": self.name, "network": self.network, "interface": self.interface}
        return {key: value for key, value in attrs.items() if not is_blank(value)}


@dataclass
class VolumeSpec:
    id: Optional[str] = None
    size_gb: Optional[Number] = None
    storage_domain: Optional[str] = None
    preallocate: bool = False
    bootable: bool = False
    wipe_after_delete: bool = False
    interface: Optional[str] = None
    delete: bool = False
    placeholder: bool = False

    def to_attributes(self) -> Dict[str, Any]:
        attrs = {
            "id": self.id,
            "size_gb": self.size_gb,
            "storage_domain": self.storage_domain,
            "bootable": self.bootable,
            "wipe_after_delete": self.wipe_after_delete,
            "interface": self.interface,
        }
        return {key: value for key, value in attrs.items() if not is_blank(value)}


# Scalar VM fields forwarded to the platform as-is.
_VM_SCALAR_FIELDS = ("name", "cluster", "cores", "memory", "sockets", "template", "instance_type", "comment")


@dataclass
class VMSpec:
    name: Optional[str] = None
    cluster: Optional[str] = None
    cores: Optional[Number] = None
    memory: Optional[Number] = None
    sockets: Optional[Number] = None
    display: Optional[DisplaySpec] = None
    interfaces: List[InterfaceSpec] = field(default_factory=list)
    volumes: List[VolumeSpec] = field(default_factory=list)
    template: Optional[str] = None
    image_id: Optional[str] = None
    instance_type: Optional[str] = None
    user_data: Optional[str] = None
    comment: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_attributes(self) -> Dict[str, Any]:
        """Flatten the scalar VM attributes; interfaces and volumes are attached separately."""
        attrs: Dict[str, Any] = dict(self.extra)
        for name in _VM_SCALAR_FIELDS:
            value = getattr(self, name)
            if value is not None:
                attrs[name] = value
        if self.display is not None:
            attrs["display"] = self.display.to_attributes()
        return attrs


@dataclass
class HostOperatingSystem:
    name: str
    major: Optional[Number] = None
    minor: Optional[Number] = None


@dataclass
class HostDefinition:
    name: str
    operatingsystem: Optional[HostOperatingSystem] = None
    architecture: Optional[str] = None
    params: Dict[str, str] = field(default_factory=dict)

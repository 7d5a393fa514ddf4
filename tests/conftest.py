"""Shared test fixtures and an in-memory oVirt engine."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from ovirt_adapter.constants import CONFIG_ENV_VARS, USE_V4_ENV_VAR
from ovirt_adapter.exceptions import NotFound
from ovirt_adapter.models import (
    Cluster,
    ComputeResourceConfig,
    Datacenter,
    InstanceType,
    Network,
    OSDescriptor,
    StorageDomain,
    Template,
    TemplateDisk,
)

DATA_DIR = Path(__file__).parent / "data"


class FakeVM:
    """Stand-in for a remote VM that records every device call."""

    def __init__(self, platform: "FakePlatform", vm_id: str, attrs: Dict[str, Any]) -> None:
        self.platform = platform
        self.id = vm_id
        self.name = attrs.get("name")
        self.status = "down"
        self.comment = attrs.get("comment") or ""
        self.display: Dict[str, Any] = {"type": "vnc", "address": "10.0.0.5", "port": 5901}
        self.attributes: Dict[str, Any] = dict(attrs, id=vm_id)
        self.nics: List[Dict[str, Any]] = []
        self.disks: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.saved = 0
        self.fail_on: Dict[str, Exception] = {}
        self._ids = itertools.count(1)

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise self.fail_on[op]

    def interfaces(self) -> List[Dict[str, Any]]:
        return [dict(nic) for nic in self.nics]

    def volumes(self) -> List[Dict[str, Any]]:
        return [dict(disk) for disk in self.disks]

    def add_interface(self, attrs: Dict[str, Any]) -> None:
        self._check("add_interface")
        self.calls.append(("add_interface", dict(attrs)))
        self.nics.append(dict(attrs, id=f"{self.id}-nic-{next(self._ids)}"))

    def destroy_interface(self, interface_id: str, blocking: bool = False) -> None:
        self._check("destroy_interface")
        self.calls.append(("destroy_interface", interface_id, blocking))
        self.nics = [nic for nic in self.nics if nic["id"] != interface_id]

    def add_volume(self, attrs: Dict[str, Any]) -> None:
        self._check("add_volume")
        self.calls.append(("add_volume", dict(attrs)))
        self.disks.append(dict(attrs, id=f"{self.id}-disk-{next(self._ids)}"))

    def destroy_volume(self, volume_id: str, blocking: bool = False) -> None:
        self._check("destroy_volume")
        self.calls.append(("destroy_volume", volume_id, blocking))
        self.disks = [disk for disk in self.disks if disk["id"] != volume_id]

    def save(self) -> "FakeVM":
        self.saved += 1
        return self

    def destroy(self) -> None:
        self._check("destroy")
        self.platform.vms.pop(self.id, None)
        self.platform.destroyed.append(self.id)

    def start(self, blocking: bool = False) -> None:
        self.calls.append(("start", blocking))
        self.status = "up"

    def start_with_cloudinit(self, user_data=None, blocking=False, use_custom_script=True) -> None:
        self.calls.append(("start_with_cloudinit", user_data, blocking, use_custom_script))
        self.status = "up"

    def ticket(self) -> str:
        return "ticket-123"


class FakePlatform:
    """In-memory engine implementing the client contract used by the adapter."""

    def __init__(self) -> None:
        self.version = "4.4"
        self.dcs = [Datacenter("dc-1", "Default"), Datacenter("dc-2", "Lab")]
        self.cluster_list = [Cluster("cl-1", "Default")]
        self.networks = {"cl-1": [Network("net-1", "ovirtmgmt"), Network("net-2", "storage")]}
        self.domains = [StorageDomain("sd-1", "data1"), StorageDomain("sd-2", "data2")]
        self.template_map: Dict[str, Template] = {
            "tpl-1": Template("tpl-1", "centos-base", cores=2, memory=2048, disks=[TemplateDisk("disk-1", "sd-1")]),
        }
        self.instance_type_map: Dict[str, InstanceType] = {
            "it-small": InstanceType("it-small", "Small", cores=1, memory=4096),
        }
        self.os_types = [OSDescriptor("0", "other"), OSDescriptor("1", "rhel_8x64")]
        self.vms: Dict[str, FakeVM] = {}
        self.created: List[Dict[str, Any]] = []
        self.destroyed: List[str] = []
        self.template_nics: List[Dict[str, Any]] = []
        self.datacenter_calls = 0
        self._ids = itertools.count(1)

    @property
    def api_version(self) -> str:
        return self.version

    def datacenters(self) -> List[Datacenter]:
        self.datacenter_calls += 1
        return list(self.dcs)

    def clusters(self) -> List[Cluster]:
        return list(self.cluster_list)

    def cluster_networks(self, cluster_id: str) -> List[Network]:
        return list(self.networks.get(cluster_id, []))

    def templates(self) -> List[Template]:
        return list(self.template_map.values())

    def get_template(self, template_id: str) -> Template:
        if template_id not in self.template_map:
            raise NotFound(f"template {template_id}", 404)
        return self.template_map[template_id]

    def instance_types(self) -> List[InstanceType]:
        return list(self.instance_type_map.values())

    def get_instance_type(self, instance_type_id: str) -> InstanceType:
        if instance_type_id not in self.instance_type_map:
            raise NotFound(f"instance type {instance_type_id}", 404)
        return self.instance_type_map[instance_type_id]

    def storage_domains(self, filters: Optional[Dict[str, Any]] = None) -> List[StorageDomain]:
        return list(self.domains)

    def operating_systems(self) -> List[OSDescriptor]:
        return list(self.os_types)

    def get_vm(self, vm_id: str) -> FakeVM:
        if vm_id not in self.vms:
            raise NotFound(f"vm {vm_id}", 404)
        return self.vms[vm_id]

    def create_vm(self, attrs: Dict[str, Any]) -> FakeVM:
        vm_id = f"vm-{next(self._ids)}"
        vm = FakeVM(self, vm_id, attrs)
        vm.nics = [dict(nic) for nic in self.template_nics]
        self.vms[vm_id] = vm
        self.created.append(dict(attrs))
        return vm


@pytest.fixture
def default_config() -> ComputeResourceConfig:
    """Return a valid HTTPS resource definition with nothing pinned yet."""
    return ComputeResourceConfig(
        url="https://engine.example.com/ovirt-engine/api",
        user="admin@internal",
        password="secret",
        datacenter="dc-1",
    )


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def client_factory(platform):
    """Factory handing out the shared fake platform and recording the trust stores it saw."""

    def _factory(cfg, store):
        _factory.stores.append(store)
        return platform

    _factory.stores = []
    return _factory


@pytest.fixture
def resource(default_config, client_factory):
    from ovirt_adapter.resource import OvirtComputeResource

    return OvirtComputeResource(default_config, client_factory=client_factory)


@pytest.fixture
def engine_ca() -> str:
    return (DATA_DIR / "engine-ca-1.pem").read_text()


@pytest.fixture
def other_ca() -> str:
    return (DATA_DIR / "engine-ca-2.pem").read_text()


@pytest.fixture
def clean_env(monkeypatch):
    """Clear every environment variable the config loader reads."""
    for name in list(CONFIG_ENV_VARS.values()) + [USE_V4_ENV_VAR]:
        monkeypatch.delenv(name, raising=False)

"""The oVirt compute resource: one configured engine and everything done against it."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ovirt_adapter import capabilities as caps
from ovirt_adapter.capabilities import OperatingSystemsProbe
from ovirt_adapter.config import save_resource_config
from ovirt_adapter.connection import ClientFactory, ConnectionManager
from ovirt_adapter.console import Proxy, console_session
from ovirt_adapter.constants import ALLOWED_DISPLAY_TYPES, DEFAULT_PAGE_SIZE, PROVIDER_FRIENDLY_NAME
from ovirt_adapter.exceptions import AdapterError
from ovirt_adapter.models import (
    Cluster,
    ComputeResourceConfig,
    ConnectionReport,
    HostDefinition,
    InstanceType,
    Network,
    OsCapability,
    OSDescriptor,
    StorageDomain,
    Template,
    VMSpec,
)
from ovirt_adapter.ostype import determine_os_type
from ovirt_adapter.provisioning import Provisioner
from ovirt_adapter.reconcile import Reconciler, update_required
from ovirt_adapter.utils import log, memory_gb_to_bytes, to_int


class OvirtComputeResource:
    provider_friendly_name = PROVIDER_FRIENDLY_NAME
    provided_attributes = {"mac": "mac"}
    user_data_supported = True
    supports_update = True
    supports_vms_pagination = True
    # Networks depend on the cluster, which may not be chosen yet.
    editable_network_interfaces = True

    def __init__(
        self,
        config: ComputeResourceConfig,
        client_factory: Optional[ClientFactory] = None,
        config_path: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.config_path = config_path
        self.connection = ConnectionManager(config, client_factory=client_factory, on_pin=self._on_pin)
        self.os_probe = OperatingSystemsProbe(config, self.connection, on_change=self._on_capability_change)
        self.provisioner = Provisioner(config, self.connection)
        self.reconciler = Reconciler(self.provisioner)

    @property
    def client(self) -> Any:
        return self.connection.get_connection()

    def _persist(self) -> None:
        if self.config_path is not None:
            save_resource_config(self.config, self.config_path)

    def _on_pin(self, cert: Optional[str]) -> None:
        self._persist()

    def _on_capability_change(self, capability: OsCapability) -> None:
        log("DEBUG", f"OS listing capability is now {capability.state.value}")
        self._persist()

    # -- connection --------------------------------------------------------

    def test_connection(self, force: bool = False) -> ConnectionReport:
        report = self.connection.test_connection(force=force)
        if report.ok:
            self.os_probe.supports_operating_systems()
        return report

    def update_public_key(self, force: bool = False) -> None:
        self.connection.update_public_key(force=force)

    def ca_cert(self) -> str:
        return self.connection.ca_cert()

    def api_version(self) -> Tuple[int, int]:
        return self.connection.api_version()

    # -- inventory ---------------------------------------------------------

    def datacenters(self) -> List[Tuple[str, str]]:
        return [(dc.name, dc.id) for dc in self.client.datacenters()]

    def get_datacenter_uuid(self, name: str) -> str:
        for dc_name, dc_id in self.datacenters():
            if dc_name == name:
                return dc_id
        raise AdapterError("Datacenter was not found")

    def clusters(self) -> List[Cluster]:
        return self.client.clusters()

    def available_clusters(self) -> List[Cluster]:
        return self.clusters()

    def networks(self, cluster_id: Optional[str] = None) -> List[Network]:
        if not cluster_id:
            return []
        return self.client.cluster_networks(cluster_id)

    def available_networks(self, cluster_id: Optional[str] = None) -> List[Network]:
        if cluster_id is None:
            raise AdapterError("Cluster ID is required to list available networks")
        return self.networks(cluster_id)

    def storage_domains(self, filters: Optional[Dict[str, Any]] = None) -> List[StorageDomain]:
        return self.client.storage_domains(filters)

    def available_storage_domains(self, cluster_id: Optional[str] = None) -> List[StorageDomain]:
        return self.storage_domains()

    def templates(self) -> List[Template]:
        return self.client.templates()

    def available_images(self) -> List[Template]:
        return self.templates()

    def template(self, template_id: str) -> Template:
        return self.provisioner.template(template_id)

    def instance_types(self) -> List[InstanceType]:
        return self.client.instance_types()

    def instance_type(self, instance_type_id: str) -> InstanceType:
        return self.provisioner.instance_type(instance_type_id)

    # -- capabilities ------------------------------------------------------

    def capabilities(self) -> List[str]:
        return caps.capabilities()

    def limits(self) -> caps.Limits:
        return caps.limits()

    def display_types(self) -> Tuple[str, ...]:
        return ALLOWED_DISPLAY_TYPES

    def nictypes(self) -> List[caps.NicType]:
        return caps.nictypes()

    def vm_instance_defaults(self) -> Dict[str, Any]:
        return caps.vm_instance_defaults(self.config)

    def supports_operating_systems(self) -> bool:
        return self.os_probe.supports_operating_systems()

    def available_operating_systems(self) -> List[OSDescriptor]:
        return self.os_probe.available_operating_systems()

    def determine_os_type(self, host: Optional[HostDefinition]) -> Optional[str]:
        return determine_os_type(host, self.available_operating_systems)

    def host_compute_attrs(self, host: HostDefinition) -> Dict[str, Any]:
        attrs: Dict[str, Any] = {}
        if self.supports_operating_systems():
            attrs["os"] = {"type": self.determine_os_type(host)}
        return attrs

    # -- VM lifecycle ------------------------------------------------------

    def find_vm_by_uuid(self, uuid: str) -> Any:
        return self.provisioner.find_vm_by_uuid(uuid)

    def create_vm(self, spec: VMSpec) -> Any:
        return self.provisioner.create_vm(spec)

    def save_vm(self, uuid: str, spec: VMSpec) -> Any:
        return self.reconciler.save_vm(uuid, spec)

    def destroy_vm(self, uuid: str) -> bool:
        return self.provisioner.destroy_vm(uuid)

    def start_vm(self, uuid: str) -> None:
        self.provisioner.start_vm(uuid)

    def start_with_cloudinit(self, uuid: str, user_data: Optional[str] = None) -> None:
        self.provisioner.start_with_cloudinit(uuid, user_data)

    def update_required(self, old_spec: VMSpec, new_spec: VMSpec) -> bool:
        return update_required(old_spec, new_spec)

    def console(self, uuid: str, proxy: Optional[Proxy] = None) -> Dict[str, Any]:
        return console_session(self.find_vm_by_uuid(uuid), ca_cert=self.config.public_key, proxy=proxy)

    # -- presentation ------------------------------------------------------

    def normalize_vm_attrs(self, spec: VMSpec) -> Dict[str, Any]:
        """Flatten a VM request into ids and display names for summaries."""
        normalized: Dict[str, Any] = {"cores": spec.cores, "memory": spec.memory}
        normalized["cluster_id"] = spec.cluster
        normalized["cluster_name"] = next((c.name for c in self.clusters() if c.id == spec.cluster), None)
        normalized["template_id"] = spec.template
        normalized["template_name"] = next((t.name for t in self.templates() if t.id == spec.template), None)

        cluster_networks = self.networks(spec.cluster)
        normalized["interfaces_attributes"] = [
            {
                "name": iface.name,
                "network_id": iface.network,
                "network_name": next((n.name for n in cluster_networks if n.id == iface.network), None),
            }
            for iface in spec.interfaces
        ]
        domains = self.storage_domains() if spec.volumes else []
        normalized["volumes_attributes"] = [
            {
                "size": str(memory_gb_to_bytes(volume.size_gb)),
                "storage_domain_id": volume.storage_domain,
                "storage_domain_name": next((d.name for d in domains if d.id == volume.storage_domain), None),
                "preallocate": bool(volume.preallocate),
                "bootable": bool(volume.bootable),
            }
            for volume in spec.volumes
        ]
        return normalized

    @staticmethod
    def vm_interfaces_attributes(vm: Any) -> List[Dict[str, Any]]:
        """Map a VM's NICs back to host interface attributes."""
        if not hasattr(vm, "interfaces"):
            return []
        return [
            {
                "mac": nic.get("mac"),
                "compute_attributes": {
                    "name": nic.get("name"),
                    "network": nic.get("network"),
                    "interface": nic.get("interface"),
                },
            }
            for nic in vm.interfaces() or []
        ]

    @staticmethod
    def parse_vms_list_params(params: Mapping[str, Any]) -> Dict[str, Any]:
        page_size = to_int(params.get("length")) or DEFAULT_PAGE_SIZE
        search = (params.get("search") or {}).get("value") or ""
        return {
            "search": search,
            "max": page_size,
            "page": (to_int(params.get("start")) or 0) // page_size + 1,
            "without_details": True,
        }

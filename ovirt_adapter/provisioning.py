"""VM creation with compensating cleanup, plus start and destroy."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, TypeVar, Union

from ovirt_adapter.capabilities import vm_instance_defaults
from ovirt_adapter.constants import BLOCKING_DELETE_BEFORE, DEFAULT_NIC_PREFIX, FIRST_BOOT_DEVICE
from ovirt_adapter.exceptions import CleanupFailedError, NotFound
from ovirt_adapter.inheritance import sanitize_inherited_vm_attributes
from ovirt_adapter.models import ComputeResourceConfig, InstanceType, InterfaceSpec, Template, VMSpec, VolumeSpec
from ovirt_adapter.utils import is_blank, is_cloud_init_payload, log

Entry = TypeVar("Entry", InterfaceSpec, VolumeSpec)


def nested_attributes_for(entries: Sequence[Entry]) -> List[Entry]:
    """Entries that describe real changes: no placeholder rows, no deletions of unsaved rows."""
    return [entry for entry in entries if not entry.placeholder and not (entry.delete and is_blank(entry.id))]


def default_iface_name(interfaces: Sequence[Union[InterfaceSpec, Dict[str, Any]]]) -> str:
    taken = set()
    for iface in interfaces:
        name = iface.get("name") if isinstance(iface, dict) else iface.name
        if not is_blank(name):
            taken.add(name)
    number = 1
    while f"{DEFAULT_NIC_PREFIX}{number}" in taken:
        number += 1
    return f"{DEFAULT_NIC_PREFIX}{number}"


def set_preallocated_attributes(attrs: Dict[str, Any], preallocate: bool) -> Dict[str, Any]:
    if preallocate:
        attrs["sparse"] = False
        attrs["format"] = "raw"
    else:
        attrs["sparse"] = True
    return attrs


def preallocate_and_clone_disks(volumes: Sequence[VolumeSpec], template: Template) -> List[Dict[str, Any]]:
    """Disk overrides for template disks that are moved or preallocated on clone."""
    disks: List[Dict[str, Any]] = []
    template_domains = {disk.id: disk.storage_domain for disk in template.disks}
    for volume in volumes:
        if is_blank(volume.id):
            continue
        if volume.preallocate:
            disks.append({"id": volume.id, "sparse": False, "format": "raw", "storage_domain": volume.storage_domain})
        elif volume.id in template_domains and template_domains[volume.id] != volume.storage_domain:
            disks.append({"id": volume.id, "storage_domain": volume.storage_domain})
    return disks


class Provisioner:
    def __init__(self, config: ComputeResourceConfig, connection: Any) -> None:
        self.config = config
        self.connection = connection

    @property
    def client(self) -> Any:
        return self.connection.get_connection()

    def requires_blocking(self) -> bool:
        """Older engines lose disk changes unless each one is waited for."""
        return self.connection.api_version() < BLOCKING_DELETE_BEFORE

    def find_vm_by_uuid(self, uuid: str) -> Any:
        vm = self.client.get_vm(uuid)
        if vm is None:
            raise NotFound(f"VM {uuid} not found")
        return vm

    def template(self, template_id: str) -> Template:
        template = self.client.get_template(template_id)
        if template is None:
            raise NotFound(f"Template {template_id} not found")
        return template

    def instance_type(self, instance_type_id: str) -> InstanceType:
        instance_type = self.client.get_instance_type(instance_type_id)
        if instance_type is None:
            raise NotFound(f"Instance type {instance_type_id} not found")
        return instance_type

    def create_vm(self, spec: VMSpec) -> Any:
        # Aliases and inherited fields are resolved on a copy; the caller keeps its request.
        spec = replace(spec, extra=dict(spec.extra))
        if spec.user_data:
            spec.comment = spec.user_data
        if spec.image_id:
            spec.template = spec.image_id
        template = self.template(spec.template) if spec.template else None
        instance_type = self.instance_type(spec.instance_type) if spec.instance_type else None
        inherited = sanitize_inherited_vm_attributes(spec, template, instance_type)

        attrs = {key: value for key, value in vm_instance_defaults(self.config).items() if key not in inherited}
        attrs["first_boot_dev"] = FIRST_BOOT_DEVICE
        attrs["quota"] = self.config.quota
        attrs.update(spec.to_attributes())
        if spec.volumes and template is not None:
            disks = preallocate_and_clone_disks(nested_attributes_for(spec.volumes), template)
            if disks:
                attrs["clone"] = True
                attrs["disks"] = disks

        vm = self.client.create_vm(attrs)
        log("INFO", f"Created VM {vm.name or spec.name} ({vm.id})")
        try:
            self.create_interfaces(vm, spec.interfaces)
            self.create_volumes(vm, spec.volumes)
        except Exception as exc:
            log("WARN", f"Attaching devices to VM {vm.id} failed, removing it: {exc}")
            try:
                self.destroy_vm(vm.id)
            except Exception as cleanup_exc:
                log("ERROR", f"Removing partially created VM {vm.id} failed: {cleanup_exc}")
                raise CleanupFailedError(vm.id, exc, cleanup_exc) from exc
            raise
        return vm

    def create_interfaces(self, vm: Any, interfaces: Sequence[InterfaceSpec]) -> List[Dict[str, Any]]:
        # Template NICs are replaced wholesale by the requested ones.
        for existing in vm.interfaces():
            vm.destroy_interface(existing["id"], blocking=True)
        requested = [replace(iface) for iface in nested_attributes_for(interfaces)]
        for iface in requested:
            if is_blank(iface.name):
                iface.name = default_iface_name(requested)
            vm.add_interface(iface.to_attributes())
        return vm.interfaces()

    def new_volume_attributes(self, volume: VolumeSpec) -> Dict[str, Any]:
        attrs: Dict[str, Any] = {"bootable": False, "quota": self.config.quota, "blocking": self.requires_blocking()}
        attrs.update(volume.to_attributes())
        return set_preallocated_attributes(attrs, volume.preallocate)

    def create_volumes(self, vm: Any, volumes: Sequence[VolumeSpec]) -> List[Dict[str, Any]]:
        for volume in nested_attributes_for(volumes):
            if is_blank(volume.id):
                vm.add_volume(self.new_volume_attributes(volume))
        return vm.volumes()

    def destroy_vm(self, uuid: str) -> bool:
        try:
            self.find_vm_by_uuid(uuid).destroy()
        except NotFound:
            log("DEBUG", f"VM {uuid} already removed")
        return True

    def start_vm(self, uuid: str) -> None:
        vm = self.find_vm_by_uuid(uuid)
        if is_cloud_init_payload(vm.comment):
            vm.start_with_cloudinit(user_data=vm.comment, blocking=True, use_custom_script=True)
            vm.comment = ""
            vm.save()
        else:
            vm.start(blocking=True)

    def start_with_cloudinit(self, uuid: str, user_data: Optional[str] = None) -> None:
        self.find_vm_by_uuid(uuid).start_with_cloudinit(user_data=user_data, blocking=True, use_custom_script=True)

"""Apply edits of an existing VM: attribute merge plus interface and volume diffs."""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Sequence

from ovirt_adapter.models import InterfaceSpec, VMSpec, VolumeSpec
from ovirt_adapter.provisioning import Provisioner, default_iface_name, nested_attributes_for
from ovirt_adapter.utils import deep_merge, is_blank, log


def attributes_differ(old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
    """Field-level comparison of the keys both sides define."""
    for key in set(old) & set(new):
        before, after = old[key], new[key]
        if isinstance(before, Mapping) and isinstance(after, Mapping):
            if attributes_differ(before, after):
                return True
        elif str(before) != str(after):
            return True
    return False


def _pending(entries: Sequence[Any]) -> bool:
    return any(not entry.placeholder and (is_blank(entry.id) or entry.delete) for entry in entries)


def update_required(
    old_spec: VMSpec,
    new_spec: VMSpec,
    base_diff: Callable[[Mapping[str, Any], Mapping[str, Any]], bool] = attributes_differ,
) -> bool:
    """True when saving `new_spec` would change anything on the platform.

    Placeholder rows never count, even with a blank id.
    """
    if base_diff(old_spec.to_attributes(), new_spec.to_attributes()):
        return True
    return _pending(new_spec.interfaces) or _pending(new_spec.volumes)


class Reconciler:
    """Applies a VM edit in place.

    Each remote call runs in order and the first failure stops the rest.
    Changes that already went through are kept.
    """

    def __init__(self, provisioner: Provisioner) -> None:
        self.provisioner = provisioner

    def save_vm(self, uuid: str, spec: VMSpec) -> Any:
        vm = self.provisioner.find_vm_by_uuid(uuid)
        vm.attributes = deep_merge(vm.attributes, spec.to_attributes())
        counts = self.changes(spec)
        log("DEBUG", f"Updating VM {uuid}: {counts['interfaces']} interface and {counts['volumes']} volume changes")
        try:
            self.update_interfaces(vm, spec.interfaces)
            self.update_volumes(vm, spec.volumes)
        except Exception as exc:
            log("ERROR", f"Updating devices of VM {uuid} stopped: {exc}")
            raise
        return vm.save()

    def update_interfaces(self, vm: Any, interfaces: Sequence[InterfaceSpec]) -> None:
        entries = nested_attributes_for(interfaces)
        for iface in entries:
            if iface.delete and not is_blank(iface.id):
                vm.destroy_interface(iface.id)
            if is_blank(iface.id):
                if is_blank(iface.name):
                    iface.name = default_iface_name(entries)
                vm.add_interface(iface.to_attributes())

    def update_volumes(self, vm: Any, volumes: Sequence[VolumeSpec]) -> None:
        blocking = self.provisioner.requires_blocking()
        for volume in nested_attributes_for(volumes):
            if volume.delete and not is_blank(volume.id):
                vm.destroy_volume(volume.id, blocking=blocking)
            if is_blank(volume.id):
                vm.add_volume(self.provisioner.new_volume_attributes(volume))

    @staticmethod
    def changes(spec: VMSpec) -> Dict[str, int]:
        """Count of pending device operations, for logging."""
        counts = {"interfaces": 0, "volumes": 0}
        for key, entries in (("interfaces", spec.interfaces), ("volumes", spec.volumes)):
            counts[key] = sum(1 for entry in nested_attributes_for(entries) if entry.delete or is_blank(entry.id))
        return counts

"""Resolve cores and memory inherited from templates and instance types."""

from __future__ import annotations

from typing import Dict, Optional

from ovirt_adapter.models import InstanceType, Template, VMSpec
from ovirt_adapter.utils import is_blank, to_int

INHERITED_FIELDS = ("cores", "memory")


def inherited_values(template: Optional[Template], instance_type: Optional[InstanceType]) -> Dict[str, int]:
    """Cores and memory the platform applies on its own; instance type wins over template."""
    values: Dict[str, int] = {}
    for source in (template, instance_type):
        if source is None:
            continue
        for name in INHERITED_FIELDS:
            value = to_int(getattr(source, name))
            if value is not None:
                values[name] = value
    return values


def sanitize_inherited_vm_attributes(
    spec: VMSpec,
    template: Optional[Template] = None,
    instance_type: Optional[InstanceType] = None,
) -> Dict[str, int]:
    """Drop cores/memory from `spec` where the platform would inherit them anyway.

    oVirt rejects empty values for these fields and may reject explicit
    values equal to the linked template or instance type. A field is cleared
    when it is blank and an inherited value exists, or when it equals the
    inherited value. Returns the inherited values so callers can leave the
    matching defaults out of the request as well.
    """
    inherited = inherited_values(template, instance_type)
    for name in INHERITED_FIELDS:
        explicit = getattr(spec, name)
        if name not in inherited:
            if is_blank(explicit):
                setattr(spec, name, None)
            continue
        if is_blank(explicit) or to_int(explicit) == inherited[name]:
            setattr(spec, name, None)
    return inherited

"""Tests for ovirt_adapter.inheritance module."""

from __future__ import annotations

from ovirt_adapter.inheritance import inherited_values, sanitize_inherited_vm_attributes
from ovirt_adapter.models import InstanceType, Template, VMSpec

TEMPLATE = Template("tpl-1", "base", cores=2, memory=2048)
SMALL = InstanceType("it-1", "small", cores=1, memory=4096)


class TestInheritedValues:
    def test_instance_type_wins(self):
        assert inherited_values(TEMPLATE, SMALL) == {"cores": 1, "memory": 4096}

    def test_partial_instance_type(self):
        assert inherited_values(TEMPLATE, InstanceType("it-2", "cpu-only", cores=4)) == {"cores": 4, "memory": 2048}

    def test_nothing_linked(self):
        assert inherited_values(None, None) == {}


class TestSanitize:
    def test_equal_values_are_dropped(self):
        spec = VMSpec(cores="2", memory=2048)
        sanitize_inherited_vm_attributes(spec, TEMPLATE)
        assert spec.cores is None
        assert spec.memory is None

    def test_blank_values_are_dropped(self):
        spec = VMSpec(cores="", memory=None)
        inherited = sanitize_inherited_vm_attributes(spec, TEMPLATE)
        assert spec.cores is None
        assert inherited == {"cores": 2, "memory": 2048}

    def test_different_values_are_kept(self):
        spec = VMSpec(cores=4, memory="8192")
        sanitize_inherited_vm_attributes(spec, TEMPLATE)
        assert spec.cores == 4
        assert spec.memory == "8192"

    def test_instance_type_value_is_compared(self):
        spec = VMSpec(cores=2, memory=4096)
        sanitize_inherited_vm_attributes(spec, TEMPLATE, SMALL)
        assert spec.cores == 2
        assert spec.memory is None

    def test_without_template_only_blanks_cleared(self):
        spec = VMSpec(cores=" ", memory=1024)
        assert sanitize_inherited_vm_attributes(spec) == {}
        assert spec.cores is None
        assert spec.memory == 1024

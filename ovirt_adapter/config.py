"""Configuration loading, validation and persistence for the oVirt compute adapter."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from ovirt_adapter.constants import (
    ALLOWED_DISPLAY_TYPES,
    ALLOWED_KEYBOARD_LAYOUTS,
    CONFIG_ENV_VARS,
    URL_SCHEMES,
    USE_V4_ENV_VAR,
)
from ovirt_adapter.exceptions import AdapterError, ValidationError
from ovirt_adapter.models import ComputeResourceConfig, OSDescriptor, OsCapability, OsCapabilityState
from ovirt_adapter.utils import get_env, get_env_bool, is_blank, log

_UNSUPPORTED_MARKER = "unsupported"


def load_resource_config(path: Optional[Path] = None) -> ComputeResourceConfig:
    """Read the resource definition from YAML, then apply OVIRT_* environment overrides."""
    data: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise AdapterError(f"Compute resource config missing: {path}")
        try:
            loaded = yaml.safe_load(path.read_text())
        except yaml.YAMLError as exc:
            raise AdapterError(f"Compute resource config {path} contains invalid YAML: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise AdapterError(f"Compute resource config {path} must contain a mapping")
        data = loaded

    for key, env_name in CONFIG_ENV_VARS.items():
        value = get_env(env_name)
        if value is not None:
            data[key] = value
    if get_env(USE_V4_ENV_VAR) is not None:
        data["use_v4"] = get_env_bool(USE_V4_ENV_VAR)

    return ComputeResourceConfig(
        url=str(data.get("url") or ""),
        user=str(data.get("user") or ""),
        password=str(data.get("password") or ""),
        datacenter=data.get("datacenter"),
        display_type=data.get("display_type") or "",
        keyboard_layout=data.get("keyboard_layout") or "",
        public_key=data.get("public_key"),
        quota=data.get("quota"),
        use_v4=data.get("use_v4", False),
        name=data.get("name") or "ovirt",
        available_operating_systems=capability_from_yaml(data.get("available_operating_systems")),
    )


def save_resource_config(cfg: ComputeResourceConfig, path: Path) -> None:
    data: Dict[str, Any] = {
        "name": cfg.name,
        "url": cfg.url,
        "user": cfg.user,
        "password": cfg.password,
        "datacenter": cfg.datacenter,
        "display_type": cfg.display_type,
        "keyboard_layout": cfg.keyboard_layout,
        "use_v4": cfg.use_v4,
    }
    if cfg.quota:
        data["quota"] = cfg.quota
    if cfg.public_key:
        data["public_key"] = cfg.public_key
    capability = capability_to_yaml(cfg.available_operating_systems)
    if capability is not None:
        data["available_operating_systems"] = capability
    path.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
    log("DEBUG", f"Saved compute resource config to {path}")


def capability_from_yaml(raw: Any) -> OsCapability:
    if raw is None:
        return OsCapability.unknown()
    if raw == _UNSUPPORTED_MARKER:
        return OsCapability.unsupported()
    if not isinstance(raw, list):
        raise AdapterError("available_operating_systems must be 'unsupported' or a list of mappings")
    systems = [
        OSDescriptor(id=str(item.get("id", "")), name=str(item.get("name", "")), href=item.get("href"))
        for item in raw
        if isinstance(item, dict)
    ]
    return OsCapability.available(systems)


def capability_to_yaml(capability: OsCapability) -> Any:
    if capability.state is OsCapabilityState.UNKNOWN:
        return None
    if capability.state is OsCapabilityState.UNSUPPORTED:
        return _UNSUPPORTED_MARKER
    return [{"id": os.id, "name": os.name, "href": os.href} for os in capability.systems]


def _url_is_well_formed(url: str) -> bool:
    if re.search(r"\s", url):
        return False
    try:
        parsed = urlparse(url)
        parsed.port  # raises on a malformed port
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.hostname)


def validate_resource_config(cfg: ComputeResourceConfig) -> None:
    errors: Dict[str, List[str]] = {}

    def add(key: str, message: str) -> None:
        errors.setdefault(key, []).append(message)

    if is_blank(cfg.url):
        add("url", "can't be blank")
    elif not _url_is_well_formed(cfg.url):
        add("url", "is invalid")
    elif urlparse(cfg.url).scheme.lower() not in URL_SCHEMES:
        add("url", f"URL must be valid and schema must be one of {', '.join(sorted(URL_SCHEMES))}")

    if is_blank(cfg.user):
        add("user", "can't be blank")
    if is_blank(cfg.password):
        add("password", "can't be blank")

    if cfg.display_type not in ALLOWED_DISPLAY_TYPES:
        add("display_type", f"'{cfg.display_type}' is not one of {', '.join(ALLOWED_DISPLAY_TYPES)}")
    if cfg.keyboard_layout not in ALLOWED_KEYBOARD_LAYOUTS:
        add("keyboard_layout", f"'{cfg.keyboard_layout}' is not a supported keyboard layout")

    if errors:
        raise ValidationError(errors)

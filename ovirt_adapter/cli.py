"""CLI entry points for the oVirt compute adapter."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import List, Optional

from ovirt_adapter.config import capability_to_yaml, load_resource_config, save_resource_config
from ovirt_adapter.constants import _SENSITIVE_FIELDS
from ovirt_adapter.exceptions import AdapterError, TrustRequired
from ovirt_adapter.models import ComputeResourceConfig
from ovirt_adapter.resource import OvirtComputeResource
from ovirt_adapter.utils import log


def show_config(cfg: ComputeResourceConfig) -> None:
    """Print the resolved resource configuration with secrets masked."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if field.name in _SENSITIVE_FIELDS:
            print(f"  {field.name}: {'********' if value else ''}")
        elif field.name == "available_operating_systems":
            print(f"  {field.name}: {value.state.value}")
        else:
            print(f"  {field.name}: {value}")
    print(f"  api_version: {cfg.api_version}")


def check_connection(resource: OvirtComputeResource, force: bool = False, save_path: Optional[Path] = None) -> int:
    report = resource.test_connection(force=force)
    if not report.ok:
        for key, messages in report.errors.items():
            for message in messages:
                log("ERROR", f"{key}: {message}")
        return 1
    log("SUCCESS", f"Connected to {resource.config.url} (state: {report.state.value})")
    if save_path is not None:
        save_resource_config(resource.config, save_path)
        log("INFO", f"Saved configuration to {save_path}")
    return 0


def list_datacenters(resource: OvirtComputeResource) -> None:
    datacenters = resource.datacenters()
    if not datacenters:
        log("WARN", "No datacenters found")
        return
    width = max(len(name) for name, _ in datacenters)
    for name, dc_id in datacenters:
        print(f"  {name:<{width}}  {dc_id}")


def list_os_types(resource: OvirtComputeResource) -> None:
    if not resource.supports_operating_systems():
        log("WARN", "The engine does not list operating systems")
        return
    for os_type in capability_to_yaml(resource.config.available_operating_systems):
        print(f"  {os_type['name']}  ({os_type['id']})")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="oVirt compute resource adapter")
    parser.add_argument("--config", type=Path, default=None, metavar="PATH", help="Resource definition (YAML)")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    parser.add_argument("--test-connection", action="store_true", help="Validate configuration and connect")
    parser.add_argument("--force", action="store_true", help="Re-pin the engine CA certificate")
    parser.add_argument("--save", action="store_true", help="Write the pinned certificate back to --config")
    parser.add_argument("--datacenters", action="store_true", help="List datacenters as name and id")
    parser.add_argument("--ca-cert", action="store_true", help="Print the engine CA certificate (unverified)")
    parser.add_argument("--os-types", action="store_true", help="List guest OS types known to the engine")
    args = parser.parse_args(argv)

    if args.save and args.config is None:
        parser.error("--save requires --config")

    try:
        cfg = load_resource_config(args.config)
    except AdapterError as exc:
        log("ERROR", str(exc))
        return 1

    if args.show_config:
        show_config(cfg)
        return 0

    resource = OvirtComputeResource(cfg, config_path=args.config if args.save else None)
    try:
        if args.ca_cert:
            cert = resource.ca_cert()
            if not cert:
                log("ERROR", f"Unable to fetch the CA certificate from {cfg.url}")
                return 1
            digest = TrustRequired("", cert).digest
            if digest:
                log("INFO", f"SHA-256 fingerprint: {digest}")
            print(cert.strip())
            return 0
        if args.test_connection:
            return check_connection(resource, force=args.force, save_path=args.config if args.save else None)
        if args.datacenters:
            list_datacenters(resource)
            return 0
        if args.os_types:
            list_os_types(resource)
            return 0
        parser.print_help()
        return 0
    except TrustRequired as exc:
        log("ERROR", str(exc))
        if exc.digest:
            log("INFO", f"Engine CA fingerprint: {exc.digest}; run --test-connection --save to pin it")
        return 1
    except AdapterError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
    finally:
        resource.connection.reset()

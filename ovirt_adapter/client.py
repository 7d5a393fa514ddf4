"""REST client for the oVirt engine API.

Implements the subset of the engine API the adapter consumes. Responses are
requested as JSON; every failure is turned into one of the adapter's typed
errors at the point the response is inspected.
"""

from __future__ import annotations

import os
import tempfile
import time
from typing import Any, Dict, List, Optional

import requests

from ovirt_adapter.constants import (
    BLOCKING_POLL_INTERVAL,
    BLOCKING_POLL_TIMEOUT,
    GIB,
    STORAGE_DOMAIN_ROLE,
)
from ovirt_adapter.exceptions import (
    CertificateVerificationError,
    NotFound,
    PlatformConnectionError,
    RemoteApiError,
    classify_status,
)
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
from ovirt_adapter.trust import CertificateStore
from ovirt_adapter.utils import is_blank, log, to_int


def _ref(item: Dict[str, Any], key: str) -> Optional[str]:
    value = item.get(key)
    if isinstance(value, dict):
        return value.get("id")
    return None


def _topology(item: Dict[str, Any], key: str) -> Optional[int]:
    return to_int(((item.get("cpu") or {}).get("topology") or {}).get(key))


def _error_detail(response: requests.Response) -> str:
    detail = ""
    try:
        fault = response.json()
    except ValueError:
        fault = None
    if isinstance(fault, dict):
        detail = " ".join(str(fault[key]) for key in ("reason", "detail") if fault.get(key))
    if not detail:
        detail = (response.text or "").strip()[:200]
    return f"{response.status_code} {response.reason or ''}: {detail}".strip()


def _vm_payload(attrs: Dict[str, Any]) -> Dict[str, Any]:
    """Translate flat adapter attributes into the engine's VM document."""
    payload: Dict[str, Any] = {}
    for key in ("name", "comment", "description"):
        if not is_blank(attrs.get(key)):
            payload[key] = attrs[key]
    if not is_blank(attrs.get("cluster")):
        payload["cluster"] = {"id": attrs["cluster"]}
    if not is_blank(attrs.get("template")):
        payload["template"] = {"id": attrs["template"]}
    if not is_blank(attrs.get("instance_type")):
        payload["instance_type"] = {"id": attrs["instance_type"]}
    if not is_blank(attrs.get("quota")):
        payload["quota"] = {"id": attrs["quota"]}
    memory = to_int(attrs.get("memory"))
    if memory is not None:
        payload["memory"] = memory
    topology = {}
    for key in ("cores", "sockets"):
        value = to_int(attrs.get(key))
        if value is not None:
            topology[key] = value
    if topology:
        payload["cpu"] = {"topology": topology}
    display = attrs.get("display")
    if isinstance(display, dict):
        payload["display"] = {
            key: display[key] for key in ("type", "keyboard_layout", "monitors") if key in display
        }
    os_section: Dict[str, Any] = {}
    if not is_blank(attrs.get("first_boot_dev")):
        os_section["boot"] = {"devices": {"device": [attrs["first_boot_dev"]]}}
    os_type = (attrs.get("os") or {}).get("type") if isinstance(attrs.get("os"), dict) else None
    if os_type:
        os_section["type"] = os_type
    if os_section:
        payload["os"] = os_section
    disks = attrs.get("disks") or []
    if disks:
        attachments = []
        for disk in disks:
            doc: Dict[str, Any] = {"id": disk["id"]}
            if "sparse" in disk:
                doc["sparse"] = disk["sparse"]
            if "format" in disk:
                doc["format"] = disk["format"]
            if not is_blank(disk.get("storage_domain")):
                doc["storage_domains"] = {"storage_domain": [{"id": disk["storage_domain"]}]}
            attachments.append({"disk": doc})
        payload["disk_attachments"] = {"disk_attachment": attachments}
    return payload


def _vm_attributes(item: Dict[str, Any]) -> Dict[str, Any]:
    display = item.get("display") or {}
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "status": item.get("status"),
        "comment": item.get("comment") or "",
        "cluster": _ref(item, "cluster"),
        "template": _ref(item, "template"),
        "instance_type": _ref(item, "instance_type"),
        "memory": to_int(item.get("memory")),
        "cores": _topology(item, "cores"),
        "sockets": _topology(item, "sockets"),
        "display": {
            "type": display.get("type"),
            "address": display.get("address"),
            "port": to_int(display.get("port")),
            "secure_port": to_int(display.get("secure_port")),
            "subject": (display.get("certificate") or {}).get("subject"),
            "keyboard_layout": display.get("keyboard_layout"),
            "monitors": to_int(display.get("monitors")),
        },
    }


class RemoteVM:
    """A VM on the engine together with its per-VM operations."""

    def __init__(self, client: "OvirtRestClient", data: Dict[str, Any]) -> None:
        self.client = client
        self.attributes: Dict[str, Any] = _vm_attributes(data)

    @property
    def id(self) -> str:
        return self.attributes["id"]

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get("name")

    @property
    def status(self) -> Optional[str]:
        return self.attributes.get("status")

    @property
    def display(self) -> Dict[str, Any]:
        return self.attributes.get("display") or {}

    @property
    def comment(self) -> str:
        return self.attributes.get("comment") or ""

    @comment.setter
    def comment(self, value: str) -> None:
        self.attributes["comment"] = value

    @property
    def _path(self) -> str:
        return f"vms/{self.id}"

    def interfaces(self) -> List[Dict[str, Any]]:
        data = self.client.get(f"{self._path}/nics")
        return [
            {
                "id": nic.get("id"),
                "name": nic.get("name"),
                "mac": (nic.get("mac") or {}).get("address"),
                "network": _ref(nic, "network") or _ref(nic, "vnic_profile"),
                "interface": nic.get("interface"),
            }
            for nic in data.get("nic", [])
        ]

    def volumes(self) -> List[Dict[str, Any]]:
        data = self.client.get(f"{self._path}/diskattachments", params={"follow": "disk"})
        volumes = []
        for attachment in data.get("disk_attachment", []):
            disk = attachment.get("disk") or {}
            domains = (disk.get("storage_domains") or {}).get("storage_domain") or [{}]
            volumes.append(
                {
                    "id": attachment.get("id"),
                    "bootable": str(attachment.get("bootable", "false")).lower() == "true",
                    "size": to_int(disk.get("provisioned_size")),
                    "storage_domain": domains[0].get("id"),
                    "sparse": disk.get("sparse"),
                    "format": disk.get("format"),
                }
            )
        return volumes

    def add_interface(self, attrs: Dict[str, Any]) -> None:
        payload: Dict[str, Any] = {"name": attrs.get("name")}
        if not is_blank(attrs.get("interface")):
            payload["interface"] = attrs["interface"]
        if not is_blank(attrs.get("network")):
            payload["network"] = {"id": attrs["network"]}
        self.client.post(f"{self._path}/nics", payload)

    def destroy_interface(self, interface_id: str, blocking: bool = False) -> None:
        path = f"{self._path}/nics/{interface_id}"
        self.client.delete(path)
        if blocking:
            self.client.wait_until_gone(path)

    def add_volume(self, attrs: Dict[str, Any]) -> None:
        disk: Dict[str, Any] = {
            "provisioned_size": int(float(attrs.get("size_gb") or 0) * GIB),
            "format": attrs.get("format") or ("raw" if attrs.get("sparse") is False else "cow"),
            "sparse": attrs.get("sparse", True),
            "wipe_after_delete": bool(attrs.get("wipe_after_delete", False)),
        }
        if not is_blank(attrs.get("storage_domain")):
            disk["storage_domains"] = {"storage_domain": [{"id": attrs["storage_domain"]}]}
        if not is_blank(attrs.get("quota")):
            disk["quota"] = {"id": attrs["quota"]}
        payload = {
            "bootable": bool(attrs.get("bootable", False)),
            "interface": attrs.get("interface") or "virtio",
            "active": True,
            "disk": disk,
        }
        created = self.client.post(f"{self._path}/diskattachments", payload)
        disk_id = (created.get("disk") or {}).get("id") or created.get("id")
        if attrs.get("blocking") and disk_id:
            self.client.wait_for_disk(disk_id)

    def destroy_volume(self, volume_id: str, blocking: bool = False) -> None:
        path = f"{self._path}/diskattachments/{volume_id}"
        self.client.delete(path, params={"detach_only": "false"})
        if blocking:
            self.client.wait_until_gone(f"disks/{volume_id}")

    def save(self) -> "RemoteVM":
        data = self.client.put(self._path, _vm_payload(self.attributes))
        if data:
            self.attributes = _vm_attributes(data)
        return self

    def destroy(self) -> None:
        self.client.delete(self._path)

    def start(self, blocking: bool = False) -> None:
        self.client.post(f"{self._path}/start", {"async": not blocking})

    def start_with_cloudinit(
        self, user_data: Optional[str] = None, blocking: bool = False, use_custom_script: bool = True
    ) -> None:
        initialization: Dict[str, Any] = {}
        if user_data:
            key = "custom_script" if use_custom_script else "user_data"
            initialization[key] = user_data
        payload = {"async": not blocking, "use_cloud_init": True, "vm": {"initialization": initialization}}
        self.client.post(f"{self._path}/start", payload)

    def ticket(self) -> Optional[str]:
        data = self.client.post(f"{self._path}/ticket", {})
        return (data.get("ticket") or {}).get("value")


class OvirtRestClient:
    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        datacenter: Optional[str] = None,
        api_version: str = "v3",
        ca_store: Optional[CertificateStore] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = url.rstrip("/")
        self.datacenter = datacenter
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (user, password)
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Version": "4" if api_version == "v4" else "3",
            }
        )
        self._ca_file: Optional[str] = None
        if ca_store is not None and len(ca_store):
            with tempfile.NamedTemporaryFile("w", suffix=".pem", delete=False) as handle:
                handle.write(ca_store.to_pem())
                self._ca_file = handle.name
            self.session.verify = self._ca_file
        self._api_version: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: ComputeResourceConfig, ca_store: Optional[CertificateStore] = None) -> "OvirtRestClient":
        return cls(
            url=cfg.url,
            user=cfg.user,
            password=cfg.password,
            datacenter=cfg.datacenter,
            api_version=cfg.api_version,
            ca_store=ca_store,
        )

    def close(self) -> None:
        self.session.close()
        if self._ca_file and os.path.exists(self._ca_file):
            os.unlink(self._ca_file)
        self._ca_file = None

    # -- transport -------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url
        log("DEBUG", f"{method} {url}")
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.exceptions.SSLError as exc:
            raise CertificateVerificationError(str(exc)) from exc
        except requests.RequestException as exc:
            raise PlatformConnectionError(exc) from exc
        if not 200 <= response.status_code < 300:
            raise classify_status(response.status_code, _error_detail(response))
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request("GET", path, params=params)

    def post(self, path: str, payload: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request("POST", path, params=params, payload=payload)

    def put(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", path, payload=payload)

    def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request("DELETE", path, params=params)

    def wait_until_gone(self, path: str, timeout: float = BLOCKING_POLL_TIMEOUT) -> None:
        deadline = time.time() + timeout
        while time.time() < deadline:
            try:
                self.get(path)
            except NotFound:
                return
            time.sleep(BLOCKING_POLL_INTERVAL)
        raise RemoteApiError(f"Timed out waiting for {path} to be removed")

    def wait_for_disk(self, disk_id: str, timeout: float = BLOCKING_POLL_TIMEOUT) -> None:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.get(f"disks/{disk_id}").get("status") == "ok":
                return
            time.sleep(BLOCKING_POLL_INTERVAL)
        raise RemoteApiError(f"Timed out waiting for disk {disk_id} to become ready")

    # -- platform contract ----------------------------------------------

    @property
    def api_version(self) -> str:
        if self._api_version is None:
            version = (self.get("").get("product_info") or {}).get("version") or {}
            self._api_version = f"{version.get('major', 0)}.{version.get('minor', 0)}"
        return self._api_version

    def datacenters(self) -> List[Datacenter]:
        return [Datacenter(id=dc["id"], name=dc.get("name", "")) for dc in self.get("datacenters").get("data_center", [])]

    def clusters(self) -> List[Cluster]:
        clusters = []
        for item in self.get("clusters").get("cluster", []):
            if self.datacenter and _ref(item, "data_center") not in (None, self.datacenter):
                continue
            clusters.append(Cluster(id=item["id"], name=item.get("name", "")))
        return clusters

    def cluster_networks(self, cluster_id: str) -> List[Network]:
        data = self.get(f"clusters/{cluster_id}/networks")
        return [Network(id=item["id"], name=item.get("name", "")) for item in data.get("network", [])]

    def templates(self) -> List[Template]:
        return [self._template(item) for item in self.get("templates").get("template", [])]

    def get_template(self, template_id: str) -> Template:
        template = self._template(self.get(f"templates/{template_id}"))
        attachments = self.get(f"templates/{template_id}/diskattachments", params={"follow": "disk"})
        for attachment in attachments.get("disk_attachment", []):
            disk = attachment.get("disk") or {}
            domains = (disk.get("storage_domains") or {}).get("storage_domain") or [{}]
            template.disks.append(TemplateDisk(id=attachment.get("id") or disk.get("id"), storage_domain=domains[0].get("id")))
        return template

    def instance_types(self) -> List[InstanceType]:
        return [self._instance_type(item) for item in self.get("instancetypes").get("instance_type", [])]

    def get_instance_type(self, instance_type_id: str) -> InstanceType:
        return self._instance_type(self.get(f"instancetypes/{instance_type_id}"))

    def storage_domains(self, filters: Optional[Dict[str, Any]] = None) -> List[StorageDomain]:
        filters = dict(filters or {})
        role = filters.pop("role", STORAGE_DOMAIN_ROLE)
        domains = []
        for item in self.get("storagedomains").get("storage_domain", []):
            if role and item.get("type") != role:
                continue
            if any(str(item.get(key)) != str(value) for key, value in filters.items()):
                continue
            domains.append(StorageDomain(id=item["id"], name=item.get("name", "")))
        return domains

    def operating_systems(self) -> List[OSDescriptor]:
        data = self.get("operatingsystems")
        return [
            OSDescriptor(id=item.get("id", ""), name=item.get("name", ""), href=item.get("href"))
            for item in data.get("operating_system", [])
        ]

    def get_vm(self, vm_id: str) -> RemoteVM:
        return RemoteVM(self, self.get(f"vms/{vm_id}"))

    def create_vm(self, attrs: Dict[str, Any]) -> RemoteVM:
        params = {"clone": "true"} if attrs.get("clone") else None
        return RemoteVM(self, self.post("vms", _vm_payload(attrs), params=params))

    @staticmethod
    def _template(item: Dict[str, Any]) -> Template:
        return Template(
            id=item["id"],
            name=item.get("name", ""),
            cores=_topology(item, "cores"),
            memory=to_int(item.get("memory")),
        )

    @staticmethod
    def _instance_type(item: Dict[str, Any]) -> InstanceType:
        return InstanceType(
            id=item["id"],
            name=item.get("name", ""),
            cores=_topology(item, "cores"),
            memory=to_int(item.get("memory")),
        )

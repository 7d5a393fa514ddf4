"""Console proxy session descriptors for running VMs."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ovirt_adapter.exceptions import VMNotRunningError

Proxy = Callable[[Dict[str, Any]], Dict[str, Any]]


def _passthrough(opts: Dict[str, Any]) -> Dict[str, Any]:
    return dict(opts)


def console_session(vm: Any, ca_cert: Optional[str] = None, proxy: Optional[Proxy] = None) -> Dict[str, Any]:
    """Describe how to reach the VM console through a websocket proxy.

    `proxy` receives the target host, port and ticket and returns the
    session it started. The VM display details are merged on top.
    """
    if vm.status == "down":
        raise VMNotRunningError("VM is not running!")
    start = proxy or _passthrough
    display = vm.display
    if "spice" in str(display.get("type") or "").lower():
        if display.get("secure_port"):
            target = {"host_port": display["secure_port"], "ssl_target": True}
        else:
            target = {"host_port": display.get("port")}
        target.update({"host": display.get("address"), "password": vm.ticket()})
        session = start(target)
        session.update(
            {
                "name": vm.name,
                "address": display.get("address"),
                "secure_port": display.get("secure_port"),
                "ca_cert": ca_cert,
                "subject": display.get("subject"),
                "type": "spice",
            }
        )
        return session
    session = start({"host": display.get("address"), "host_port": display.get("port"), "password": vm.ticket()})
    session.update({"name": vm.name, "type": "vnc"})
    return session

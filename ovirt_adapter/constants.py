"""Global constants for the oVirt compute adapter."""

from __future__ import annotations

import os
import re

ALLOWED_DISPLAY_TYPES = ("vnc", "spice")
DEFAULT_DISPLAY_TYPE = "vnc"
DEFAULT_KEYBOARD_LAYOUT = "en-us"

ALLOWED_KEYBOARD_LAYOUTS = (
    "ar",
    "da",
    "de",
    "de-ch",
    "en-gb",
    "en-us",
    "es",
    "et",
    "fi",
    "fo",
    "fr",
    "fr-be",
    "fr-ca",
    "fr-ch",
    "hr",
    "hu",
    "is",
    "it",
    "ja",
    "lt",
    "lv",
    "mk",
    "nl",
    "nl-be",
    "no",
    "pl",
    "pt",
    "pt-br",
    "ru",
    "sl",
    "sv",
    "th",
    "tr",
)

URL_SCHEMES = {"http", "https"}

TRUTHY = {"1", "true", "yes", "on"}

MIB = 1024 * 1024
GIB = 1024 * MIB

CAPABILITIES = ("build", "image", "new_volume")
MAX_CPU_COUNT = 16
MAX_SOCKET_COUNT = 16
MAX_MEMORY = 16 * GIB

DEFAULT_MEMORY = 1024 * MIB
DEFAULT_CORES = 1
DEFAULT_SOCKETS = 1
# -1 lets the platform pick the console port.
DISPLAY_PORT_UNSET = -1
DEFAULT_MONITORS = 1

FIRST_BOOT_DEVICE = "network"
DEFAULT_OS_TYPE = "other_linux"
OS_TYPE_HOST_PARAM = "ovirt_ostype"

# Engines older than 3.1 corrupt state when disks are added/removed asynchronously.
BLOCKING_DELETE_BEFORE = (3, 1)

# Well-known locations of the engine CA, tried in order.
CA_CERT_LOCATIONS = (
    ("/ovirt-engine/services/pki-resource", "resource=ca-certificate&format=X509-PEM-CA"),
    ("/ca.crt", ""),
)

# The engine answers 406 to a bare POST over plain HTTP when HTTPS is not enforced.
HTTPS_NOT_REQUIRED_STATUS = 406

CLOUD_INIT_SIGNATURE_RE = re.compile(r"cloud-config|^#!/", re.MULTILINE)
PEM_BLOCK_SPLIT_RE = re.compile(r"(?=-----BEGIN)")

DEFAULT_NIC_PREFIX = "nic"
NIC_TYPES = (
    ("virtio", "VirtIO"),
    ("rtl8139", "rtl8139"),
    ("e1000", "e1000"),
    ("pci_passthrough", "PCI Passthrough"),
)

PROVIDER_FRIENDLY_NAME = "oVirt"
STORAGE_DOMAIN_ROLE = "data"
DEFAULT_PAGE_SIZE = 10
BLOCKING_POLL_INTERVAL = 2.0
BLOCKING_POLL_TIMEOUT = 300.0

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

_SENSITIVE_FIELDS = {"password", "public_key"}

CONFIG_ENV_VARS = {
    "url": "OVIRT_URL",
    "user": "OVIRT_USER",
    "password": "OVIRT_PASSWORD",
    "datacenter": "OVIRT_DATACENTER",
    "display_type": "OVIRT_DISPLAY_TYPE",
    "keyboard_layout": "OVIRT_KEYBOARD_LAYOUT",
    "quota": "OVIRT_QUOTA",
    "public_key": "OVIRT_PUBLIC_KEY",
}
USE_V4_ENV_VAR = "OVIRT_USE_V4"

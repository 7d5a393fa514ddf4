"""Utility functions for the oVirt compute adapter."""

from __future__ import annotations

import os
import re
from typing import Any, Dict, Optional, Tuple

from ovirt_adapter.constants import (
    _LOG_VERBOSE,
    CLOUD_INIT_SIGNATURE_RE,
    GIB,
    TRUTHY,
)


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def is_blank(value: Any) -> bool:
    """Return True for None, empty strings/collections and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return not value
    return False


def coerce_use_v4(value: Any) -> bool:
    """Only `True` and the form value '1' enable the v4 protocol."""
    return value is True or value == "1"


def to_int(value: Any) -> Optional[int]:
    if is_blank(value):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def deep_merge(base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `base` with `changes` merged in, recursing into nested dicts."""
    merged = dict(base)
    for key, value in changes.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def memory_gb_to_bytes(value: Any) -> int:
    try:
        return int(float(value) * GIB)
    except (TypeError, ValueError):
        return 0


def parse_api_version(raw: Any) -> Tuple[int, int]:
    """Turn '4.4.10' style version strings into a comparable (major, minor) tuple."""
    numbers = re.findall(r"\d+", str(raw or ""))
    if not numbers:
        return (0, 0)
    major = int(numbers[0])
    minor = int(numbers[1]) if len(numbers) > 1 else 0
    return (major, minor)


def is_cloud_init_payload(text: Optional[str]) -> bool:
    """True when the text looks like a cloud-config document or a script."""
    if not text:
        return False
    return CLOUD_INIT_SIGNATURE_RE.search(text) is not None

"""Custom exceptions for the oVirt compute adapter."""

from __future__ import annotations

import hashlib
import ssl
from enum import Enum
from typing import Dict, List, Optional


class AdapterError(RuntimeError):
    """Base error for every failure raised by the adapter."""


class ValidationError(AdapterError):
    """Raised when the resource configuration is rejected before any remote call."""

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        self.errors = errors
        parts = [f"{field}: {', '.join(messages)}" for field, messages in errors.items()]
        super().__init__("; ".join(parts) or "invalid configuration")


class CertificateParseError(AdapterError):
    """Raised when a pinned certificate bundle contains a malformed PEM block."""


class CertificateVerificationError(AdapterError):
    """Raised by the transport when the remote certificate cannot be verified."""


class TrustRequired(AdapterError):
    """The remote CA is not trusted yet; `fingerprint` holds the certificate to pin."""

    def __init__(self, message: str, fingerprint: Optional[str]) -> None:
        super().__init__(message)
        self.fingerprint = fingerprint

    @property
    def digest(self) -> Optional[str]:
        if not self.fingerprint:
            return None
        try:
            der = ssl.PEM_cert_to_DER_cert(self.fingerprint.strip())
        except ValueError:
            return None
        raw = hashlib.sha256(der).hexdigest().upper()
        return ":".join(raw[i : i + 2] for i in range(0, len(raw), 2))


class PlatformConnectionError(AdapterError):
    """Raised when the platform cannot be reached at all."""

    def __init__(self, cause: object) -> None:
        super().__init__(f"Unable to reach the virtualization platform: {cause}")
        self.cause = cause


class ErrorKind(Enum):
    UNAUTHORIZED = "unauthorized"
    HTTPS_REQUIRED = "https_required"
    NOT_FOUND = "not_found"
    REMOTE = "remote"


class RemoteApiError(AdapterError):
    """A remote call returned a non-success status."""

    kind = ErrorKind.REMOTE

    def __init__(self, detail: str, status: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status = status


class Unauthorized(RemoteApiError):
    kind = ErrorKind.UNAUTHORIZED


class HttpsRequired(RemoteApiError):
    kind = ErrorKind.HTTPS_REQUIRED


class NotFound(RemoteApiError):
    kind = ErrorKind.NOT_FOUND


class UnsupportedOperationError(AdapterError):
    """Raised when the platform or its protocol version lacks a capability."""


class VMNotRunningError(AdapterError):
    """Raised when an operation needs a running VM."""


class CleanupFailedError(AdapterError):
    """The compensating destroy after a partial creation failed as well."""

    def __init__(self, vm_id: str, original: BaseException, cleanup_error: BaseException) -> None:
        super().__init__(
            f"Creating VM {vm_id} failed ({original}) and removing it afterwards also failed "
            f"({cleanup_error}); the VM must be removed manually"
        )
        self.vm_id = vm_id
        self.original = original
        self.cleanup_error = cleanup_error


def classify_status(status: int, detail: str) -> RemoteApiError:
    """Build the error matching an HTTP status code returned by the platform."""
    if status == 401:
        return Unauthorized(detail, status)
    if status == 404:
        return NotFound(detail, status)
    if 300 <= status < 400:
        return HttpsRequired(detail, status)
    return RemoteApiError(detail, status)

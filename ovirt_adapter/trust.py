"""Certificate trust helpers: pinned CA bundles and unverified CA discovery."""

from __future__ import annotations

import ssl
import warnings
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

import requests
from urllib3.exceptions import InsecureRequestWarning

from ovirt_adapter.constants import CA_CERT_LOCATIONS, PEM_BLOCK_SPLIT_RE
from ovirt_adapter.exceptions import CertificateParseError
from ovirt_adapter.utils import is_blank, log


@dataclass
class CertificateStore:
    """DER-encoded CA certificates trusted for one engine."""

    certificates: List[bytes] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.certificates)

    def to_pem(self) -> str:
        return "".join(ssl.DER_cert_to_PEM_cert(der) for der in self.certificates)


def build_ca_cert_store(certs: Optional[str]) -> Optional[CertificateStore]:
    """Split a PEM bundle on its BEGIN markers and load every block.

    Returns None when nothing is pinned. Any block that is not a valid
    certificate aborts the whole bundle with CertificateParseError.
    """
    if is_blank(certs):
        return None
    assert certs is not None
    store = CertificateStore()
    # Loading into a throwaway context lets OpenSSL reject bad DER.
    probe = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    for block in PEM_BLOCK_SPLIT_RE.split(certs):
        if not block.strip():
            continue
        try:
            der = ssl.PEM_cert_to_DER_cert(block.strip())
            probe.load_verify_locations(cadata=der)
        except (ValueError, ssl.SSLError) as exc:
            raise CertificateParseError(f"Failed to create X509 certificate, error: {exc}") from exc
        store.certificates.append(der)
    return store


def fetch_unverified(url: str, path: str, query: str = "", timeout: Optional[float] = None) -> Optional[str]:
    """GET `path` on the engine host without certificate checks.

    Only for showing the CA to an operator; never use the result to decide trust.
    """
    parsed = urlparse(url)
    target = urlunparse((parsed.scheme, parsed.netloc, path, "", query, ""))
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", InsecureRequestWarning)
            response = requests.get(target, verify=False, timeout=timeout)
    except requests.RequestException as exc:
        log("WARN", f"Unable to fetch CA certificate on path {path}: {exc}")
        return None
    # 404 and friends do not raise, so check the status explicitly.
    if not 200 <= response.status_code < 300:
        log("DEBUG", f"CA certificate not available on path {path} (HTTP {response.status_code})")
        return None
    body = response.text
    return body if body and body.strip() else None


def fetch_ca_cert(url: str, timeout: Optional[float] = None) -> str:
    for path, query in CA_CERT_LOCATIONS:
        body = fetch_unverified(url, path, query, timeout=timeout)
        if body:
            return body
    return ""

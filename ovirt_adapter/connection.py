"""Connection and certificate trust management for one compute resource."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Tuple

import requests

from ovirt_adapter.client import OvirtRestClient
from ovirt_adapter.config import validate_resource_config
from ovirt_adapter.constants import HTTPS_NOT_REQUIRED_STATUS
from ovirt_adapter.exceptions import (
    AdapterError,
    CertificateVerificationError,
    HttpsRequired,
    NotFound,
    PlatformConnectionError,
    RemoteApiError,
    TrustRequired,
    Unauthorized,
    ValidationError,
    classify_status,
)
from ovirt_adapter.models import ComputeResourceConfig, ConnectionReport, ConnectionState, TrustState
from ovirt_adapter.trust import CertificateStore, build_ca_cert_store, fetch_ca_cert
from ovirt_adapter.utils import is_blank, log, parse_api_version

ClientFactory = Callable[[ComputeResourceConfig, Optional[CertificateStore]], Any]

UNTRUSTED_CA_MESSAGE = (
    "The remote system presented a public key signed by an unidentified certificate authority. "
    "If you are sure the remote system is authentic, test the connection again to trust it"
)


def default_client_factory(cfg: ComputeResourceConfig, store: Optional[CertificateStore]) -> Any:
    return OvirtRestClient.from_config(cfg, store)


def _close(client: Any) -> None:
    close = getattr(client, "close", None)
    if callable(close):
        close()


class _Flight:
    """One in-progress dial that concurrent callers wait on."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.client: Any = None
        self.error: Optional[BaseException] = None


class ConnectionManager:
    """Owns the cached platform client and the pinned CA for one engine.

    Only one dial runs at a time. Callers arriving while it is in flight
    wait for it and receive the same client or the same exception. A failed
    dial is not cached, so the next call dials again.
    """

    def __init__(
        self,
        config: ComputeResourceConfig,
        client_factory: Optional[ClientFactory] = None,
        on_pin: Optional[Callable[[Optional[str]], None]] = None,
    ) -> None:
        self.config = config
        self.client_factory = client_factory or default_client_factory
        self.on_pin = on_pin
        self.trust = TrustState(pinned=config.public_key)
        self.state = ConnectionState.NO_CREDENTIALS
        self.dial_count = 0
        self._lock = threading.Lock()
        self._client: Any = None
        self._flight: Optional[_Flight] = None
        self._api_version: Optional[Tuple[int, int]] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def get_connection(self) -> Any:
        if is_blank(self.config.url) or is_blank(self.config.user) or is_blank(self.config.password):
            self.state = ConnectionState.NO_CREDENTIALS
            raise ValidationError({"base": ["url, user and password are required to connect"]})

        with self._lock:
            if self._client is not None:
                return self._client
            flight = self._flight
            leader = flight is None
            if leader:
                flight = self._flight = _Flight()
        assert flight is not None

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.client

        try:
            flight.client = self._dial()
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._lock:
                if flight.error is None:
                    self._client = flight.client
                self._flight = None
            flight.done.set()
        return flight.client

    def _dial(self) -> Any:
        self.dial_count += 1
        self.state = ConnectionState.DIALING
        log("DEBUG", f"Connecting to {self.config.url} (api {self.config.api_version})")
        store = build_ca_cert_store(self.trust.pinned)
        try:
            client = self.client_factory(self.config, store)
            try:
                client.datacenters()
                self.check_https_required()
            except BaseException:
                _close(client)
                raise
        except CertificateVerificationError as exc:
            self.state = ConnectionState.UNTRUSTED
            log("DEBUG", f"Certificate of {self.config.url} is not trusted: {exc}")
            raise TrustRequired(UNTRUSTED_CA_MESSAGE, self.ca_cert()) from exc
        except Unauthorized:
            self.state = ConnectionState.UNAUTHORIZED
            raise
        except (PlatformConnectionError, RemoteApiError):
            self.state = ConnectionState.UNREACHABLE
            raise
        self.state = ConnectionState.CONNECTED
        self.trust.validated = True
        log("DEBUG", f"Connected to {self.config.url}")
        return client

    def check_https_required(self) -> None:
        """Fail closed when a plain-HTTP endpoint does not confirm HTTPS is optional."""
        if not self.config.url.lower().startswith("http://"):
            return
        try:
            response = requests.post(self.config.url, data={}, allow_redirects=False)
        except requests.RequestException as exc:
            raise PlatformConnectionError(exc) from exc
        status = response.status_code
        if 200 <= status < 300 or status == HTTPS_NOT_REQUIRED_STATUS:
            return
        if status in (401, 404):
            raise classify_status(status, f"{status} {response.reason or ''}".strip())
        raise HttpsRequired(f"HTTPS URL is required for API access (HTTP {status})", status)

    def reset(self) -> None:
        with self._lock:
            client, self._client = self._client, None
            self._api_version = None
        _close(client)

    def pin(self, cert: str) -> None:
        self.trust.pinned = cert
        self.trust.validated = False
        self.config.public_key = cert
        self.reset()
        digest = TrustRequired("", cert).digest
        log("INFO", f"Pinned CA certificate for {self.config.url} (SHA-256 {digest or 'unknown'})")
        if self.on_pin is not None:
            self.on_pin(cert)

    def update_public_key(self, force: bool = False) -> None:
        """Pin the engine's CA on first use, or re-pin it when forced.

        With a certificate already pinned and `force` unset this is a no-op.
        A forced re-pin that fails for a reason other than trust restores the
        previous certificate.
        """
        if self.trust.pinned and not force:
            return
        previous = self.trust.pinned
        if force:
            self.trust.pinned = None
            self.reset()
        try:
            self.get_connection()
        except TrustRequired as exc:
            cert = exc.fingerprint or previous
            if cert:
                self.pin(cert)
        except AdapterError:
            if force:
                self.trust.pinned = previous
            raise
        else:
            if force and self.trust.pinned is None and self.config.public_key:
                self.unpin()

    def unpin(self) -> None:
        """Drop a stale pinned certificate once the engine verifies against the system CAs."""
        self.trust.pinned = None
        self.config.public_key = None
        log("INFO", f"Dropped pinned CA certificate for {self.config.url}, system CAs trust it")
        if self.on_pin is not None:
            self.on_pin(None)

    def test_connection(self, force: bool = False) -> ConnectionReport:
        try:
            validate_resource_config(self.config)
        except ValidationError as exc:
            self.state = ConnectionState.NO_CREDENTIALS
            return ConnectionReport(ConnectionState.NO_CREDENTIALS, dict(exc.errors))

        report = ConnectionReport(ConnectionState.DIALING)
        cached = self.connected
        try:
            self.update_public_key(force=force)
            client = self.get_connection()
            if cached:
                client.datacenters()
        except TrustRequired as exc:
            report.add("base", str(exc))
        except Unauthorized:
            report.add("user", "Wrong user or password")
        except HttpsRequired:
            report.add("url", "HTTPS URL is required for API access")
        except NotFound:
            report.add("url", "API endpoint not found, check the URL")
        except (PlatformConnectionError, RemoteApiError, CertificateVerificationError) as exc:
            report.add("base", str(exc))
        except ValidationError as exc:
            for key, messages in exc.errors.items():
                for message in messages:
                    report.add(key, message)
        report.state = self.state
        return report

    def ca_cert(self) -> str:
        return fetch_ca_cert(self.config.url)

    def api_version(self) -> Tuple[int, int]:
        if self._api_version is None:
            self._api_version = parse_api_version(self.get_connection().api_version)
        return self._api_version

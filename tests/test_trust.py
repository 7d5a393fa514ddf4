"""Tests for ovirt_adapter.trust module."""

from __future__ import annotations

import hashlib
import ssl
from unittest.mock import MagicMock, patch

import pytest
import requests

from ovirt_adapter.exceptions import CertificateParseError, TrustRequired
from ovirt_adapter.trust import build_ca_cert_store, fetch_ca_cert, fetch_unverified

ENGINE_CA_1_SHA256 = "c68ea67ebb5c7ce7a2186b2722355ef6b2a0a09cfe32640df5da7592ac4052c1"


def _response(status, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    return response


class TestBuildCaCertStore:
    @pytest.mark.parametrize("value", [None, "", "   \n"])
    def test_blank_is_none(self, value):
        assert build_ca_cert_store(value) is None

    def test_single_certificate(self, engine_ca):
        store = build_ca_cert_store(engine_ca)
        assert len(store) == 1
        assert hashlib.sha256(store.certificates[0]).hexdigest() == ENGINE_CA_1_SHA256

    def test_bundle_keeps_every_certificate(self, engine_ca, other_ca):
        store = build_ca_cert_store(engine_ca + other_ca + engine_ca)
        assert len(store) == 3

    def test_to_pem_reloads(self, engine_ca, other_ca):
        store = build_ca_cert_store(engine_ca + other_ca)
        assert len(build_ca_cert_store(store.to_pem())) == 2

    def test_garbage_block_fails(self, engine_ca):
        bundle = engine_ca + "-----BEGIN CERTIFICATE-----\nbm90IGEgY2VydA==\n-----END CERTIFICATE-----\n"
        with pytest.raises(CertificateParseError, match="Failed to create X509 certificate"):
            build_ca_cert_store(bundle)

    def test_text_without_markers_fails(self):
        with pytest.raises(CertificateParseError):
            build_ca_cert_store("definitely not pem")


class TestDigest:
    def test_fingerprint_digest(self, engine_ca):
        digest = TrustRequired("untrusted", engine_ca).digest
        assert digest.replace(":", "").lower() == ENGINE_CA_1_SHA256
        assert digest.count(":") == 31

    def test_digest_without_certificate(self):
        assert TrustRequired("untrusted", None).digest is None


class TestFetchUnverified:
    def test_builds_url_and_disables_verification(self):
        with patch("ovirt_adapter.trust.requests.get", return_value=_response(200, "PEM")) as mock_get:
            body = fetch_unverified("https://engine.example.com:8443/ovirt-engine/api", "/ca.crt")
        assert body == "PEM"
        mock_get.assert_called_once_with("https://engine.example.com:8443/ca.crt", verify=False, timeout=None)

    def test_non_success_returns_none(self):
        with patch("ovirt_adapter.trust.requests.get", return_value=_response(404, "missing")):
            assert fetch_unverified("https://engine", "/ca.crt") is None

    def test_transport_error_logs_warning(self):
        error = requests.ConnectionError("refused")
        with patch("ovirt_adapter.trust.requests.get", side_effect=error), patch("ovirt_adapter.trust.log") as mock_log:
            assert fetch_unverified("https://engine", "/ca.crt") is None
        level, message = mock_log.call_args[0]
        assert level == "WARN"
        assert "Unable to fetch CA certificate on path /ca.crt" in message


class TestFetchCaCert:
    def test_prefers_pki_resource(self):
        with patch("ovirt_adapter.trust.requests.get", return_value=_response(200, "PKI")) as mock_get:
            assert fetch_ca_cert("https://engine/ovirt-engine/api") == "PKI"
        url = mock_get.call_args[0][0]
        assert url == "https://engine/ovirt-engine/services/pki-resource?resource=ca-certificate&format=X509-PEM-CA"

    def test_falls_back_to_ca_crt(self):
        responses = [_response(404), _response(200, "LEGACY")]
        with patch("ovirt_adapter.trust.requests.get", side_effect=responses) as mock_get:
            assert fetch_ca_cert("https://engine") == "LEGACY"
        assert mock_get.call_args[0][0] == "https://engine/ca.crt"

    def test_empty_when_both_fail(self):
        with patch("ovirt_adapter.trust.requests.get", return_value=_response(500)):
            assert fetch_ca_cert("https://engine") == ""


def test_der_matches_pem(engine_ca):
    store = build_ca_cert_store(engine_ca)
    assert store.certificates[0] == ssl.PEM_cert_to_DER_cert(engine_ca.strip())

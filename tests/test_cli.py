"""Tests for ovirt_adapter.cli module."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import yaml

from ovirt_adapter import cli
from ovirt_adapter.exceptions import PlatformConnectionError, TrustRequired
from ovirt_adapter.models import ConnectionReport, ConnectionState, OSDescriptor, OsCapability


def _write_config(tmp_path, **overrides):
    data = {
        "url": "https://engine.example.com/ovirt-engine/api",
        "user": "admin@internal",
        "password": "hunter2",
        "datacenter": "dc-1",
    }
    data.update(overrides)
    path = tmp_path / "resource.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestShowConfig:
    def test_masks_sensitive_fields(self, default_config, capsys, engine_ca):
        default_config.public_key = engine_ca
        cli.show_config(default_config)
        out = capsys.readouterr().out
        assert "hunter2" not in out
        assert "secret" not in out
        assert "password: ********" in out
        assert "public_key: ********" in out
        assert "BEGIN CERTIFICATE" not in out
        assert "api_version: v3" in out
        assert "available_operating_systems: unknown" in out


class TestMain:
    def test_missing_config_file(self, tmp_path, clean_env):
        with patch("ovirt_adapter.cli.log") as mock_log:
            assert cli.main(["--config", str(tmp_path / "nope.yaml")]) == 1
        level, message = mock_log.call_args[0]
        assert level == "ERROR"
        assert "config missing" in message

    def test_show_config(self, tmp_path, clean_env, capsys):
        path = _write_config(tmp_path)
        assert cli.main(["--config", str(path), "--show-config"]) == 0
        out = capsys.readouterr().out
        assert "url: https://engine.example.com/ovirt-engine/api" in out
        assert "hunter2" not in out

    def test_test_connection_success(self, tmp_path, clean_env):
        path = _write_config(tmp_path)
        report = ConnectionReport(ConnectionState.CONNECTED)
        with patch("ovirt_adapter.cli.OvirtComputeResource.test_connection", return_value=report) as mock_test:
            assert cli.main(["--config", str(path), "--test-connection", "--force"]) == 0
        mock_test.assert_called_once_with(force=True)

    def test_test_connection_failure_logs_fields(self, tmp_path, clean_env):
        path = _write_config(tmp_path)
        report = ConnectionReport(ConnectionState.UNAUTHORIZED, {"user": ["Wrong user or password"]})
        with patch("ovirt_adapter.cli.OvirtComputeResource.test_connection", return_value=report), patch(
            "ovirt_adapter.cli.log"
        ) as mock_log:
            assert cli.main(["--config", str(path), "--test-connection"]) == 1
        mock_log.assert_any_call("ERROR", "user: Wrong user or password")

    def test_save_writes_config(self, tmp_path, clean_env, engine_ca):
        path = _write_config(tmp_path)

        def fake_test(self, force=False):
            self.config.public_key = engine_ca
            return ConnectionReport(ConnectionState.CONNECTED)

        with patch("ovirt_adapter.cli.OvirtComputeResource.test_connection", fake_test):
            assert cli.main(["--config", str(path), "--test-connection", "--save"]) == 0
        assert yaml.safe_load(path.read_text())["public_key"] == engine_ca

    def test_datacenters(self, tmp_path, clean_env, capsys):
        path = _write_config(tmp_path)
        with patch("ovirt_adapter.cli.OvirtComputeResource.datacenters", return_value=[("Default", "dc-1")]):
            assert cli.main(["--config", str(path), "--datacenters"]) == 0
        assert "Default  dc-1" in capsys.readouterr().out

    def test_os_types(self, tmp_path, clean_env, capsys):
        path = _write_config(tmp_path)

        def fake_supports(self):
            self.config.available_operating_systems = OsCapability.available([OSDescriptor("7", "rhel_8x64")])
            return True

        with patch("ovirt_adapter.cli.OvirtComputeResource.supports_operating_systems", fake_supports):
            assert cli.main(["--config", str(path), "--os-types"]) == 0
        assert "rhel_8x64  (7)" in capsys.readouterr().out

    def test_ca_cert_prints_fingerprint(self, tmp_path, clean_env, capsys, engine_ca):
        path = _write_config(tmp_path)
        with patch("ovirt_adapter.cli.OvirtComputeResource.ca_cert", return_value=engine_ca):
            assert cli.main(["--config", str(path), "--ca-cert"]) == 0
        out = capsys.readouterr().out
        assert "SHA-256 fingerprint: C6:8E:A6" in out
        assert "BEGIN CERTIFICATE" in out

    def test_ca_cert_unavailable(self, tmp_path, clean_env):
        path = _write_config(tmp_path)
        with patch("ovirt_adapter.cli.OvirtComputeResource.ca_cert", return_value=""):
            assert cli.main(["--config", str(path), "--ca-cert"]) == 1

    def test_trust_required_reports_fingerprint(self, tmp_path, clean_env, engine_ca):
        path = _write_config(tmp_path)
        error = TrustRequired("unidentified certificate authority", engine_ca)
        with patch("ovirt_adapter.cli.OvirtComputeResource.datacenters", side_effect=error), patch(
            "ovirt_adapter.cli.log"
        ) as mock_log:
            assert cli.main(["--config", str(path), "--datacenters"]) == 1
        messages = [call[0][1] for call in mock_log.call_args_list]
        assert "unidentified certificate authority" in messages
        assert any("--test-connection --save" in message for message in messages)

    def test_adapter_error(self, tmp_path, clean_env):
        path = _write_config(tmp_path)
        with patch(
            "ovirt_adapter.cli.OvirtComputeResource.datacenters", side_effect=PlatformConnectionError("refused")
        ):
            assert cli.main(["--config", str(path), "--datacenters"]) == 1

    def test_unexpected_error(self, tmp_path, clean_env):
        path = _write_config(tmp_path)
        with patch("ovirt_adapter.cli.OvirtComputeResource.datacenters", side_effect=KeyError("boom")), patch(
            "ovirt_adapter.cli.log"
        ) as mock_log:
            assert cli.main(["--config", str(path), "--datacenters"]) == 1
        assert mock_log.call_args_list[0][0][1].startswith("Unexpected error")

    def test_no_action_prints_help(self, tmp_path, clean_env, capsys):
        path = _write_config(tmp_path)
        assert cli.main(["--config", str(path)]) == 0
        assert "usage" in capsys.readouterr().out


def test_list_datacenters_empty():
    resource = MagicMock()
    resource.datacenters.return_value = []
    with patch("ovirt_adapter.cli.log") as mock_log:
        cli.list_datacenters(resource)
    mock_log.assert_called_once_with("WARN", "No datacenters found")

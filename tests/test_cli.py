#!/usr/bin/env python3
"""Tests for the wizgate command line."""

import json
import logging
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from wizgate.cli import main

URL = "https://downloads.wiz.io/v1/wizcli/1.2.0/wizcli-linux-amd64"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _restore_wizgate_logger():
    logger = logging.getLogger("wizgate")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)


class TestValidate:

    def test_valid_current_command(self, runner):
        result = runner.invoke(main, ["validate", "scan dir /app"])
        assert result.exit_code == 0
        assert "Valid v1 command" in result.output
        assert "--stdout json" in result.output

    def test_legacy_version(self, runner):
        result = runner.invoke(main, ["validate", "--cli-version", "v0", "dir scan --path ."])
        assert result.exit_code == 0
        assert "-f json" in result.output

    def test_invalid_command_exit_code(self, runner):
        result = runner.invoke(main, ["validate", "scan dir /app; rm -rf /"])
        assert result.exit_code == 2
        assert "invalid characters" in result.output

    def test_scan_root_rejected_for_legacy(self, runner):
        result = runner.invoke(main, ["validate", "--cli-version", "v0", "scan dir ."])
        assert result.exit_code == 2


class TestDigest:

    def test_prints_sha256sum_line(self, runner, pgp_dir):
        expected = (pgp_dir / "wizcli-sha256").read_text().strip()
        result = runner.invoke(main, ["digest", str(pgp_dir / "wizcli")])
        assert result.exit_code == 0
        assert result.output.startswith(expected + "  ")


class TestVerify:

    def test_good_signature_with_bundled_key(self, runner, pgp_dir):
        result = runner.invoke(main, ["verify", str(pgp_dir / "wizcli-sha256"), str(pgp_dir / "wizcli-sha256.sig")])
        assert result.exit_code == 0
        assert "Good signature" in result.output

    def test_explicit_key(self, runner, pgp_dir):
        result = runner.invoke(main, [
            "verify", str(pgp_dir / "wizcli-sha256"), str(pgp_dir / "wizcli-sha256.ed25519.sig"),
            "--key", str(pgp_dir / "ed25519_key.asc"),
        ])
        assert result.exit_code == 0

    def test_bad_signature(self, runner, pgp_dir):
        result = runner.invoke(main, ["verify", str(pgp_dir / "mismatch-sha256"), str(pgp_dir / "wizcli-sha256.sig")])
        assert result.exit_code == 1
        assert "does not match" in result.output

    def test_unparseable_signature(self, runner, pgp_dir):
        result = runner.invoke(main, ["verify", str(pgp_dir / "wizcli-sha256"), str(pgp_dir / "wizcli")])
        assert result.exit_code == 1
        assert "unsupported signature format" in result.output


class TestFetch:

    def test_fetch_installs_verified_cli(self, runner, fake_downloads, workspace):
        fake_downloads()
        result = runner.invoke(main, ["fetch", URL, "--workspace", str(workspace)])
        assert result.exit_code == 0, result.output
        assert "Verified Wiz CLI" in result.output
        assert (workspace / "wizcli").exists()

    def test_invalid_url(self, runner, workspace):
        result = runner.invoke(main, ["fetch", "https://example.com/wizcli", "--workspace", str(workspace)])
        assert result.exit_code == 1
        assert "Invalid Wiz CLI URL" in result.output

    def test_os_error_reported(self, runner, workspace):
        with patch("wizgate.cli.acquire_cli", side_effect=PermissionError("Permission denied: '/ro'")):
            result = runner.invoke(main, ["fetch", URL, "--workspace", str(workspace)])
        assert result.exit_code == 1
        assert "Permission denied" in result.output
        assert not isinstance(result.exception, PermissionError)

    def test_integrity_failure(self, runner, fake_downloads, workspace):
        fake_downloads(checksum="mismatch-sha256", signature="mismatch-sha256.sig")
        result = runner.invoke(main, ["fetch", URL, "--workspace", str(workspace)])
        assert result.exit_code == 1
        assert "checksum verification failed" in result.output


class TestScan:

    def _write_output(self, workspace):
        (workspace / "wizcli_output.json").write_text(json.dumps({
            "scanOriginResource": {"name": "my-app"},
            "status": {"verdict": "FAILED_BY_POLICY"},
            "result": {"analytics": {"secrets": {"criticalCount": 1, "totalCount": 1}}},
        }))

    def test_summary_printed(self, runner, workspace, caplog):
        caplog.set_level(logging.INFO, logger="wizgate.cli")
        self._write_output(workspace)
        with patch("wizgate.cli.execute", return_value=0) as execute:
            result = runner.invoke(main, ["scan", URL, "scan dir .", "--workspace", str(workspace)])
        assert result.exit_code == 0, result.output
        assert "my-app" in result.output
        assert "Secrets" in result.output
        args = execute.call_args.args
        assert args[0] == URL
        assert args[2] == "scan dir ."
        assert args[3] == "wizcli_output.json"
        assert "ScanResult(resource='my-app', status=Failed" in caplog.text

    def test_scanner_exit_code_propagated(self, runner, workspace):
        self._write_output(workspace)
        with patch("wizgate.cli.execute", return_value=3):
            result = runner.invoke(main, ["scan", URL, "scan dir .", "--workspace", str(workspace)])
        assert result.exit_code == 3

    def test_os_error_reported(self, runner, workspace):
        with patch("wizgate.cli.execute", side_effect=OSError("disk full")):
            result = runner.invoke(main, ["scan", URL, "scan dir .", "--workspace", str(workspace)])
        assert result.exit_code == 1
        assert "disk full" in result.output
        assert "Traceback" not in result.output

    def test_validation_failure(self, runner, workspace):
        with patch("wizgate.cli.execute", return_value=-1):
            result = runner.invoke(main, ["scan", URL, "docker run x", "--workspace", str(workspace)])
        assert result.exit_code == 2
        assert "scan not started" in result.output


class TestGlobalOptions:

    def test_invalid_config_file(self, runner, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("download: [\n")
        result = runner.invoke(main, ["--config", str(config), "validate", "scan dir ."])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "wizgate" in result.output

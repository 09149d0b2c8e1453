"""Pytest configuration and fixtures for wizgate tests."""

import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from wizgate.errors import NetworkError

FIXTURES = Path(__file__).parent / "fixtures"
PGP_FIXTURES = FIXTURES / "pgp"

LEGACY_URL = "https://downloads.wiz.io/wizcli/0.9.0/wizcli-linux-amd64"
CURRENT_URL = "https://downloads.wiz.io/v1/wizcli/1.2.0/wizcli-linux-amd64"


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path, monkeypatch):
    """Point config loading at a per-test path so ~/.wizgate is never read."""
    monkeypatch.setenv("WIZGATE_CONFIG", str(tmp_path / "wizgate-config.yaml"))
    monkeypatch.delenv("HTTPS_PROXY", raising=False)
    monkeypatch.delenv("https_proxy", raising=False)


@pytest.fixture
def pgp_dir():
    return PGP_FIXTURES


def read_fixture(name: str) -> bytes:
    return (PGP_FIXTURES / name).read_bytes()


@pytest.fixture
def release_key():
    return read_fixture("release_key.asc")


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "workspace"
    path.mkdir()
    return path


class FakeDownloads:
    """Stands in for wizgate.acquire.download_file.

    ``files`` maps a URL suffix ("", "-sha256", "-sha256.sig") to the
    fixture file served for it. Every requested URL is recorded.
    """

    def __init__(self, files):
        self.files = dict(files)
        self.requested = []

    def __call__(self, url, destination, config=None):
        self.requested.append(url)
        for suffix in ("-sha256.sig", "-sha256", ""):
            if url.endswith(suffix) and suffix in self.files:
                source = self.files[suffix]
                if source is None:
                    raise NetworkError("Download failed with HTTP code: 404", url=url, status_code=404)
                destination = Path(destination)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, destination)
                return destination
        raise NetworkError(f"unexpected url {url}", url=url)


@pytest.fixture
def fake_downloads():
    """Factory that patches the pipeline's downloader with fixture files."""
    patches = []

    def install(binary="wizcli", checksum="wizcli-sha256", signature="wizcli-sha256.sig"):
        def resolve(value):
            if value is None:
                return None
            path = Path(value)
            return path if path.is_absolute() else PGP_FIXTURES / value

        fake = FakeDownloads({
            "": resolve(binary),
            "-sha256": resolve(checksum),
            "-sha256.sig": resolve(signature),
        })
        p = patch("wizgate.acquire.download_file", side_effect=fake)
        p.start()
        patches.append(p)
        return fake

    yield install

    for p in patches:
        p.stop()

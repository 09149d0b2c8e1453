#!/usr/bin/env python3
"""
wizgate Wiz CLI acquisition pipeline

Downloads the Wiz CLI into a workspace and refuses to hand it back unless:

1. the published SHA-256 checksum file carries a valid OpenPGP signature
   from the trusted release key, and
2. the downloaded binary hashes to exactly that checksum.

The binary is downloaded under a temporary name and only moved onto the
executable path once both checks pass, so a rejected download never
replaces or shadows a previously verified binary. The temporary download,
the checksum file, its signature and the copy of the public key are
removed on every exit path.
"""

import logging
import os
import platform
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from wizgate.commands import ToolVersion
from wizgate.config import WizGateConfig
from wizgate.download import download_file
from wizgate.errors import ConfigError, IntegrityError, InvalidUrlError, VerificationError
from wizgate.logging import redact_url, sanitize_for_log
from wizgate.security.checksum import sha256_bytes, sha256_file
from wizgate.security.pgp import verify_signature_files

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https://downloads\.wiz\.io/(v1/)?wizcli/([^/]+)/([^/]+)")
_CURRENT_VERSION_PATTERN = re.compile(r"wizcli/1\.")

CHECKSUM_SUFFIX = "-sha256"
SIGNATURE_SUFFIX = "-sha256.sig"

CHECKSUM_FILENAME = "wizcli-sha256"
SIGNATURE_FILENAME = "wizcli-sha256.sig"
PUBLIC_KEY_FILENAME = "public_key.asc"
DOWNLOAD_SUFFIX = ".download"

PUBLIC_KEY_RESOURCE = Path(__file__).parent / "resources" / "public_key.asc"

EXECUTABLE_MODE = 0o755


def detect_version(url: str) -> ToolVersion:
    """CURRENT for v1 download paths or 1.x version segments, else LEGACY."""
    if "v1/wizcli/" in url or _CURRENT_VERSION_PATTERN.search(url):
        return ToolVersion.CURRENT
    return ToolVersion.LEGACY


@dataclass(frozen=True)
class ParsedCliUrl:
    url: str
    version: ToolVersion

    @property
    def checksum_url(self) -> str:
        return self.url + CHECKSUM_SUFFIX

    @property
    def signature_url(self) -> str:
        return self.url + SIGNATURE_SUFFIX

    def __str__(self) -> str:
        return redact_url(self.url)


def parse_cli_url(url: str) -> ParsedCliUrl:
    """Check that *url* is a Wiz CLI download link and infer its CLI version.

    Raises:
        InvalidUrlError: If the whole URL does not match the download format.
    """
    if not url or not URL_PATTERN.fullmatch(url):
        raise InvalidUrlError(f"Invalid Wiz CLI URL format: {sanitize_for_log(url)}")
    return ParsedCliUrl(url=url, version=detect_version(url))


@dataclass(frozen=True)
class CliSetup:
    """A verified Wiz CLI binary in a workspace."""
    path: Path
    version: ToolVersion
    is_windows: bool

    @property
    def executable_name(self) -> str:
        return self.path.name

    @property
    def cli_command(self) -> str:
        """How the binary is invoked from inside its workspace."""
        return self.executable_name if self.is_windows else f"./{self.executable_name}"


def executable_name_for(is_windows: bool) -> str:
    return "wizcli.exe" if is_windows else "wizcli"


@dataclass(frozen=True)
class VerificationBundle:
    """Files involved in verifying one download.

    Everything except the binary is transient. The binary is fetched to
    download_path and only moved to binary_path after verification.
    """
    binary_path: Path
    download_path: Path
    checksum_path: Path
    signature_path: Path
    public_key_path: Path

    @classmethod
    def for_workspace(cls, workspace: Path, is_windows: bool) -> "VerificationBundle":
        return cls(
            binary_path=workspace / executable_name_for(is_windows),
            download_path=workspace / (executable_name_for(is_windows) + DOWNLOAD_SUFFIX),
            checksum_path=workspace / CHECKSUM_FILENAME,
            signature_path=workspace / SIGNATURE_FILENAME,
            public_key_path=workspace / PUBLIC_KEY_FILENAME,
        )

    @property
    def transient_files(self) -> Tuple[Path, ...]:
        return (self.download_path, self.checksum_path, self.signature_path, self.public_key_path)


def cleanup_verification_files(bundle: VerificationBundle) -> None:
    """Delete the bundle's transient files. Failures are logged, not raised."""
    for path in bundle.transient_files:
        try:
            path.unlink()
            logger.debug("Deleted verification file: %s", path)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Failed to delete verification file %s: %s", path, e)


@contextmanager
def verification_bundle(workspace: Path, is_windows: bool) -> Iterator[VerificationBundle]:
    bundle = VerificationBundle.for_workspace(workspace, is_windows)
    try:
        yield bundle
    finally:
        cleanup_verification_files(bundle)


def load_public_key(config: Optional[WizGateConfig] = None) -> bytes:
    """Armored trusted key: the configured override, or the bundled release key."""
    override = config.trust.public_key_path if config else None
    path = Path(override).expanduser() if override else PUBLIC_KEY_RESOURCE
    try:
        key_data = path.read_bytes()
    except OSError as e:
        if override:
            raise ConfigError(f"Cannot read trusted public key {path}: {e}") from e
        raise VerificationError(f"Bundled public key is missing: {path}") from e
    logger.debug("Trusted public key %s (sha256 %s)", path, sha256_bytes(key_data))
    return key_data


def verify_checksum(binary_path: Path, checksum_path: Path) -> str:
    """Compare the binary's SHA-256 with the trimmed checksum file content.

    The comparison is exact: the file must hold nothing but the lower-case
    hex digest, surrounding whitespace aside.

    Returns:
        The verified hex digest.

    Raises:
        IntegrityError: If the digests differ.
    """
    expected = checksum_path.read_text(encoding="ascii", errors="replace").strip()
    actual = sha256_file(binary_path)
    if expected != actual:
        raise IntegrityError(expected=expected, actual=actual)
    logger.debug("SHA-256 checksum verified: %s", actual)
    return actual


def verify_bundle(bundle: VerificationBundle) -> str:
    """Verify the signature over the checksum, then the checksum over the binary."""
    if not verify_signature_files(bundle.checksum_path, bundle.signature_path, bundle.public_key_path):
        raise VerificationError("GPG signature verification failed for Wiz CLI checksum file")
    logger.info("GPG signature verified for Wiz CLI checksum file")
    return verify_checksum(bundle.download_path, bundle.checksum_path)


def _make_executable(path: Path) -> None:
    os.chmod(path, EXECUTABLE_MODE)
    if not os.access(path, os.X_OK):
        raise OSError(f"Failed to make {path} executable")


def acquire_cli(
    url: str,
    workspace: Union[str, Path],
    config: Optional[WizGateConfig] = None,
    is_windows: Optional[bool] = None,
) -> CliSetup:
    """Download, verify and install the Wiz CLI into *workspace*.

    Args:
        url: Wiz CLI download URL (see URL_PATTERN).
        workspace: Directory the binary is placed in. Created if missing.
        config: Download, proxy and trust settings. Defaults apply if None.
        is_windows: Target platform. Defaults to the running platform.

    Returns:
        CliSetup describing the verified binary.

    Raises:
        InvalidUrlError: Bad URL. Nothing is downloaded.
        NetworkError, DownloadInterruptedError: A download failed.
        VerificationError: The checksum file signature is bad or unreadable.
        IntegrityError: The binary does not match the signed checksum.
    """
    parsed = parse_cli_url(url)
    config = config or WizGateConfig()
    if is_windows is None:
        is_windows = platform.system() == "Windows"
    workspace = Path(workspace)
    workspace.mkdir(parents=True, exist_ok=True)

    logger.info("Downloading Wiz CLI from %s (%s)", redact_url(parsed.url), parsed.version.value)

    with verification_bundle(workspace, is_windows) as bundle:
        download_file(parsed.url, bundle.download_path, config)
        download_file(parsed.checksum_url, bundle.checksum_path, config)
        download_file(parsed.signature_url, bundle.signature_path, config)
        bundle.public_key_path.write_bytes(load_public_key(config))

        verify_bundle(bundle)

        if not is_windows:
            _make_executable(bundle.download_path)
        os.replace(bundle.download_path, bundle.binary_path)

    setup = CliSetup(path=bundle.binary_path, version=parsed.version, is_windows=is_windows)
    logger.info("Wiz CLI ready at %s", setup.path)
    return setup


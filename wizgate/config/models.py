"""
Pydantic models for wizgate configuration validation.

These models define the schema for ~/.wizgate/config.yaml. Every section
is optional; an empty or missing file produces the defaults below.
"""

from __future__ import annotations

import fnmatch
from enum import Enum
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enums
# ============================================================================


class LogLevel(str, Enum):
    """Valid log levels for the CLI handler."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================================================
# Configuration Section Models
# ============================================================================


class DownloadConfig(BaseModel):
    """HTTP settings for binary and side-file downloads."""
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)
    chunk_size: int = Field(default=8192, gt=0)
    user_agent: str = "wizgate"

    model_config = {"extra": "allow"}

    @property
    def timeout(self):
        return (self.connect_timeout, self.read_timeout)


class ProxyConfig(BaseModel):
    """Forward proxy used for downloads.

    ``no_proxy`` entries are hostnames or fnmatch patterns; an entry with a
    leading dot also matches the domain itself and all of its subdomains.
    """
    url: Optional[str] = None
    no_proxy: List[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        parts = urlsplit(v.strip())
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"proxy url must be http(s)://host[:port], got '{v}'")
        return v.strip()

    @field_validator("no_proxy", mode="before")
    @classmethod
    def split_no_proxy(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    def bypasses(self, host: str) -> bool:
        host = host.lower()
        for pattern in self.no_proxy:
            pattern = pattern.lower()
            if pattern.startswith("."):
                if host == pattern[1:] or host.endswith(pattern):
                    return True
            elif fnmatch.fnmatch(host, pattern):
                return True
        return False

    def for_host(self, host: str) -> Optional[str]:
        """Proxy URL to use for *host*, or None for a direct connection."""
        if not self.url or self.bypasses(host):
            return None
        return self.url


class TrustConfig(BaseModel):
    """Trust anchor override. None means the key bundled with wizgate."""
    public_key_path: Optional[str] = None

    model_config = {"extra": "allow"}


class ScanConfig(BaseModel):
    """Where scan output is captured inside the workspace."""
    output_filename: str = "wizcli_output"
    error_filename: str = "wizcli_err_output"

    model_config = {"extra": "allow"}

    @field_validator("output_filename", "error_filename")
    @classmethod
    def validate_plain_filename(cls, v: str) -> str:
        if not v or v in (".", "..") or "/" in v or "\\" in v:
            raise ValueError(f"must be a plain file name, got '{v}'")
        return v


# ============================================================================
# Root Configuration Model
# ============================================================================


class WizGateConfig(BaseModel):
    """Root model for config.yaml."""
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    trust: TrustConfig = Field(default_factory=TrustConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    log_level: LogLevel = LogLevel.WARNING

    model_config = {"extra": "allow"}

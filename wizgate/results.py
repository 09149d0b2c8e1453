#!/usr/bin/env python3
"""
wizgate scan result summary

Reads the JSON document the Wiz CLI writes to stdout and keeps only what a
build summary needs: the scanned resource, when it was scanned, the policy
verdict, the report link, and per finding type severity counts.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


class ScanStatus(Enum):
    """Policy verdict. Values are the API strings, ``label`` is for display."""
    PASSED = "PASSED_BY_POLICY"
    FAILED = "FAILED_BY_POLICY"
    IN_PROGRESS = "IN_PROGRESS"
    WARNED = "WARN_BY_POLICY"
    UNKNOWN = "UNKNOWN"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @classmethod
    def from_api(cls, value: Optional[str]) -> "ScanStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    def __str__(self) -> str:
        return self.label


_STATUS_LABELS = {
    ScanStatus.PASSED: "Passed",
    ScanStatus.FAILED: "Failed",
    ScanStatus.IN_PROGRESS: "InProgress",
    ScanStatus.WARNED: "Warned",
    ScanStatus.UNKNOWN: "Unknown",
}


class FindingType(Enum):
    """Finding categories under ``result.analytics``, keyed by API name."""
    MISCONFIGURATION = ("scanStatistics", "Misconfigurations")
    HOST_CONFIGURATION = ("hostConfiguration", "Host Configurations")
    VULNERABILITY = ("vulnerabilities", "Vulnerabilities")
    SECRET = ("secrets", "Secrets")
    MALWARE = ("malware", "Malware")
    SAST = ("sast", "SAST")

    @property
    def api_name(self) -> str:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]


def _count(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key, 0)
    if isinstance(value, bool):
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


@dataclass
class ScannerAnalytics:
    """Severity counts for one finding type. Negative counts become 0."""
    info_count: int = 0
    low_count: int = 0
    medium_count: int = 0
    high_count: int = 0
    critical_count: int = 0
    total_count: int = 0

    def __post_init__(self):
        for name in ("info_count", "low_count", "medium_count",
                     "high_count", "critical_count", "total_count"):
            setattr(self, name, max(0, getattr(self, name)))

    @classmethod
    def from_counts(cls, data: Mapping[str, Any], suffix: str = "Count") -> "ScannerAnalytics":
        """Build from ``infoCount``-style keys, or ``infoMatches`` with suffix="Matches"."""
        return cls(
            info_count=_count(data, "info" + suffix),
            low_count=_count(data, "low" + suffix),
            medium_count=_count(data, "medium" + suffix),
            high_count=_count(data, "high" + suffix),
            critical_count=_count(data, "critical" + suffix),
            total_count=_count(data, "total" + suffix),
        )

    def is_valid(self) -> bool:
        return self.total_count >= (
            self.info_count + self.low_count + self.medium_count
            + self.high_count + self.critical_count
        )


def format_scan_time(value: str) -> str:
    """Render an ISO-8601 timestamp as "January 1, 2024 at 12:00 PM".

    The wall-clock time is shown as written; the offset is not applied.
    Unparseable input is returned unchanged.
    """
    if not value or not value.strip():
        return ""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Error formatting datetime: %s", value)
        return value
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{_MONTHS[moment.month - 1]} {moment.day}, {moment.year} at {hour}:{moment.minute:02d} {meridiem}"


def _get_string(root: Mapping[str, Any], path: str) -> str:
    current: Any = root
    for key in path.split("."):
        if not isinstance(current, Mapping) or key not in current:
            return ""
        current = current[key]
    if current is None or isinstance(current, (dict, list)):
        return ""
    return str(current).strip()


def _parse_analytics(root: Mapping[str, Any]) -> Optional[Dict[str, ScannerAnalytics]]:
    result = root.get("result")
    if not isinstance(result, Mapping):
        return None

    analytics: Optional[Dict[str, ScannerAnalytics]] = None
    section = result.get("analytics")
    if isinstance(section, Mapping):
        analytics = {}
        for finding_type in FindingType:
            counts = section.get(finding_type.api_name)
            if isinstance(counts, Mapping):
                analytics[finding_type.label] = ScannerAnalytics.from_counts(counts)

    # Legacy IaC scans report misconfigurations as result.scanStatistics
    statistics = result.get("scanStatistics")
    if isinstance(statistics, Mapping):
        if analytics is None:
            analytics = {}
        analytics[FindingType.MISCONFIGURATION.label] = ScannerAnalytics.from_counts(
            statistics, suffix="Matches"
        )
    return analytics


@dataclass
class ScanResult:
    scanned_resource: str = ""
    scan_time: str = ""
    status: ScanStatus = ScanStatus.UNKNOWN
    report_url: str = ""
    analytics: Optional[Dict[str, ScannerAnalytics]] = field(default=None)

    @classmethod
    def from_dict(cls, root: Mapping[str, Any]) -> "ScanResult":
        result = cls(
            scanned_resource=_get_string(root, "scanOriginResource.name"),
            scan_time=format_scan_time(_get_string(root, "createdAt")),
            status=ScanStatus.from_api(_get_string(root, "status.verdict") or None),
            report_url=_get_string(root, "reportUrl"),
            analytics=_parse_analytics(root),
        )
        for name, counts in (result.analytics or {}).items():
            if not counts.is_valid():
                logger.warning("Analytics data for %s contains inconsistencies", name)
        return result

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> Optional["ScanResult"]:
        """Parse a scan output file. Returns None if it is missing, empty or invalid."""
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
            if not content.strip():
                raise ValueError("JSON file is empty")
            root = json.loads(content)
            if not isinstance(root, dict):
                raise ValueError("JSON root is not an object")
        except (OSError, ValueError) as e:
            logger.error("Failed to parse scan results from %s: %s", path, e)
            return None
        return cls.from_dict(root)

    def summary(self) -> str:
        if self.analytics:
            findings = ", ".join(f"{k}={v.total_count}" for k, v in self.analytics.items())
        else:
            findings = "none"
        return f"ScanResult(resource='{self.scanned_resource}', status={self.status}, findings={findings})"

"""Static Windows build tables."""

from types import MappingProxyType
from typing import Optional

from .models import UNKNOWN_OS, BuildInfo

NO_OS_VERSION = "No OS version"

# Newest build line first.
BUILD_REGISTRY: tuple[BuildInfo, ...] = (
    BuildInfo(major_build=26200, operating_system_name="Windows 11 Version 25H2"),
    BuildInfo(major_build=26100, operating_system_name="Windows 11 Version 24H2"),
    BuildInfo(major_build=22631, operating_system_name="Windows 11 Version 23H2"),
    BuildInfo(major_build=22621, operating_system_name="Windows 11 Version 22H2"),
    BuildInfo(major_build=22000, operating_system_name="Windows 11 Version 21H2"),
    BuildInfo(major_build=20348, operating_system_name="Windows Server 2022"),
    BuildInfo(major_build=19045, operating_system_name="Windows 10 Version 22H2"),
    BuildInfo(major_build=19044, operating_system_name="Windows 10 Version 21H2"),
    BuildInfo(major_build=19043, operating_system_name="Windows 10 Version 21H1"),
    BuildInfo(major_build=19042, operating_system_name="Windows 10 Version 20H2"),
    BuildInfo(major_build=19041, operating_system_name="Windows 10 Version 2004"),
    BuildInfo(major_build=18363, operating_system_name="Windows 10 Version 1909"),
    BuildInfo(major_build=17763, operating_system_name="Windows 10 Version 1809"),
    BuildInfo(major_build=14393, operating_system_name="Windows 10 Version 1607"),
    BuildInfo(major_build=10240, operating_system_name="Windows 10 Version 1507"),
)

OS_NAMES = MappingProxyType({b.major_build: b.operating_system_name for b in BUILD_REGISTRY})

# Short labels used in device reports.
OS_VERSION_LABELS = MappingProxyType({
    0: NO_OS_VERSION,
    26200: "Win11-25H2",
    26100: "Win11-24H2",
    22631: "Win11-23H2",
    22621: "Win11-22H2",
    22000: "Win11-21H2",
    19045: "Win10-22H2",
    19044: "Win10-21H2",
    19043: "Win10-21H1",
    19042: "Win10-20H2",
    19041: "Win10-2004",
    18363: "Win10-1909",
    18362: "Win10-1903",
    17763: "Win10-1809",
    17134: "Win10-1803",
    16299: "Win10-1709",
    15063: "Win10-1703",
    14393: "Win10-1607",
    10586: "Win10-1511",
    10240: "Win10-1507",
})


def resolve_os_name(major_build: int) -> str:
    """Return the registry OS name for a major build, or "Unknown"."""
    return OS_NAMES.get(major_build, UNKNOWN_OS)


def os_version_label(build: Optional[int], raw_version: Optional[str]) -> str:
    """Map a device build number to its report label.

    Unmapped builds pass the raw version string through unchanged.
    """
    if build is None and not raw_version:
        return NO_OS_VERSION
    if build is not None and build in OS_VERSION_LABELS:
        return OS_VERSION_LABELS[build]
    return raw_version or NO_OS_VERSION

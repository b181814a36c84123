"""Per-device compliance evaluation."""

import re
from datetime import date
from typing import Iterable, NamedTuple, Optional, Union

from .builds import NO_OS_VERSION, os_version_label
from .models import (
    BUILD_NOT_ENUMERATED,
    COMPLIANT,
    MANUALLY_CHECK,
    UNKNOWN_AGE,
    UNKNOWN_OS,
    ComplianceReport,
    ComplianceStatus,
    ComplianceVerdict,
    Device,
    LatestPatchSet,
    PatchCatalog,
)

OS_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)\.(\d+)$")


class OSVersion(NamedTuple):
    major: int
    minor: int
    build: int
    revision: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.build}.{self.revision}"


def parse_os_version(raw: Optional[str]) -> Optional[OSVersion]:
    if not raw:
        return None
    match = OS_VERSION_PATTERN.match(raw.strip())
    if not match:
        return None
    return OSVersion(*(int(part) for part in match.groups()))


def _manual_check(device: Device, label: str) -> ComplianceVerdict:
    return ComplianceVerdict(
        device=device,
        os_version_label=label,
        status=ComplianceStatus.MANUAL_CHECK,
        days_unpatched=UNKNOWN_AGE,
        required_patch_ids=MANUALLY_CHECK,
    )


def evaluate_device(
    device: Device,
    catalog: PatchCatalog,
    latest: LatestPatchSet,
    today: Optional[date] = None,
) -> ComplianceVerdict:
    """Classify one device. Missing or malformed data yields sentinel values, never errors."""
    today = today or date.today()
    raw = (device.os_version or "").strip()
    version = parse_os_version(raw)

    if version is None:
        return _manual_check(device, UNKNOWN_OS if raw else NO_OS_VERSION)
    if version.build == 0:
        return _manual_check(device, NO_OS_VERSION)

    label = os_version_label(version.build, raw)
    installed = catalog.find_by_os_version(str(version))
    installed_ids = installed.patch_ids if installed else ()
    installed_date = installed.release_date if installed else None

    selected = latest.get(version.build)
    if selected is None:
        compliant = False
        required: Union[list[str], str] = BUILD_NOT_ENUMERATED
    else:
        # Numeric comparison; "10.0.19045.999" is older than "10.0.19045.1000".
        required_version = parse_os_version(selected.os_version_full)
        compliant = version >= required_version
        required = COMPLIANT if version == required_version else list(selected.patch_ids)

    if compliant:
        status = ComplianceStatus.COMPLIANT
        days: Union[int, str] = COMPLIANT
    else:
        status = ComplianceStatus.NON_COMPLIANT
        days = (today - installed_date).days if installed_date else UNKNOWN_AGE

    return ComplianceVerdict(
        device=device,
        os_version_label=label,
        installed_patch_ids=installed_ids,
        installed_release_date=installed_date,
        status=status,
        days_unpatched=days,
        required_patch_ids=required,
    )


def evaluate_devices(
    devices: Iterable[Device],
    catalog: PatchCatalog,
    latest: LatestPatchSet,
    today: Optional[date] = None,
) -> ComplianceReport:
    today = today or date.today()
    verdicts = [evaluate_device(d, catalog, latest, today) for d in devices]

    compliant = manual = non_compliant = 0
    for verdict in verdicts:
        if verdict.status == ComplianceStatus.COMPLIANT:
            compliant += 1
        elif verdict.required_patch_ids == MANUALLY_CHECK:
            manual += 1
        else:
            non_compliant += 1

    return ComplianceReport(
        verdicts=verdicts,
        compliant_count=compliant,
        manual_check_count=manual,
        non_compliant_count=non_compliant,
    )

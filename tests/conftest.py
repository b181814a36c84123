"""Pytest fixtures for Patch Compliance Reporter tests."""

from datetime import date, datetime
from pathlib import Path
from typing import Callable, Generator

import pytest
from sqlite_utils import Database

from patch_compliance.builds import resolve_os_name
from patch_compliance.catalog import build_catalog
from patch_compliance.database import init_db
from patch_compliance.models import (
    Device,
    PatchCatalog,
    PatchRecord,
    RawPatchLink,
)


def _anchor(text: str, href: str = "/en-us/help/5046613") -> RawPatchLink:
    return RawPatchLink(
        title=text,
        href=f"https://support.microsoft.com{href}",
        outer_markup=f'<a class="supLeftNavLink" data-bi-slot="1" href="{href}">{text}</a>',
    )


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_compliance.db"


@pytest.fixture
def initialized_db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create an initialized temporary database."""
    init_db(temp_db_path)
    db = Database(temp_db_path)
    yield db
    db.close()


@pytest.fixture
def make_record() -> Callable[..., PatchRecord]:
    """Factory for PatchRecord instances."""

    def factory(build: str, kbs: str, released: date) -> PatchRecord:
        major, minor = (int(part) for part in build.split("."))
        return PatchRecord(
            operating_system=resolve_os_name(major),
            build=build,
            major_build=major,
            minor_build=minor,
            patch_ids=tuple(kbs.split()),
            release_date=released,
        )

    return factory


@pytest.fixture
def make_link() -> Callable[..., RawPatchLink]:
    """Factory for scraped update-history anchors."""
    return _anchor


@pytest.fixture
def sample_links() -> list[RawPatchLink]:
    """A slice of the Windows 10 and 11 update-history navigation."""
    return [
        _anchor("November 12, 2024—KB5046613 (OS Builds 19044.5131 and 19045.5131)"),
        _anchor("November 12, 2024—KB5046633 (OS Builds 22621.4460 and 22631.4460)", "/en-us/help/5046633"),
        _anchor("October 22, 2024—KB5045594 (OS Build 19045.5073) Preview", "/en-us/help/5045594"),
        _anchor("October 8, 2024—KB5044273 (OS Builds 19044.5011 and 19045.5011)", "/en-us/help/5044273"),
        _anchor("October 17, 2024—KB5046714 (OS Build 22631.4351) Out-of-band", "/en-us/help/5046714"),
        _anchor("Windows 10 Mobile update history", "/en-us/help/mobile"),
        _anchor("Windows 10, version 22H2 update history", "/en-us/help/history"),
    ]


@pytest.fixture
def scenario_catalog(make_record) -> PatchCatalog:
    """Catalog with current 19045 and 22631 releases plus an older 19045 release."""
    return build_catalog([
        make_record("19045.5131", "KB100", date(2024, 11, 12)),
        make_record("22631.4460", "KB200", date(2024, 11, 12)),
        make_record("19045.1", "KB050", date(2024, 10, 8)),
    ])


@pytest.fixture
def sample_device() -> Device:
    """Create a sample Device from Graph field names."""
    return Device.model_validate({
        "id": "8c7f0a4e-0000-4000-8000-000000000001",
        "deviceName": "LAPTOP-001",
        "userPrincipalName": "alex@contoso.com",
        "operatingSystem": "Windows",
        "model": "Latitude 7440",
        "totalStorageSpaceInBytes": 512 * 1024 ** 3,
        "freeStorageSpaceInBytes": 128 * 1024 ** 3,
        "osVersion": "10.0.19045.5131",
        "joinType": "azureADJoined",
        "lastSyncDateTime": "2024-11-20T09:15:00Z",
    })


@pytest.fixture
def sample_devices() -> list[Device]:
    """Devices covering each verdict outcome."""
    return [
        Device(device_name="PC-COMPLIANT", os_version="10.0.19045.9999"),
        Device(device_name="PC-BEHIND", os_version="10.0.19045.1"),
        Device(device_name="PC-BNE", os_version="10.0.17763.100"),
        Device(device_name="PC-NOVERSION", os_version=None),
        Device(device_name="PC-GARBLED", os_version="Windows 10"),
    ]


@pytest.fixture
def report_time() -> datetime:
    return datetime(2024, 11, 20, 8, 30, 0)

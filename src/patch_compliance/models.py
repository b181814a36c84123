"""Data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, Field, PrivateAttr

UNKNOWN_OS = "Unknown"
COMPLIANT = "Compliant"
BUILD_NOT_ENUMERATED = "BNE"
MANUALLY_CHECK = "ManuallyCheck"
UNKNOWN_AGE = "Unknown"


class ComplianceStatus(str, Enum):
    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"
    MANUAL_CHECK = "ManualCheck"


class SelectionTier(str, Enum):
    TARGET_MONTH = "target-month"
    STALE_CATALOG = "stale-catalog"
    PREVIOUS_MONTH = "previous-month"
    BACKFILL = "backfill"


class BuildInfo(BaseModel):
    major_build: int
    operating_system_name: str

    class Config:
        frozen = True


class RawPatchLink(BaseModel):
    """One anchor scraped from a vendor update-history page."""

    title: str = ""
    href: str = ""
    outer_markup: str = Field(
        default="",
        validation_alias=AliasChoices("outer_markup", "outerMarkup", "outerHTML"),
        serialization_alias="outerMarkup",
    )

    class Config:
        populate_by_name = True


class PatchRecord(BaseModel):
    operating_system: str
    build: str
    major_build: int
    minor_build: int
    patch_ids: tuple[str, ...]
    release_date: date

    class Config:
        frozen = True
        from_attributes = True

    @property
    def patch_ids_label(self) -> str:
        return ", ".join(self.patch_ids)

    @property
    def os_version_full(self) -> str:
        return f"10.0.{self.build}"


class PatchCatalog(BaseModel):
    records: list[PatchRecord] = Field(default_factory=list)
    major_builds: list[int] = Field(default_factory=list)
    _by_os_version: dict[str, PatchRecord] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        # First record in catalog order wins for a repeated version.
        for record in self.records:
            self._by_os_version.setdefault(record.os_version_full, record)

    def __len__(self) -> int:
        return len(self.records)

    def for_build(self, major_build: int) -> list[PatchRecord]:
        return [r for r in self.records if r.major_build == major_build]

    def find_by_os_version(self, os_version: str) -> Optional[PatchRecord]:
        return self._by_os_version.get(os_version)


class SelectionPolicy(BaseModel):
    """target_month is a (month, year) pair; freshness 0 means the catalog is always stale."""

    target_month: Optional[tuple[int, int]] = None
    freshness_threshold_days: int = 0


class LatestPatch(BaseModel):
    record: PatchRecord
    os_version_full: str
    tier: SelectionTier

    class Config:
        frozen = True

    @property
    def major_build(self) -> int:
        return self.record.major_build

    @property
    def patch_ids(self) -> tuple[str, ...]:
        return self.record.patch_ids


class LatestPatchSet(BaseModel):
    patches: dict[int, LatestPatch] = Field(default_factory=dict)

    def __contains__(self, major_build: int) -> bool:
        return major_build in self.patches

    def __len__(self) -> int:
        return len(self.patches)

    def get(self, major_build: int) -> Optional[LatestPatch]:
        return self.patches.get(major_build)


class Device(BaseModel):
    id: Optional[str] = None
    device_name: Optional[str] = Field(default=None, alias="deviceName")
    primary_user_upn: Optional[str] = Field(default=None, alias="userPrincipalName")
    operating_system: Optional[str] = Field(default=None, alias="operatingSystem")
    model: Optional[str] = None
    total_storage_bytes: Optional[int] = Field(default=None, alias="totalStorageSpaceInBytes")
    free_storage_bytes: Optional[int] = Field(default=None, alias="freeStorageSpaceInBytes")
    os_version: Optional[str] = Field(default=None, alias="osVersion")
    join_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("join_type", "joinType", "JoinType"),
    )
    last_sync: Optional[datetime] = Field(default=None, alias="lastSyncDateTime")

    class Config:
        populate_by_name = True
        from_attributes = True


class ComplianceVerdict(BaseModel):
    device: Device
    os_version_label: str
    installed_patch_ids: tuple[str, ...] = ()
    installed_release_date: Optional[date] = None
    status: ComplianceStatus
    days_unpatched: Union[int, str]
    required_patch_ids: Union[list[str], str]

    @property
    def required_label(self) -> str:
        if isinstance(self.required_patch_ids, list):
            return ", ".join(self.required_patch_ids)
        return self.required_patch_ids


class ComplianceReport(BaseModel):
    verdicts: list[ComplianceVerdict] = Field(default_factory=list)
    compliant_count: int = 0
    manual_check_count: int = 0
    non_compliant_count: int = 0
    generated_at: datetime = Field(default_factory=datetime.now)

    @property
    def total(self) -> int:
        return len(self.verdicts)

    @property
    def compliance_percentage(self) -> float:
        if not self.verdicts:
            return 0.0
        return round(self.compliant_count / self.total * 100, 2)

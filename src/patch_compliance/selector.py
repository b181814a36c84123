"""Selection of the currently required patch for each build line.

Three tiers, evaluated in order:

* An explicit target month picks, per build line, the record released in that
  month with the highest KB number. Build lines without a release that month
  are left out.
* Without a target month, a catalog whose newest release is older than the
  freshness threshold is stale: every build line takes its most recent record.
* Otherwise the previous calendar month is used as the target month, and any
  build line left out is backfilled with its most recent record released
  before the current month (or its most recent record, if it only has
  current-month releases).
"""

from datetime import date
from typing import Optional

from .catalog import kb_sort_key, newest_record, recency_key
from .models import (
    LatestPatch,
    LatestPatchSet,
    PatchCatalog,
    PatchRecord,
    SelectionPolicy,
    SelectionTier,
)


def previous_month(today: date) -> tuple[int, int]:
    if today.month == 1:
        return 12, today.year - 1
    return today.month - 1, today.year


def _in_month(record: PatchRecord, month: int, year: int) -> bool:
    return record.release_date.month == month and record.release_date.year == year


def _month_key(record: PatchRecord) -> tuple:
    return (kb_sort_key(record.patch_ids), record.minor_build, record.release_date)


def _latest(record: PatchRecord, tier: SelectionTier) -> LatestPatch:
    return LatestPatch(record=record, os_version_full=record.os_version_full, tier=tier)


def _select_month(
    catalog: PatchCatalog,
    month: int,
    year: int,
    tier: SelectionTier,
) -> dict[int, LatestPatch]:
    selected: dict[int, LatestPatch] = {}
    for major in catalog.major_builds:
        candidates = [r for r in catalog.for_build(major) if _in_month(r, month, year)]
        if candidates:
            selected[major] = _latest(max(candidates, key=_month_key), tier)
    return selected


def _select_most_recent(catalog: PatchCatalog) -> dict[int, LatestPatch]:
    selected: dict[int, LatestPatch] = {}
    for major in catalog.major_builds:
        records = catalog.for_build(major)
        selected[major] = _latest(max(records, key=recency_key), SelectionTier.STALE_CATALOG)
    return selected


def _backfill(
    catalog: PatchCatalog,
    selected: dict[int, LatestPatch],
    today: date,
) -> dict[int, LatestPatch]:
    result = dict(selected)
    for major in catalog.major_builds:
        if major in result:
            continue
        records = catalog.for_build(major)
        released = [r for r in records if not _in_month(r, today.month, today.year)]
        pick = max(released or records, key=recency_key)
        result[major] = _latest(pick, SelectionTier.BACKFILL)
    return result


def catalog_age_days(catalog: PatchCatalog, today: Optional[date] = None) -> Optional[int]:
    newest = newest_record(catalog)
    if newest is None:
        return None
    today = today or date.today()
    return (today - newest.release_date).days


def select_latest_patches(
    catalog: PatchCatalog,
    policy: SelectionPolicy,
    today: Optional[date] = None,
) -> LatestPatchSet:
    today = today or date.today()

    if policy.target_month is not None:
        month, year = policy.target_month
        return LatestPatchSet(
            patches=_select_month(catalog, month, year, SelectionTier.TARGET_MONTH)
        )

    age = catalog_age_days(catalog, today)
    if age is None:
        return LatestPatchSet()
    if age > policy.freshness_threshold_days:
        return LatestPatchSet(patches=_select_most_recent(catalog))

    month, year = previous_month(today)
    selected = _select_month(catalog, month, year, SelectionTier.PREVIOUS_MONTH)
    return LatestPatchSet(patches=_backfill(catalog, selected, today))

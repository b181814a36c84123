"""Patch catalog construction."""

from typing import Iterable, Optional

from .models import PatchCatalog, PatchRecord


def kb_sort_key(patch_ids: tuple[str, ...]) -> tuple[int, ...]:
    """Numeric key for a KB id set, so KB10000000 sorts above KB9999999."""
    return tuple(int(kb[2:]) for kb in patch_ids if kb[2:].isdigit())


def _catalog_key(record: PatchRecord) -> tuple:
    return (
        record.major_build,
        kb_sort_key(record.patch_ids),
        record.release_date,
        record.minor_build,
        record.operating_system,
    )


def recency_key(record: PatchRecord) -> tuple:
    """Most recent release first, then newest KB, then highest revision."""
    return (record.release_date, kb_sort_key(record.patch_ids), record.minor_build)


def build_catalog(records: Iterable[PatchRecord]) -> PatchCatalog:
    unique = set(records)
    ordered = sorted(unique, key=_catalog_key, reverse=True)
    major_builds = sorted({r.major_build for r in ordered}, reverse=True)
    return PatchCatalog(records=ordered, major_builds=major_builds)


def newest_record(catalog: PatchCatalog) -> Optional[PatchRecord]:
    if not catalog.records:
        return None
    return max(catalog.records, key=recency_key)

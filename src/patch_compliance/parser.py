"""Normalization of scraped update-history anchors into patch records."""

import re
from datetime import date, datetime
from typing import Iterable, Iterator, Optional

from bs4 import BeautifulSoup

from .builds import resolve_os_name
from .models import PatchRecord, RawPatchLink

KB_PATTERN = re.compile(r"KB\d+")
BUILD_PATTERN = re.compile(r"(?<![\d.])(\d+)\.(\d+)(?![\d.])")
OS_BUILD_QUALIFIER = re.compile(r"\(\s*OS\s+Builds?\b[^)]*\)?\s*$", re.IGNORECASE)

DATE_FORMATS = (
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
)


def _link_text(link: RawPatchLink) -> str:
    if link.outer_markup:
        text = BeautifulSoup(link.outer_markup, "lxml").get_text()
    else:
        text = link.title
    return " ".join(text.split())


def _extract_date_text(text: str) -> str:
    segment = re.split(r"[—–]", text, maxsplit=1)[0]
    # Self-referential titles such as "May 9, 2023-KB5026361 (OS Build ...)"
    if "build" in segment.lower():
        segment = segment.split("-", 1)[0]
    segment = OS_BUILD_QUALIFIER.sub("", segment)
    return segment.strip(" ,:")


def _parse_release_date(date_str: str) -> Optional[date]:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue
    return None


def _extract_kb_numbers(text: str) -> tuple[str, ...]:
    # Ordered set: first occurrence wins.
    return tuple(dict.fromkeys(KB_PATTERN.findall(text)))


def _extract_builds(text: str) -> list[tuple[int, int]]:
    builds = [(int(major), int(minor)) for major, minor in BUILD_PATTERN.findall(text)]
    return list(dict.fromkeys(builds))


def _title_text(link: RawPatchLink) -> str:
    return f"{link.title} {_link_text(link)}"


def is_mobile(link: RawPatchLink) -> bool:
    return "mobile" in _title_text(link).lower()


def _is_non_cumulative(link: RawPatchLink) -> bool:
    title = _title_text(link).lower()
    return "preview" in title or "out-of-band" in title


def is_preview(link: RawPatchLink) -> bool:
    """Preview release for the diagnostic list. Mobile-only announcements are left out."""
    return "preview" in _title_text(link).lower() and not is_mobile(link)


def is_out_of_band(link: RawPatchLink) -> bool:
    return "out-of-band" in _title_text(link).lower() and not is_mobile(link)


def parse_link(link: RawPatchLink) -> Iterator[PatchRecord]:
    """Yield one PatchRecord per build token in the anchor.

    Anchors without a build token, or whose release date cannot be read,
    yield nothing. Use unparsed_links() to list the latter.
    """
    text = _link_text(link)
    builds = _extract_builds(text)
    if not builds:
        return
    release_date = _parse_release_date(_extract_date_text(text))
    if release_date is None:
        return
    patch_ids = _extract_kb_numbers(text)
    for major, minor in builds:
        yield PatchRecord(
            operating_system=resolve_os_name(major),
            build=f"{major}.{minor}",
            major_build=major,
            minor_build=minor,
            patch_ids=patch_ids,
            release_date=release_date,
        )


def parse_patch_links(links: Iterable[RawPatchLink]) -> Iterator[PatchRecord]:
    """Yield compliance-relevant records, skipping every preview and out-of-band release."""
    for link in links:
        if _is_non_cumulative(link):
            continue
        yield from parse_link(link)


def unparsed_links(links: Iterable[RawPatchLink]) -> list[RawPatchLink]:
    """Anchors that reference builds but carry no readable release date."""
    result = []
    for link in links:
        text = _link_text(link)
        if _extract_builds(text) and _parse_release_date(_extract_date_text(text)) is None:
            result.append(link)
    return result


def _builds_matching(links: Iterable[RawPatchLink], predicate) -> list[str]:
    builds: set[tuple[int, int]] = set()
    for link in links:
        if predicate(link):
            builds.update(_extract_builds(_link_text(link)))
    return [f"{major}.{minor}" for major, minor in sorted(builds, reverse=True)]


def preview_builds(links: Iterable[RawPatchLink]) -> list[str]:
    return _builds_matching(links, is_preview)


def out_of_band_builds(links: Iterable[RawPatchLink]) -> list[str]:
    return _builds_matching(links, is_out_of_band)

"""Windows update-history page client."""

import json
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from rich.console import Console

from .models import RawPatchLink

console = Console()

SUPPORT_BASE = "https://support.microsoft.com"
UPDATE_HISTORY_URLS = (
    f"{SUPPORT_BASE}/en-us/topic/windows-10-update-history-8127c2c6-6edf-4fdf-8b9f-0f7be1ef3562",
    f"{SUPPORT_BASE}/en-us/topic/windows-11-version-24h2-update-history-0929c747-1815-4543-8461-0160d16f15e5",
    f"{SUPPORT_BASE}/en-us/topic/windows-11-version-23h2-update-history-59875222-b990-4bd9-932f-91a5954de434",
)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

NAV_LINK_CLASS = "supLeftNavLink"


def parse_update_history(html: str, base_url: str = SUPPORT_BASE) -> list[RawPatchLink]:
    """Extract the left-navigation release anchors from an update-history page."""
    soup = BeautifulSoup(html, "lxml")
    links: list[RawPatchLink] = []
    for anchor in soup.find_all("a", class_=NAV_LINK_CLASS):
        href = anchor.get("href", "")
        links.append(
            RawPatchLink(
                title=anchor.get_text(strip=True),
                href=urljoin(base_url, href) if href else "",
                outer_markup=str(anchor),
            )
        )
    return links


def fetch_update_history(url: str) -> list[RawPatchLink]:
    with httpx.Client(timeout=60.0, follow_redirects=True) as client:
        response = client.get(url, headers=HEADERS)
        if response.status_code == 404:
            console.print(f"[yellow]Update history page not found: {url}[/yellow]")
            return []
        response.raise_for_status()
    return parse_update_history(response.text, url)


def fetch_all_update_history(
    urls: Optional[list[str]] = None,
    verbose: bool = False,
) -> list[RawPatchLink]:
    """Fetch every history page; a failing page is reported and skipped."""
    urls = list(urls or UPDATE_HISTORY_URLS)
    seen: set[str] = set()
    links: list[RawPatchLink] = []
    for url in urls:
        if verbose:
            console.print(f"[cyan]Fetching {url}...[/cyan]")
        try:
            page_links = fetch_update_history(url)
        except httpx.HTTPError as e:
            if verbose:
                console.print(f"[red]Error fetching {url}: {e}[/red]")
            continue
        for link in page_links:
            if link.outer_markup in seen:
                continue
            seen.add(link.outer_markup)
            links.append(link)
        if verbose:
            console.print(f"[green]Found {len(page_links)} release links[/green]")
    return links


def load_links(path: Path) -> list[RawPatchLink]:
    data = json.loads(path.read_text(encoding="utf-8"))
    return [RawPatchLink.model_validate(item) for item in data]


def dump_links(links: list[RawPatchLink], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [link.model_dump(by_alias=True) for link in links]
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")

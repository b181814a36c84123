"""Microsoft Graph client for managed device inventory."""

import json
import os
from pathlib import Path
from typing import Optional

import httpx
from pydantic import ValidationError
from rich.console import Console

from .models import Device

console = Console()

GRAPH_API_BASE = "https://graph.microsoft.com/beta"
MANAGED_DEVICES_URL = f"{GRAPH_API_BASE}/deviceManagement/managedDevices"
TOKEN_ENV_VAR = "GRAPH_ACCESS_TOKEN"

DEVICE_FIELDS = (
    "id",
    "deviceName",
    "userPrincipalName",
    "operatingSystem",
    "model",
    "totalStorageSpaceInBytes",
    "freeStorageSpaceInBytes",
    "osVersion",
    "joinType",
    "lastSyncDateTime",
)


def get_token(token: Optional[str] = None) -> Optional[str]:
    return token or os.environ.get(TOKEN_ENV_VAR)


def parse_device(item) -> Device:
    """Validate one inventory record. Fields that fail validation are dropped to None."""
    if not isinstance(item, dict):
        console.print(f"[yellow]Malformed device record, evaluating without fields: {item!r}[/yellow]")
        return Device()
    try:
        return Device.model_validate(item)
    except ValidationError as e:
        invalid = {str(error["loc"][0]) for error in e.errors() if error["loc"]}
        name = item.get("deviceName") or item.get("device_name") or "?"
        console.print(f"[yellow]Device {name}: ignoring invalid {', '.join(sorted(invalid))}[/yellow]")
        return Device.model_validate({k: v for k, v in item.items() if k not in invalid})


def fetch_managed_devices(token: str, verbose: bool = False) -> list[Device]:
    """Page through Windows managed devices. The bearer token is supplied by the caller."""
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
    }
    params: Optional[dict] = {
        "$filter": "operatingSystem eq 'Windows'",
        "$select": ",".join(DEVICE_FIELDS),
    }
    url: Optional[str] = MANAGED_DEVICES_URL
    devices: list[Device] = []

    with httpx.Client(timeout=60.0) as client:
        while url:
            response = client.get(url, headers=headers, params=params)
            response.raise_for_status()
            data = response.json()
            page = data.get("value", [])
            devices.extend(parse_device(item) for item in page)
            if verbose:
                console.print(f"[cyan]Retrieved {len(devices)} devices...[/cyan]")
            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

    if verbose:
        console.print(f"[green]Found {len(devices)} managed devices[/green]")
    return devices


def load_devices(path: Path) -> list[Device]:
    """Read a device export: a JSON list, or a Graph response with a "value" array."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("value", [])
    return [parse_device(item) for item in data]

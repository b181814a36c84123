"""CLI for Patch Compliance Reporter."""

from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .builds import BUILD_REGISTRY, OS_VERSION_LABELS
from .catalog import build_catalog
from .database import (
    get_db,
    get_db_path,
    get_run_verdicts,
    get_runs,
    get_stats,
    init_db,
    save_catalog,
    save_report,
)
from .evaluator import evaluate_devices
from .export import DEFAULT_REPORT_DIR, cleanup_reports, default_report_path, write_csv_report
from .history_client import dump_links, fetch_all_update_history, load_links
from .intune_client import TOKEN_ENV_VAR, fetch_managed_devices, get_token, load_devices
from .models import (
    ComplianceStatus,
    Device,
    PatchCatalog,
    RawPatchLink,
    SelectionPolicy,
)
from .parser import out_of_band_builds, parse_patch_links, preview_builds, unparsed_links
from .selector import catalog_age_days, select_latest_patches

console = Console()

STATUS_STYLES = {
    ComplianceStatus.COMPLIANT: "green",
    ComplianceStatus.NON_COMPLIANT: "red",
    ComplianceStatus.MANUAL_CHECK: "yellow",
}


def print_header() -> None:
    console.print(
        Panel.fit(
            f"[bold cyan]Patch Compliance Reporter[/bold cyan] v{__version__}\n"
            "[dim]Windows Patch Compliance for Managed Devices[/dim]",
            border_style="cyan",
        )
    )


def parse_month(value: str) -> tuple[int, int]:
    """Parse YYYY-MM into a (month, year) pair."""
    year, month = map(int, value.split("-"))
    if month < 1 or month > 12:
        raise ValueError("Month must be 1-12")
    return month, year


def _load_or_fetch_links(links_file: Optional[Path], verbose: bool = True) -> list[RawPatchLink]:
    if links_file:
        try:
            links = load_links(links_file)
        except ValueError as e:
            raise click.ClickException(f"Could not read release links from {links_file}: {e}")
        console.print(f"[cyan]Loaded {len(links)} release links from {links_file}[/cyan]")
        return links
    console.print("\n[cyan]Fetching Windows update history...[/cyan]\n")
    return fetch_all_update_history(verbose=verbose)


def _build_policy(month: Optional[str], freshness_days: int) -> Optional[SelectionPolicy]:
    target_month = None
    if month:
        try:
            target_month = parse_month(month)
        except ValueError as e:
            console.print(f"[red]Invalid month format: {e}[/red]")
            console.print("[dim]Use YYYY-MM format (e.g., 2024-11)[/dim]")
            return None
    return SelectionPolicy(target_month=target_month, freshness_threshold_days=freshness_days)


def _print_catalog_warnings(links: list[RawPatchLink]) -> None:
    skipped = unparsed_links(links)
    if skipped:
        console.print(f"[yellow]{len(skipped)} release link(s) had no readable release date:[/yellow]")
        for link in skipped[:10]:
            console.print(f"[dim]  {link.title}[/dim]")


def _make_catalog(links: list[RawPatchLink]) -> PatchCatalog:
    catalog = build_catalog(parse_patch_links(links))
    _print_catalog_warnings(links)
    return catalog


month_option = click.option(
    "--month",
    "-m",
    type=str,
    envvar="PATCH_COMPLIANCE_TARGET_MONTH",
    help="Explicit target patch month (YYYY-MM format)",
)
freshness_option = click.option(
    "--freshness-days",
    "-f",
    type=int,
    default=0,
    show_default=True,
    envvar="PATCH_COMPLIANCE_FRESHNESS_DAYS",
    help="Catalog age in days after which the newest patch per build is required",
)
links_option = click.option(
    "--links",
    "-l",
    "links_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read release links from a JSON file instead of fetching",
)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Patch Compliance Reporter - check managed Windows devices against the latest patches."""
    pass


@cli.command()
def builds() -> None:
    """Show known Windows build lines and report labels."""
    print_header()

    table = Table(title="Build Registry")
    table.add_column("Major Build", style="cyan")
    table.add_column("Operating System", style="green")
    table.add_column("Report Label", style="yellow")
    for info in BUILD_REGISTRY:
        table.add_row(
            str(info.major_build),
            info.operating_system_name,
            OS_VERSION_LABELS.get(info.major_build, ""),
        )
    console.print(table)


@cli.command()
@links_option
@click.option(
    "--save-links",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the fetched release links to a JSON file",
)
@click.option("--save", is_flag=True, help="Store the catalog in the database")
def catalog(links_file: Optional[Path], save_links: Optional[Path], save: bool) -> None:
    """Build and show the patch catalog."""
    print_header()

    links = _load_or_fetch_links(links_file)
    if save_links:
        dump_links(links, save_links)
        console.print(f"[green]✓ Saved {len(links)} release links to {save_links}[/green]")

    patch_catalog = _make_catalog(links)
    if not patch_catalog.records:
        console.print("[yellow]No patch records found[/yellow]")
        return

    for major in patch_catalog.major_builds:
        records = patch_catalog.for_build(major)
        table = Table(title=f"{records[0].operating_system} ({major})")
        table.add_column("Build", style="cyan")
        table.add_column("KB", style="green")
        table.add_column("Release Date", style="yellow")
        for record in records[:12]:
            table.add_row(record.build, record.patch_ids_label, record.release_date.isoformat())
        console.print(table)
        if len(records) > 12:
            console.print(f"[dim]... and {len(records) - 12} older releases[/dim]")

    preview = preview_builds(links)
    out_of_band = out_of_band_builds(links)
    console.print(f"\n[bold]Preview builds ({len(preview)}):[/bold] [dim]{', '.join(preview) or 'none'}[/dim]")
    console.print(f"[bold]Out-of-band builds ({len(out_of_band)}):[/bold] [dim]{', '.join(out_of_band) or 'none'}[/dim]")

    if save:
        init_db()
        with get_db() as db:
            count = save_catalog(db, patch_catalog)
        console.print(f"\n[green]✓ Stored {count} patch records[/green]")


@cli.command()
@links_option
@month_option
@freshness_option
def latest(links_file: Optional[Path], month: Optional[str], freshness_days: int) -> None:
    """Show the currently required patch for each build line."""
    print_header()

    policy = _build_policy(month, freshness_days)
    if policy is None:
        return

    patch_catalog = _make_catalog(_load_or_fetch_links(links_file))
    latest_set = select_latest_patches(patch_catalog, policy)
    if not latest_set.patches:
        console.print("[yellow]No patches selected[/yellow]")
        return

    age = catalog_age_days(patch_catalog)
    if age is not None:
        console.print(f"[dim]Newest release is {age} day(s) old[/dim]\n")

    table = Table(title="Required Patches")
    table.add_column("Major Build", style="cyan")
    table.add_column("Operating System", style="green")
    table.add_column("OS Version", style="white")
    table.add_column("KB", style="yellow")
    table.add_column("Release Date", style="magenta")
    table.add_column("Selected By", style="dim")
    for major in sorted(latest_set.patches, reverse=True):
        selected = latest_set.patches[major]
        table.add_row(
            str(major),
            selected.record.operating_system,
            selected.os_version_full,
            selected.record.patch_ids_label,
            selected.record.release_date.isoformat(),
            selected.tier.value,
        )
    console.print(table)


@cli.command()
@links_option
@click.option(
    "--devices",
    "-d",
    "devices_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read devices from a JSON export instead of Microsoft Graph",
)
@click.option(
    "--token",
    type=str,
    help=f"Microsoft Graph bearer token (default: ${TOKEN_ENV_VAR})",
)
@month_option
@freshness_option
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the report to this CSV file",
)
@click.option("--report", "write_report", is_flag=True, help="Write the report to the reports directory")
@click.option("--no-save", is_flag=True, help="Do not store the run in the database")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed progress")
def evaluate(
    links_file: Optional[Path],
    devices_file: Optional[Path],
    token: Optional[str],
    month: Optional[str],
    freshness_days: int,
    csv_path: Optional[Path],
    write_report: bool,
    no_save: bool,
    verbose: bool,
) -> None:
    """
    Evaluate device compliance against the required patches.

    Examples:

        patch-compliance evaluate -d devices.json -l links.json

        patch-compliance evaluate --month 2024-11 --csv report.csv
    """
    print_header()

    policy = _build_policy(month, freshness_days)
    if policy is None:
        return

    devices: list[Device]
    if devices_file:
        try:
            devices = load_devices(devices_file)
        except ValueError as e:
            raise click.ClickException(f"Could not read devices from {devices_file}: {e}")
    else:
        bearer = get_token(token)
        if not bearer:
            console.print(f"[red]No device source. Use --devices or set {TOKEN_ENV_VAR}.[/red]")
            return
        console.print("\n[cyan]Fetching managed devices...[/cyan]\n")
        try:
            devices = fetch_managed_devices(bearer, verbose=verbose)
        except httpx.HTTPError as e:
            raise click.ClickException(f"Failed to fetch managed devices: {e}")

    patch_catalog = _make_catalog(_load_or_fetch_links(links_file, verbose=verbose))
    latest_set = select_latest_patches(patch_catalog, policy)
    report = evaluate_devices(devices, patch_catalog, latest_set)

    summary = (
        f"[bold]Devices:[/bold] {report.total}\n"
        f"[green]Compliant:[/green] {report.compliant_count}\n"
        f"[red]Non-compliant:[/red] {report.non_compliant_count}\n"
        f"[yellow]Manual check:[/yellow] {report.manual_check_count}\n"
        f"[bold]Compliance:[/bold] {report.compliance_percentage:.2f}%"
    )
    console.print(Panel.fit(summary, title="Compliance Summary", border_style="cyan"))

    if report.verdicts:
        table = Table(title="Device Compliance")
        table.add_column("Device", style="cyan", max_width=30)
        table.add_column("User", style="dim", max_width=30)
        table.add_column("OS", style="white")
        table.add_column("Installed KB", style="green")
        table.add_column("Status")
        table.add_column("Days", justify="right")
        table.add_column("Required KB", style="yellow")
        for verdict in report.verdicts:
            style = STATUS_STYLES[verdict.status]
            table.add_row(
                verdict.device.device_name or "",
                verdict.device.primary_user_upn or "",
                verdict.os_version_label,
                ", ".join(verdict.installed_patch_ids),
                f"[{style}]{verdict.status.value}[/{style}]",
                str(verdict.days_unpatched),
                verdict.required_label,
            )
        console.print(table)

    if write_report and not csv_path:
        csv_path = default_report_path(report)
    if csv_path:
        write_csv_report(report, csv_path)
        console.print(f"\n[green]✓ Report written to {csv_path}[/green]")

    if not no_save:
        init_db()
        with get_db() as db:
            run_id = save_report(db, report, latest_set, policy)
        console.print(f"[green]✓ Stored as run #{run_id}[/green]")


@cli.command()
@click.option("--limit", "-n", type=int, default=20, help="Number of runs to show (default: 20)")
def runs(limit: int) -> None:
    """List stored compliance runs."""
    print_header()
    init_db()

    with get_db() as db:
        stored = get_runs(db, limit)

    if not stored:
        console.print("\n[yellow]No runs found. Try running 'patch-compliance evaluate' first.[/yellow]")
        return

    table = Table(title="Compliance Runs")
    table.add_column("Run", style="cyan")
    table.add_column("Generated", style="white")
    table.add_column("Target Month", style="dim")
    table.add_column("Devices", justify="right")
    table.add_column("Compliant", style="green", justify="right")
    table.add_column("Non-compliant", style="red", justify="right")
    table.add_column("Manual", style="yellow", justify="right")
    table.add_column("%", justify="right")
    for run in stored:
        table.add_row(
            str(run["id"]),
            run["generated_at"].strftime("%Y-%m-%d %H:%M"),
            run["target_month"] or "-",
            str(run["total"]),
            str(run["compliant"]),
            str(run["non_compliant"]),
            str(run["manual_check"]),
            f"{run['compliance_percentage']:.2f}",
        )
    console.print(table)


@cli.command()
@click.argument("run_id", type=int)
def show(run_id: int) -> None:
    """Show the device verdicts of a stored run."""
    print_header()
    init_db()

    with get_db() as db:
        verdicts = get_run_verdicts(db, run_id)

    if not verdicts:
        console.print(f"\n[yellow]Run {run_id} not found in database.[/yellow]")
        return

    table = Table(title=f"Run #{run_id}")
    table.add_column("Device", style="cyan", max_width=30)
    table.add_column("OS", style="white")
    table.add_column("Installed KB", style="green")
    table.add_column("Status")
    table.add_column("Days", justify="right")
    table.add_column("Required KB", style="yellow")
    for row in verdicts:
        style = STATUS_STYLES.get(ComplianceStatus(row["status"]), "white")
        table.add_row(
            row["device_name"] or "",
            row["os_version_label"],
            row["installed_patch_ids"] or "",
            f"[{style}]{row['status']}[/{style}]",
            row["days_unpatched"],
            row["required_patch_ids"],
        )
    console.print(table)


@cli.command()
def stats() -> None:
    """Show database statistics."""
    print_header()
    init_db()

    with get_db() as db:
        counts = get_stats(db)

    table = Table(title="Database Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Runs", str(counts["runs"]))
    table.add_row("Device verdicts", str(counts["verdicts"]))
    table.add_row("Patch records", str(counts["patch_records"]))
    table.add_row("Build lines", str(counts["major_builds"]))
    console.print(table)
    console.print(f"\n[dim]Database: {get_db_path()}[/dim]")


@cli.command()
@click.option(
    "--report-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Report directory (default: ./reports)",
)
@click.option("--keep", "-k", type=click.IntRange(min=0), default=5, help="Number of reports to keep (default: 5)")
def clean(report_dir: Optional[Path], keep: int) -> None:
    """Delete old CSV reports."""
    print_header()

    removed = cleanup_reports(report_dir or DEFAULT_REPORT_DIR, keep)
    if not removed:
        console.print("\n[yellow]Nothing to delete.[/yellow]")
        return
    for path in removed:
        console.print(f"[green]✓ Deleted {path}[/green]")


if __name__ == "__main__":
    cli()

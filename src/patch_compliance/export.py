"""CSV export of compliance reports."""

import csv
from pathlib import Path
from typing import Optional

from .models import ComplianceReport, ComplianceVerdict

DEFAULT_REPORT_DIR = Path(__file__).parent.parent.parent / "reports"

REPORT_COLUMNS = (
    "DeviceName",
    "PrimaryUser",
    "OperatingSystem",
    "Model",
    "TotalStorageGB",
    "FreeStorageGB",
    "JoinType",
    "LastSync",
    "OSVersion",
    "OSVersionLabel",
    "InstalledKB",
    "InstalledReleaseDate",
    "Status",
    "DaysUnpatched",
    "RequiredKB",
)


def _gigabytes(value: Optional[int]) -> str:
    if value is None:
        return ""
    return f"{value / 1024 ** 3:.2f}"


def verdict_row(verdict: ComplianceVerdict) -> dict[str, str]:
    device = verdict.device
    return {
        "DeviceName": device.device_name or "",
        "PrimaryUser": device.primary_user_upn or "",
        "OperatingSystem": device.operating_system or "",
        "Model": device.model or "",
        "TotalStorageGB": _gigabytes(device.total_storage_bytes),
        "FreeStorageGB": _gigabytes(device.free_storage_bytes),
        "JoinType": device.join_type or "",
        "LastSync": device.last_sync.strftime("%Y-%m-%d %H:%M") if device.last_sync else "",
        "OSVersion": device.os_version or "",
        "OSVersionLabel": verdict.os_version_label,
        "InstalledKB": ", ".join(verdict.installed_patch_ids),
        "InstalledReleaseDate": verdict.installed_release_date.isoformat() if verdict.installed_release_date else "",
        "Status": verdict.status.value,
        "DaysUnpatched": str(verdict.days_unpatched),
        "RequiredKB": verdict.required_label,
    }


def report_rows(report: ComplianceReport) -> list[dict[str, str]]:
    return [verdict_row(v) for v in report.verdicts]


def summary_row(report: ComplianceReport) -> dict[str, str]:
    return {
        "GeneratedAt": report.generated_at.isoformat(timespec="seconds"),
        "TotalDevices": str(report.total),
        "Compliant": str(report.compliant_count),
        "ManualCheck": str(report.manual_check_count),
        "NonCompliant": str(report.non_compliant_count),
        "CompliancePercentage": f"{report.compliance_percentage:.2f}",
    }


def write_csv_report(report: ComplianceReport, path: Path) -> Path:
    """Write the device rows to path and the run summary beside it (<stem>_summary.csv)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=REPORT_COLUMNS)
        writer.writeheader()
        writer.writerows(report_rows(report))

    summary = summary_row(report)
    summary_path = path.with_name(f"{path.stem}_summary{path.suffix}")
    with open(summary_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(summary))
        writer.writeheader()
        writer.writerow(summary)
    return summary_path


def default_report_path(report: ComplianceReport, report_dir: Optional[Path] = None) -> Path:
    report_dir = report_dir or DEFAULT_REPORT_DIR
    stamp = report.generated_at.strftime("%Y%m%d_%H%M%S")
    return report_dir / f"patch_compliance_{stamp}.csv"


def cleanup_reports(report_dir: Path, keep: int = 5) -> list[Path]:
    """Delete all but the newest `keep` reports (and their summaries). Returns removed files."""
    if keep < 0:
        raise ValueError(f"keep must be zero or more, got {keep}")
    if not report_dir.exists():
        return []
    reports = sorted(
        (p for p in report_dir.glob("patch_compliance_*.csv") if not p.stem.endswith("_summary")),
        key=lambda p: p.name,
        reverse=True,
    )
    removed: list[Path] = []
    for old in reports[keep:]:
        summary = old.with_name(f"{old.stem}_summary{old.suffix}")
        for path in (old, summary):
            if path.exists():
                path.unlink()
                removed.append(path)
    return removed

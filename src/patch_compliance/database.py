"""SQLite storage for compliance runs."""

import json
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from sqlite_utils import Database

from .models import ComplianceReport, LatestPatchSet, PatchCatalog, SelectionPolicy

DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "data" / "compliance.db"
DB_ENV_VAR = "PATCH_COMPLIANCE_DB"


def get_db_path() -> Path:
    override = os.environ.get(DB_ENV_VAR)
    db_path = Path(override) if override else DEFAULT_DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_db(db_path: Optional[Path] = None) -> Iterator[Database]:
    path = db_path or get_db_path()
    db = Database(path)
    try:
        yield db
    finally:
        db.close()


def init_db(db_path: Optional[Path] = None) -> None:
    with get_db(db_path) as db:
        db.execute("""
            CREATE TABLE IF NOT EXISTS runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                generated_at TEXT NOT NULL,
                target_month TEXT,
                freshness_threshold_days INTEGER NOT NULL,
                selected_builds TEXT NOT NULL,
                total INTEGER NOT NULL,
                compliant INTEGER NOT NULL,
                manual_check INTEGER NOT NULL,
                non_compliant INTEGER NOT NULL,
                compliance_percentage REAL NOT NULL
            )
        """)
        db.execute("""
            CREATE TABLE IF NOT EXISTS verdicts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id INTEGER NOT NULL,
                device_id TEXT,
                device_name TEXT,
                primary_user_upn TEXT,
                os_version TEXT,
                os_version_label TEXT NOT NULL,
                installed_patch_ids TEXT,
                installed_release_date TEXT,
                status TEXT NOT NULL,
                days_unpatched TEXT NOT NULL,
                required_patch_ids TEXT NOT NULL,
                FOREIGN KEY (run_id) REFERENCES runs(id) ON DELETE CASCADE
            )
        """)
        db.execute("""
            CREATE TABLE IF NOT EXISTS patch_records (
                build TEXT NOT NULL,
                patch_ids TEXT NOT NULL,
                operating_system TEXT NOT NULL,
                major_build INTEGER NOT NULL,
                minor_build INTEGER NOT NULL,
                release_date TEXT NOT NULL,
                PRIMARY KEY (build, patch_ids, release_date)
            )
        """)
        db.execute("CREATE INDEX IF NOT EXISTS idx_verdicts_run ON verdicts(run_id)")
        db.execute("CREATE INDEX IF NOT EXISTS idx_patch_records_major ON patch_records(major_build)")


def save_catalog(db: Database, catalog: PatchCatalog) -> int:
    conn = db.conn
    cursor = conn.cursor()
    for record in catalog.records:
        cursor.execute(
            """
            INSERT OR REPLACE INTO patch_records
                (build, patch_ids, operating_system, major_build, minor_build, release_date)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                record.build,
                record.patch_ids_label,
                record.operating_system,
                record.major_build,
                record.minor_build,
                record.release_date.isoformat(),
            ],
        )
    conn.commit()
    return len(catalog.records)


def save_report(
    db: Database,
    report: ComplianceReport,
    latest: LatestPatchSet,
    policy: SelectionPolicy,
) -> int:
    conn = db.conn
    cursor = conn.cursor()
    target_month = None
    if policy.target_month:
        month, year = policy.target_month
        target_month = f"{year}-{month:02d}"
    selected = {
        str(major): {"build": p.record.build, "patch_ids": list(p.patch_ids), "tier": p.tier.value}
        for major, p in sorted(latest.patches.items(), reverse=True)
    }
    cursor.execute(
        """
        INSERT INTO runs (
            generated_at, target_month, freshness_threshold_days, selected_builds,
            total, compliant, manual_check, non_compliant, compliance_percentage
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            report.generated_at.isoformat(),
            target_month,
            policy.freshness_threshold_days,
            json.dumps(selected),
            report.total,
            report.compliant_count,
            report.manual_check_count,
            report.non_compliant_count,
            report.compliance_percentage,
        ],
    )
    run_id = cursor.lastrowid or -1
    for verdict in report.verdicts:
        device = verdict.device
        cursor.execute(
            """
            INSERT INTO verdicts (
                run_id, device_id, device_name, primary_user_upn, os_version,
                os_version_label, installed_patch_ids, installed_release_date,
                status, days_unpatched, required_patch_ids
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                run_id,
                device.id,
                device.device_name,
                device.primary_user_upn,
                device.os_version,
                verdict.os_version_label,
                ", ".join(verdict.installed_patch_ids),
                verdict.installed_release_date.isoformat() if verdict.installed_release_date else None,
                verdict.status.value,
                str(verdict.days_unpatched),
                verdict.required_label,
            ],
        )
    conn.commit()
    return run_id


def get_runs(db: Database, limit: int = 20) -> list[dict]:
    rows = db.execute(
        """
        SELECT id, generated_at, target_month, freshness_threshold_days,
               total, compliant, manual_check, non_compliant, compliance_percentage
        FROM runs
        ORDER BY id DESC
        LIMIT ?
        """,
        [limit],
    ).fetchall()
    return [
        {
            "id": r[0],
            "generated_at": datetime.fromisoformat(r[1]),
            "target_month": r[2],
            "freshness_threshold_days": r[3],
            "total": r[4],
            "compliant": r[5],
            "manual_check": r[6],
            "non_compliant": r[7],
            "compliance_percentage": r[8],
        }
        for r in rows
    ]


def get_run_verdicts(db: Database, run_id: int) -> list[dict]:
    rows = db.execute(
        """
        SELECT device_name, primary_user_upn, os_version, os_version_label,
               installed_patch_ids, installed_release_date, status,
               days_unpatched, required_patch_ids
        FROM verdicts
        WHERE run_id = ?
        ORDER BY id
        """,
        [run_id],
    ).fetchall()
    keys = (
        "device_name",
        "primary_user_upn",
        "os_version",
        "os_version_label",
        "installed_patch_ids",
        "installed_release_date",
        "status",
        "days_unpatched",
        "required_patch_ids",
    )
    return [dict(zip(keys, r)) for r in rows]


def get_stats(db: Database) -> dict:
    runs = db.execute("SELECT COUNT(*) FROM runs").fetchone()[0]
    verdicts = db.execute("SELECT COUNT(*) FROM verdicts").fetchone()[0]
    records = db.execute("SELECT COUNT(*) FROM patch_records").fetchone()[0]
    builds = db.execute("SELECT COUNT(DISTINCT major_build) FROM patch_records").fetchone()[0]
    return {
        "runs": runs,
        "verdicts": verdicts,
        "patch_records": records,
        "major_builds": builds,
    }

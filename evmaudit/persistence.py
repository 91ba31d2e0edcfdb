"""Persistence: SQLite audit history and JSON report files."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

from evmaudit.models import AuditReport, AuditRun
from evmaudit.output import report_to_dict

logger = logging.getLogger(__name__)

_SCHEMA_V1 = """\
CREATE TABLE IF NOT EXISTS audit_runs (
    id                TEXT PRIMARY KEY,
    rpc_url           TEXT NOT NULL,
    chain_id          INTEGER NOT NULL,
    timestamp         TEXT NOT NULL,
    hard_fork         TEXT NOT NULL,
    coverage_score    INTEGER NOT NULL,
    duration_seconds  REAL NOT NULL,
    meta              TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS feature_flags (
    audit_run_id  TEXT NOT NULL REFERENCES audit_runs (id),
    feature       TEXT NOT NULL,
    supported     INTEGER NOT NULL,
    UNIQUE (audit_run_id, feature)
);
"""

# (target version, DDL), applied in order.
_MIGRATIONS: list[tuple[int, str]] = [(1, _SCHEMA_V1)]
_SCHEMA_VERSION = _MIGRATIONS[-1][0]


def init_db(db_path: str) -> sqlite3.Connection:
    """Open the audit-history database, creating and migrating it as needed.

    Args:
        db_path: Database file (parent directories are created), or
            ``":memory:"``.

    Returns:
        A connection with WAL journalling, foreign keys and
        ``sqlite3.Row`` rows.
    """
    if db_path != ":memory:":
        Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        db_path = str(Path(db_path).expanduser())
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    _migrate(conn)
    return conn


def save_audit_run(conn: sqlite3.Connection, audit_run: AuditRun) -> str:
    """Persist an audit run and assign it a UUID.

    The generated UUID is written back to ``audit_run.id``.

    Args:
        conn: Open database connection (from ``init_db``).
        audit_run: The audit run to persist.

    Returns:
        The generated UUID string.
    """
    run_id = uuid.uuid4().hex
    audit_run.id = run_id
    conn.execute(
        "INSERT INTO audit_runs (id, rpc_url, chain_id, timestamp, hard_fork, "
        "coverage_score, duration_seconds, meta) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            run_id,
            audit_run.rpc_url,
            audit_run.chain_id,
            audit_run.timestamp.isoformat(),
            audit_run.hard_fork,
            audit_run.coverage_score,
            audit_run.duration_seconds,
            json.dumps(audit_run.meta),
        ),
    )
    conn.commit()
    return run_id


def save_feature_flags(
    conn: sqlite3.Connection,
    flags: dict[str, bool],
    audit_run_id: str,
) -> None:
    """Store the folded feature flags of one audit run.

    Args:
        conn: Open database connection (from ``init_db``).
        flags: Feature id -> supported.
        audit_run_id: The audit-run UUID these flags belong to.
    """
    conn.executemany(
        "INSERT INTO feature_flags (audit_run_id, feature, supported) "
        "VALUES (?, ?, ?)",
        [(audit_run_id, feature, int(supported)) for feature, supported in flags.items()],
    )
    conn.commit()


def audit_history(
    conn: sqlite3.Connection,
    chain_id: int | None = None,
) -> list[AuditRun]:
    """Return stored audit runs, newest first, optionally for one chain."""
    query = (
        "SELECT id, rpc_url, chain_id, timestamp, hard_fork, coverage_score, "
        "duration_seconds, meta FROM audit_runs"
    )
    params: tuple = ()
    if chain_id is not None:
        query += " WHERE chain_id = ?"
        params = (chain_id,)
    query += " ORDER BY timestamp DESC"

    return [
        AuditRun(
            rpc_url=row["rpc_url"],
            chain_id=row["chain_id"],
            hard_fork=row["hard_fork"],
            coverage_score=row["coverage_score"],
            duration_seconds=row["duration_seconds"],
            id=row["id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            meta=json.loads(row["meta"]),
        )
        for row in conn.execute(query, params).fetchall()
    ]


def write_report(report: AuditReport, directory: str | Path) -> Path:
    """Write *report* as pretty JSON into *directory*.

    The file is named ``audit-<chain_id>-<UTC timestamp>.json``.

    Returns:
        Path of the written file.
    """
    out_dir = Path(directory).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.timestamp.strftime("%Y%m%dT%H%M%SZ")
    path = out_dir / f"audit-{report.chain.chain_id}-{stamp}.json"
    path.write_text(
        json.dumps(report_to_dict(report), indent=2, default=str) + "\n",
        encoding="utf-8",
    )
    logger.info("Report saved to %s", path)
    return path


def _migrate(conn: sqlite3.Connection) -> None:
    """Bring the schema up to ``_SCHEMA_VERSION`` (tracked in ``user_version``)."""
    (version,) = conn.execute("PRAGMA user_version").fetchone()
    for target, script in _MIGRATIONS:
        if version < target:
            logger.debug("Migrating audit history schema to v%d", target)
            conn.executescript(script)
            conn.execute(f"PRAGMA user_version = {target}")
            version = target
    conn.commit()

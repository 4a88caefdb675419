"""SQLite-backed catalog store.

The store exclusively owns persisted state. Every other component reads
and writes through it, and every write is an upsert by a stable key
(or an append, for health measurements and alerts).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mcp_catalog.entities.analysis import AnalysisProfile
from mcp_catalog.entities.catalog import (
    AlertSeverity,
    DiscoveryRun,
    HealthAlert,
    HealthMeasurement,
    MeasurementSubject,
    MergedRecord,
)
from mcp_catalog.entities.detection import Detection, DetectionThresholds
from mcp_catalog.entities.directory import DirectoryCategory, DirectoryServer, HealthTrend
from mcp_catalog.entities.repository import Repository
from mcp_catalog.errors import StorageConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

SCHEMA_VERSION = "1"

DDL = """
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS repositories (
    full_name TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    html_url TEXT NOT NULL DEFAULT '',
    clone_url TEXT NOT NULL DEFAULT '',
    homepage TEXT NOT NULL DEFAULT '',
    language TEXT,
    stars INTEGER NOT NULL DEFAULT 0,
    forks INTEGER NOT NULL DEFAULT 0,
    watchers INTEGER NOT NULL DEFAULT 0,
    size INTEGER NOT NULL DEFAULT 0,
    topics TEXT NOT NULL DEFAULT '[]',
    license TEXT,
    default_branch TEXT NOT NULL DEFAULT 'main',
    archived INTEGER NOT NULL DEFAULT 0,
    fork INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    updated_at TEXT,
    pushed_at TEXT,
    discovered_at TEXT NOT NULL,
    search_pattern TEXT NOT NULL DEFAULT '',
    last_seen_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS analysis_profiles (
    full_name TEXT PRIMARY KEY REFERENCES repositories(full_name) ON DELETE CASCADE,
    language TEXT,
    framework TEXT,
    installation_method TEXT,
    server_type TEXT,
    seed_confidence INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    analyzed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS detections (
    full_name TEXT PRIMARY KEY REFERENCES repositories(full_name) ON DELETE CASCADE,
    confidence INTEGER NOT NULL,
    band TEXT NOT NULL,
    classification TEXT NOT NULL,
    is_candidate INTEGER NOT NULL DEFAULT 0,
    strict_mode INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    detected_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS directory_servers (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT '',
    language TEXT,
    capabilities TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    verified INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1,
    health_score REAL,
    health_trend TEXT NOT NULL DEFAULT 'unknown',
    stars INTEGER NOT NULL DEFAULT 0,
    downloads INTEGER NOT NULL DEFAULT 0,
    repository_url TEXT NOT NULL DEFAULT '',
    homepage TEXT NOT NULL DEFAULT '',
    author TEXT NOT NULL DEFAULT '',
    version TEXT NOT NULL DEFAULT '',
    installation TEXT NOT NULL DEFAULT '',
    last_updated TEXT,
    last_synced TEXT,
    first_seen TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS directory_categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    server_count INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS directory_sync_history (
    sync_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    stats TEXT NOT NULL DEFAULT '{}',
    error TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT
);

CREATE TABLE IF NOT EXISTS merged_records (
    merge_key TEXT PRIMARY KEY,
    repository_full_name TEXT UNIQUE,
    directory_server_id TEXT,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL DEFAULT '',
    language TEXT,
    category TEXT NOT NULL DEFAULT '',
    server_type TEXT NOT NULL DEFAULT 'general',
    capabilities TEXT NOT NULL DEFAULT '[]',
    stars INTEGER NOT NULL DEFAULT 0,
    combined_stars INTEGER NOT NULL DEFAULT 0,
    downloads INTEGER NOT NULL DEFAULT 0,
    package_name TEXT NOT NULL DEFAULT '',
    installation TEXT NOT NULL DEFAULT '',
    confidence INTEGER NOT NULL DEFAULT 0,
    verified INTEGER NOT NULL DEFAULT 0,
    health_score REAL,
    health_status TEXT NOT NULL DEFAULT 'unknown',
    health_trend TEXT NOT NULL DEFAULT 'unknown',
    reliability REAL,
    match_score REAL,
    match_reasons TEXT NOT NULL DEFAULT '[]',
    data_sources TEXT NOT NULL,
    last_updated TEXT,
    last_health_check TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS health_measurements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    score REAL NOT NULL,
    status TEXT NOT NULL,
    source TEXT NOT NULL,
    factors TEXT NOT NULL DEFAULT '{}',
    measured_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_health_subject
    ON health_measurements (subject, subject_id, measured_at);

CREATE TABLE IF NOT EXISTS health_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    record_key TEXT NOT NULL,
    severity TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    message TEXT NOT NULL,
    health_score REAL,
    acknowledged INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_alert_record
    ON health_alerts (record_key, severity, created_at);

CREATE TABLE IF NOT EXISTS discovery_runs (
    run_id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    status TEXT NOT NULL,
    phase TEXT,
    config TEXT NOT NULL DEFAULT '{}',
    counters TEXT NOT NULL DEFAULT '{}',
    errors TEXT NOT NULL DEFAULT '[]',
    failed_phase TEXT,
    error_message TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT
);
"""

_REPOSITORY_COLUMNS = (
    "full_name", "owner", "name", "description", "html_url", "clone_url", "homepage",
    "language", "stars", "forks", "watchers", "size", "topics", "license", "default_branch",
    "archived", "fork", "created_at", "updated_at", "pushed_at", "discovered_at",
    "search_pattern", "last_seen_at",
)  # fmt: skip

_DIRECTORY_COLUMNS = (
    "id", "name", "description", "category", "language", "capabilities", "tags", "verified",
    "active", "health_score", "health_trend", "stars", "downloads", "repository_url",
    "homepage", "author", "version", "installation", "last_updated", "last_synced", "first_seen",
)  # fmt: skip

_MERGED_COLUMNS = (
    "merge_key", "repository_full_name", "directory_server_id", "name", "description", "url",
    "language", "category", "server_type", "capabilities", "stars", "combined_stars",
    "downloads", "package_name", "installation", "confidence", "verified", "health_score",
    "health_status", "health_trend", "reliability", "match_score", "match_reasons",
    "data_sources", "last_updated", "last_health_check", "created_at", "updated_at",
)  # fmt: skip

# Columns a merge pass must not overwrite: they belong to the health monitor.
_MERGED_PRESERVED = ("created_at", "health_status", "health_trend", "reliability", "last_health_check")

_JSON_COLUMNS = {"topics", "capabilities", "tags", "match_reasons", "factors", "config", "counters", "errors"}
_BOOL_COLUMNS = {"archived", "fork", "verified", "active", "acknowledged", "is_candidate", "strict_mode"}


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def _row_dict(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for key in data.keys() & _JSON_COLUMNS:
        if isinstance(data[key], str):
            data[key] = json.loads(data[key])
    for key in data.keys() & _BOOL_COLUMNS:
        data[key] = bool(data[key])
    return data


def _upsert_sql(
    table: str,
    columns: tuple[str, ...],
    key: str,
    preserved: Iterable[str] = (),
    coalesced: Iterable[str] = (),
) -> str:
    keep = {key, *preserved}
    soft = set(coalesced)
    assignments = ", ".join(
        f"{col} = COALESCE(excluded.{col}, {table}.{col})" if col in soft else f"{col} = excluded.{col}"
        for col in columns
        if col not in keep
    )
    placeholders = ", ".join("?" for _ in columns)
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT({key}) DO UPDATE SET {assignments}"
    )


@dataclass
class ScannerCandidate:
    """A stored repository with its analysis and detection."""

    repository: Repository
    detection: Detection
    profile: AnalysisProfile | None = None


class CatalogStore:
    """Durable, queryable persistence for the whole catalog.

    Uses a single SQLite connection. Writes are serialized by SQLite and
    expressed as upserts, so concurrent workers never need their own locks.
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        """Open (and create if needed) the catalog database.

        Args:
            db_path: SQLite file path, or ``":memory:"`` for an ephemeral store.
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(Path(self.db_path).expanduser())
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.executescript(DDL)
            conn.execute(
                "INSERT OR IGNORE INTO metadata (key, value) VALUES ('schema_version', ?)",
                (SCHEMA_VERSION,),
            )
        logger.debug("Catalog schema ready at %s", self.db_path)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            msg = f"Catalog write failed: {exc}"
            raise StorageConflictError(msg) from exc

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> CatalogStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, params).fetchall()

    def _scalar(self, sql: str, params: tuple[Any, ...] = ()) -> Any:
        row = self._conn.execute(sql, params).fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_metadata(self, key: str) -> str | None:
        return self._scalar("SELECT value FROM metadata WHERE key = ?", (key,))

    def set_metadata(self, key: str, value: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO metadata (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    # ------------------------------------------------------------------
    # Repositories, analysis profiles, detections
    # ------------------------------------------------------------------

    def upsert_repository(self, repo: Repository) -> bool:
        """Insert or update a repository by ``full_name``.

        The original ``discovered_at`` survives re-discovery.

        Returns:
            True if the repository was new.
        """
        exists = self._scalar("SELECT 1 FROM repositories WHERE full_name = ?", (repo.full_name,))
        data = repo.model_dump()
        data["last_seen_at"] = _now()
        values = tuple(_to_db(data[col]) for col in _REPOSITORY_COLUMNS)
        sql = _upsert_sql("repositories", _REPOSITORY_COLUMNS, "full_name", preserved=("discovered_at",))
        with self._transaction() as conn:
            conn.execute(sql, values)
        return exists is None

    def get_repository(self, full_name: str) -> Repository | None:
        rows = self._query("SELECT * FROM repositories WHERE full_name = ?", (full_name,))
        if not rows:
            return None
        data = _row_dict(rows[0])
        data.pop("last_seen_at", None)
        return Repository.model_validate(data)

    def list_repositories(self) -> list[Repository]:
        repos = []
        for row in self._query("SELECT * FROM repositories ORDER BY full_name"):
            data = _row_dict(row)
            data.pop("last_seen_at", None)
            repos.append(Repository.model_validate(data))
        return repos

    def count_repositories(self) -> int:
        return int(self._scalar("SELECT COUNT(*) FROM repositories"))

    def save_analysis(self, profile: AnalysisProfile) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO analysis_profiles "
                "(full_name, language, framework, installation_method, server_type, seed_confidence, data, analyzed_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(full_name) DO UPDATE SET language = excluded.language, "
                "framework = excluded.framework, installation_method = excluded.installation_method, "
                "server_type = excluded.server_type, seed_confidence = excluded.seed_confidence, "
                "data = excluded.data, analyzed_at = excluded.analyzed_at",
                (
                    profile.full_name,
                    profile.language,
                    profile.framework,
                    profile.installation_method,
                    profile.server_type,
                    profile.seed_confidence,
                    profile.model_dump_json(),
                    profile.analyzed_at.isoformat(),
                ),
            )

    def get_analysis(self, full_name: str) -> AnalysisProfile | None:
        data = self._scalar("SELECT data FROM analysis_profiles WHERE full_name = ?", (full_name,))
        return AnalysisProfile.model_validate_json(data) if data else None

    def save_detection(self, detection: Detection) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO detections "
                "(full_name, confidence, band, classification, is_candidate, strict_mode, data, detected_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(full_name) DO UPDATE SET confidence = excluded.confidence, "
                "band = excluded.band, classification = excluded.classification, "
                "is_candidate = excluded.is_candidate, strict_mode = excluded.strict_mode, "
                "data = excluded.data, detected_at = excluded.detected_at",
                (
                    detection.full_name,
                    detection.confidence,
                    detection.band.value,
                    detection.classification.value,
                    int(detection.is_candidate),
                    int(detection.strict_mode),
                    detection.model_dump_json(),
                    detection.detected_at.isoformat(),
                ),
            )

    def store_result(self, repo: Repository, profile: AnalysisProfile, detection: Detection) -> bool:
        """Persist a repository with its profile and detection.

        Returns:
            True if the repository was new.
        """
        is_new = self.upsert_repository(repo)
        self.save_analysis(profile)
        self.save_detection(detection)
        return is_new

    def get_detection(self, full_name: str) -> Detection | None:
        data = self._scalar("SELECT data FROM detections WHERE full_name = ?", (full_name,))
        return Detection.model_validate_json(data) if data else None

    def list_detections(self, min_confidence: int = 0, *, candidates_only: bool = False) -> list[Detection]:
        sql = "SELECT data FROM detections WHERE confidence >= ?"
        if candidates_only:
            sql += " AND is_candidate = 1"
        sql += " ORDER BY confidence DESC, full_name"
        return [Detection.model_validate_json(row[0]) for row in self._query(sql, (min_confidence,))]

    def list_scanner_candidates(self, min_confidence: int) -> list[ScannerCandidate]:
        """Repositories flagged as candidates or scoring at least ``min_confidence``."""
        rows = self._query(
            "SELECT r.full_name, d.data AS detection, a.data AS profile "
            "FROM repositories r JOIN detections d ON d.full_name = r.full_name "
            "LEFT JOIN analysis_profiles a ON a.full_name = r.full_name "
            "WHERE d.is_candidate = 1 OR d.confidence >= ? "
            "ORDER BY d.confidence DESC, r.full_name",
            (min_confidence,),
        )
        candidates = []
        for row in rows:
            repo = self.get_repository(row["full_name"])
            if repo is None:
                continue
            candidates.append(
                ScannerCandidate(
                    repository=repo,
                    detection=Detection.model_validate_json(row["detection"]),
                    profile=AnalysisProfile.model_validate_json(row["profile"]) if row["profile"] else None,
                )
            )
        return candidates

    # ------------------------------------------------------------------
    # Directory servers and categories
    # ------------------------------------------------------------------

    def upsert_directory_server(self, server: DirectoryServer) -> bool:
        """Insert or update a directory server by id.

        Returns:
            True if the server was new.
        """
        exists = self._scalar("SELECT 1 FROM directory_servers WHERE id = ?", (server.id,))
        data = server.model_dump()
        data["last_synced"] = data["last_synced"] or _now()
        data["first_seen"] = _now()
        values = tuple(_to_db(data[col]) for col in _DIRECTORY_COLUMNS)
        sql = _upsert_sql("directory_servers", _DIRECTORY_COLUMNS, "id", preserved=("first_seen", "health_trend"))
        with self._transaction() as conn:
            conn.execute(sql, values)
        return exists is None

    def _row_to_server(self, row: sqlite3.Row) -> DirectoryServer:
        data = _row_dict(row)
        data.pop("first_seen", None)
        return DirectoryServer.model_validate(data)

    def get_directory_server(self, server_id: str) -> DirectoryServer | None:
        rows = self._query("SELECT * FROM directory_servers WHERE id = ?", (server_id,))
        return self._row_to_server(rows[0]) if rows else None

    def list_directory_servers(self, *, active_only: bool = True, category: str | None = None) -> list[DirectoryServer]:
        sql = "SELECT * FROM directory_servers WHERE 1 = 1"
        params: list[Any] = []
        if active_only:
            sql += " AND active = 1"
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY id"
        return [self._row_to_server(row) for row in self._query(sql, tuple(params))]

    def search_directory_servers(self, query: str, limit: int = 20) -> list[DirectoryServer]:
        like = f"%{query.lower()}%"
        rows = self._query(
            "SELECT * FROM directory_servers WHERE active = 1 AND "
            "(lower(name) LIKE ? OR lower(description) LIKE ? OR lower(capabilities) LIKE ?) "
            "ORDER BY verified DESC, COALESCE(health_score, 0) DESC, id LIMIT ?",
            (like, like, like, limit),
        )
        return [self._row_to_server(row) for row in rows]

    def set_directory_trend(self, server_id: str, trend: HealthTrend) -> None:
        with self._transaction() as conn:
            conn.execute("UPDATE directory_servers SET health_trend = ? WHERE id = ?", (trend.value, server_id))

    def mark_servers_inactive(self, seen_ids: set[str]) -> int:
        """Mark every active server not in ``seen_ids`` as inactive.

        Returns:
            Number of servers deactivated.
        """
        active = {row[0] for row in self._query("SELECT id FROM directory_servers WHERE active = 1")}
        stale = sorted(active - seen_ids)
        if not stale:
            return 0
        with self._transaction() as conn:
            conn.executemany("UPDATE directory_servers SET active = 0 WHERE id = ?", [(sid,) for sid in stale])
        return len(stale)

    def count_directory_servers(self, *, active_only: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM directory_servers"
        if active_only:
            sql += " WHERE active = 1"
        return int(self._scalar(sql))

    def upsert_category(self, category: DirectoryCategory) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO directory_categories (id, name, description, server_count, updated_at) "
                "VALUES (?, ?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET name = excluded.name, "
                "description = excluded.description, server_count = excluded.server_count, "
                "updated_at = excluded.updated_at",
                (category.id, category.name, category.description, category.server_count, _now().isoformat()),
            )

    def list_categories(self) -> list[DirectoryCategory]:
        rows = self._query("SELECT id, name, description, server_count FROM directory_categories ORDER BY id")
        return [DirectoryCategory.model_validate(dict(row)) for row in rows]

    def start_sync(self, sync_id: str, started_at: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO directory_sync_history (sync_id, status, started_at) VALUES (?, 'running', ?)",
                (sync_id, started_at.isoformat()),
            )

    def finish_sync(self, sync_id: str, status: str, stats: dict[str, Any], error: str | None = None) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE directory_sync_history SET status = ?, stats = ?, error = ?, finished_at = ? WHERE sync_id = ?",
                (status, json.dumps(stats, default=str), error, _now().isoformat(), sync_id),
            )

    def list_sync_history(self, limit: int = 10) -> list[dict[str, Any]]:
        rows = self._query("SELECT * FROM directory_sync_history ORDER BY started_at DESC LIMIT ?", (limit,))
        history = []
        for row in rows:
            entry = dict(row)
            entry["stats"] = json.loads(entry["stats"] or "{}")
            history.append(entry)
        return history

    # ------------------------------------------------------------------
    # Merged records
    # ------------------------------------------------------------------

    def upsert_merged_record(self, record: MergedRecord) -> bool:
        """Insert or update a merged record by ``merge_key``.

        Health columns owned by the monitor are kept on update.

        Returns:
            True if the record was new.
        """
        exists = self._scalar("SELECT 1 FROM merged_records WHERE merge_key = ?", (record.merge_key,))
        data = record.model_dump()
        data["updated_at"] = _now()
        values = tuple(_to_db(data[col]) for col in _MERGED_COLUMNS)
        sql = _upsert_sql(
            "merged_records", _MERGED_COLUMNS, "merge_key", preserved=_MERGED_PRESERVED, coalesced=("health_score",)
        )
        with self._transaction() as conn:
            conn.execute(sql, values)
        return exists is None

    def delete_merged_record(self, merge_key: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM merged_records WHERE merge_key = ?", (merge_key,))
        return cursor.rowcount > 0

    def list_merged_keys(self) -> list[str]:
        return [row["merge_key"] for row in self._query("SELECT merge_key FROM merged_records ORDER BY merge_key")]

    def get_merged_record(self, merge_key: str) -> MergedRecord | None:
        rows = self._query("SELECT * FROM merged_records WHERE merge_key = ?", (merge_key,))
        return MergedRecord.model_validate(_row_dict(rows[0])) if rows else None

    def list_merged_records(self, min_confidence: int = 0, limit: int | None = None) -> list[MergedRecord]:
        sql = "SELECT * FROM merged_records WHERE confidence >= ? ORDER BY confidence DESC, merge_key"
        params: tuple[Any, ...] = (min_confidence,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (min_confidence, limit)
        return [MergedRecord.model_validate(_row_dict(row)) for row in self._query(sql, params)]

    def count_merged_records(self) -> dict[str, int]:
        rows = self._query("SELECT data_sources, COUNT(*) AS n FROM merged_records GROUP BY data_sources")
        return {row["data_sources"]: row["n"] for row in rows}

    def update_record_health(
        self,
        merge_key: str,
        *,
        score: float,
        status: str,
        trend: str,
        reliability: float | None,
        checked_at: datetime,
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE merged_records SET health_score = ?, health_status = ?, health_trend = ?, "
                "reliability = ?, last_health_check = ? WHERE merge_key = ?",
                (score, status, trend, reliability, checked_at.isoformat(), merge_key),
            )

    # ------------------------------------------------------------------
    # Health history and alerts
    # ------------------------------------------------------------------

    def add_measurement(self, measurement: HealthMeasurement) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO health_measurements (subject, subject_id, score, status, source, factors, measured_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    measurement.subject.value,
                    measurement.subject_id,
                    measurement.score,
                    measurement.status.value,
                    measurement.source.value,
                    json.dumps(measurement.factors, default=str),
                    measurement.measured_at.isoformat(),
                ),
            )
        return int(cursor.lastrowid or 0)

    def list_measurements(
        self,
        subject: MeasurementSubject,
        subject_id: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[HealthMeasurement]:
        sql = "SELECT * FROM health_measurements WHERE subject = ? AND subject_id = ?"
        params: list[Any] = [subject.value, subject_id]
        if since is not None:
            sql += " AND measured_at >= ?"
            params.append(since.isoformat())
        sql += f" ORDER BY measured_at {'DESC' if newest_first else 'ASC'}, id {'DESC' if newest_first else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [HealthMeasurement.model_validate(_row_dict(row)) for row in self._query(sql, tuple(params))]

    def has_recent_alert(self, record_key: str, severity: AlertSeverity, since: datetime) -> bool:
        found = self._scalar(
            "SELECT 1 FROM health_alerts WHERE record_key = ? AND severity = ? AND created_at >= ? LIMIT 1",
            (record_key, severity.value, since.isoformat()),
        )
        return found is not None

    def add_alert(self, alert: HealthAlert) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO health_alerts "
                "(record_key, severity, alert_type, message, health_score, acknowledged, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    alert.record_key,
                    alert.severity.value,
                    alert.alert_type.value,
                    alert.message,
                    alert.health_score,
                    int(alert.acknowledged),
                    alert.created_at.isoformat(),
                ),
            )
        return int(cursor.lastrowid or 0)

    def list_alerts(self, *, since: datetime | None = None, unacknowledged_only: bool = False) -> list[HealthAlert]:
        sql = "SELECT * FROM health_alerts WHERE 1 = 1"
        params: list[Any] = []
        if since is not None:
            sql += " AND created_at >= ?"
            params.append(since.isoformat())
        if unacknowledged_only:
            sql += " AND acknowledged = 0"
        sql += " ORDER BY created_at DESC, id DESC"
        return [HealthAlert.model_validate(_row_dict(row)) for row in self._query(sql, tuple(params))]

    def acknowledge_alert(self, alert_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("UPDATE health_alerts SET acknowledged = 1 WHERE id = ?", (alert_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Discovery runs
    # ------------------------------------------------------------------

    def save_run(self, run: DiscoveryRun) -> None:
        data = run.model_dump(mode="json")
        columns = (
            "run_id", "kind", "status", "phase", "config", "counters", "errors",
            "failed_phase", "error_message", "started_at", "finished_at",
        )  # fmt: skip
        values = tuple(_to_db(data[col]) for col in columns)
        with self._transaction() as conn:
            conn.execute(_upsert_sql("discovery_runs", columns, "run_id"), values)

    def get_run(self, run_id: str) -> DiscoveryRun | None:
        rows = self._query("SELECT * FROM discovery_runs WHERE run_id = ?", (run_id,))
        return DiscoveryRun.model_validate(_row_dict(rows[0])) if rows else None

    def list_runs(self, limit: int = 20) -> list[DiscoveryRun]:
        rows = self._query("SELECT * FROM discovery_runs ORDER BY started_at DESC LIMIT ?", (limit,))
        return [DiscoveryRun.model_validate(_row_dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Aggregates and export
    # ------------------------------------------------------------------

    def confidence_histogram(self, thresholds: DetectionThresholds | None = None) -> dict[str, int]:
        """Count stored detections per confidence band."""
        thresholds = thresholds or DetectionThresholds.normal()
        histogram = {band: 0 for band in ("high", "medium", "low", "minimal", "none")}
        for row in self._query("SELECT confidence FROM detections"):
            histogram[thresholds.band_for(row[0]).value] += 1
        return histogram

    def language_breakdown(self) -> dict[str, int]:
        rows = self._query(
            "SELECT COALESCE(a.language, r.language, 'unknown') AS lang, COUNT(*) AS n "
            "FROM repositories r LEFT JOIN analysis_profiles a ON a.full_name = r.full_name "
            "GROUP BY lang ORDER BY n DESC, lang"
        )
        return {row["lang"]: row["n"] for row in rows}

    def category_breakdown(self) -> dict[str, int]:
        rows = self._query(
            "SELECT COALESCE(NULLIF(category, ''), server_type) AS cat, COUNT(*) AS n "
            "FROM merged_records GROUP BY cat ORDER BY n DESC, cat"
        )
        return {row["cat"]: row["n"] for row in rows}

    def stats(self) -> dict[str, Any]:
        """Totals across every table."""
        return {
            "repositories": self.count_repositories(),
            "analyzed": int(self._scalar("SELECT COUNT(*) FROM analysis_profiles")),
            "detections": int(self._scalar("SELECT COUNT(*) FROM detections")),
            "candidates": int(self._scalar("SELECT COUNT(*) FROM detections WHERE is_candidate = 1")),
            "average_confidence": round(float(self._scalar("SELECT AVG(confidence) FROM detections") or 0.0), 2),
            "directory_servers": self.count_directory_servers(),
            "active_directory_servers": self.count_directory_servers(active_only=True),
            "merged_records": sum(self.count_merged_records().values()),
            "health_measurements": int(self._scalar("SELECT COUNT(*) FROM health_measurements")),
            "alerts": int(self._scalar("SELECT COUNT(*) FROM health_alerts")),
        }

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        """Dump the catalog's main tables as JSON-compatible rows."""
        export: dict[str, list[dict[str, Any]]] = {}
        export["repositories"] = [repo.model_dump(mode="json") for repo in self.list_repositories()]
        export["detections"] = [det.model_dump(mode="json") for det in self.list_detections()]
        export["directory_servers"] = [
            srv.model_dump(mode="json") for srv in self.list_directory_servers(active_only=False)
        ]
        export["merged_records"] = [rec.model_dump(mode="json") for rec in self.list_merged_records()]
        return export

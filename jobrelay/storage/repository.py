from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Iterable

from jobrelay.core.models import JobCandidate, JobStatus, ProcessedJob, RunStats, RunStatus, now_iso

# Forward-only job status transitions: target status -> statuses it may replace.
ALLOWED_TRANSITIONS: dict[JobStatus, tuple[JobStatus, ...]] = {
    JobStatus.POSTED: (JobStatus.FETCHED, JobStatus.FAILED),
    JobStatus.SKIPPED: (JobStatus.FETCHED, JobStatus.FAILED),
    JobStatus.FAILED: (JobStatus.FETCHED,),
}


class JobRepository:
    def __init__(self, db_path: str = "data/jobrelay.db") -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sources (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                hashtag TEXT NOT NULL,
                type TEXT NOT NULL,
                base_url TEXT NOT NULL,
                feed_url TEXT,
                enabled INTEGER DEFAULT 0,
                ai_prompt_config TEXT,
                created_at TEXT,
                updated_at TEXT
            );
            CREATE TABLE IF NOT EXISTS runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                trigger_type TEXT NOT NULL,
                status TEXT DEFAULT 'running',
                jobs_fetched INTEGER DEFAULT 0,
                jobs_posted INTEGER DEFAULT 0,
                jobs_skipped INTEGER DEFAULT 0,
                jobs_failed INTEGER DEFAULT 0,
                source_stats TEXT,
                error TEXT,
                environment TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_runs_started_at ON runs(started_at);
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                company TEXT,
                location TEXT,
                description_raw TEXT,
                description_clean TEXT,
                ai_summary_ar TEXT,
                image_url TEXT,
                source_url TEXT,
                posted_date TEXT,
                deadline TEXT,
                how_to_apply TEXT,
                application_links TEXT,
                category TEXT,
                status TEXT DEFAULT 'fetched',
                telegram_message_id INTEGER,
                run_id INTEGER,
                posted_at TEXT,
                scraped_at TEXT,
                word_count INTEGER,
                source TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
            CREATE INDEX IF NOT EXISTS idx_jobs_source ON jobs(source);
            CREATE INDEX IF NOT EXISTS idx_jobs_run_id ON jobs(run_id);
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT
            );
            """
        )
        self.conn.commit()

    # jobs

    def record_fetched(self, candidate: JobCandidate, run_id: int | None) -> bool:
        """Insert the audit row on first sight. Returns False when the identity already exists."""
        cur = self.conn.execute(
            """
            INSERT OR IGNORE INTO jobs(
                id, title, company, location, description_raw, image_url, source_url,
                posted_date, deadline, category, status, run_id, scraped_at, source
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                candidate.identity,
                candidate.title,
                candidate.company,
                candidate.location,
                candidate.description,
                candidate.image_url,
                candidate.link,
                candidate.posted_date,
                candidate.deadline,
                candidate.category,
                JobStatus.FETCHED.value,
                run_id,
                now_iso(),
                candidate.source,
            ),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def attach_details(
        self, identity: str, job: ProcessedJob, summary: str | None = None, category: str | None = None
    ) -> None:
        self.conn.execute(
            """
            UPDATE jobs SET
                description_clean=?, ai_summary_ar=COALESCE(?, ai_summary_ar), image_url=?,
                location=?, posted_date=?, deadline=?, how_to_apply=?, application_links=?,
                category=COALESCE(?, category), word_count=?
            WHERE id=?
            """,
            (
                job.description,
                summary,
                job.image_url,
                job.location,
                job.posted_date,
                job.deadline,
                job.how_to_apply,
                json.dumps(list(job.application_links), ensure_ascii=False),
                category or job.category,
                len(job.description.split()),
                identity,
            ),
        )
        self.conn.commit()

    def update_job_status(
        self,
        identity: str,
        status: JobStatus,
        run_id: int | None = None,
        message_id: int | None = None,
    ) -> bool:
        allowed = ALLOWED_TRANSITIONS.get(status, ())
        if not allowed:
            return False
        placeholders = ",".join("?" for _ in allowed)
        posted_at = now_iso() if status is JobStatus.POSTED else None
        cur = self.conn.execute(
            f"""
            UPDATE jobs SET status=?, run_id=COALESCE(?, run_id),
                telegram_message_id=COALESCE(?, telegram_message_id),
                posted_at=COALESCE(?, posted_at)
            WHERE id=? AND status IN ({placeholders})
            """,
            (status.value, run_id, message_id, posted_at, identity, *[s.value for s in allowed]),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def get_job(self, identity: str) -> sqlite3.Row | None:
        return self.conn.execute("SELECT * FROM jobs WHERE id=?", (identity,)).fetchone()

    def list_jobs(self, status: str | None = None, source: str | None = None, limit: int = 50) -> list[sqlite3.Row]:
        clauses: list[str] = []
        params: list[object] = []
        if status:
            clauses.append("status=?")
            params.append(status)
        if source:
            clauses.append("source=?")
            params.append(source)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        return self.conn.execute(
            f"SELECT * FROM jobs {where} ORDER BY scraped_at DESC, id LIMIT ?", params
        ).fetchall()

    def status_counts(self) -> dict[str, int]:
        rows = self.conn.execute("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status").fetchall()
        return {row["status"]: row["n"] for row in rows}

    # runs

    def create_run(self, trigger: str, environment: str | None = None) -> int:
        cur = self.conn.execute(
            "INSERT INTO runs(started_at, trigger_type, status, environment) VALUES (?,?,?,?)",
            (now_iso(), trigger, RunStatus.RUNNING.value, environment),
        )
        self.conn.commit()
        return int(cur.lastrowid)

    def complete_run(self, run_id: int, stats: RunStats) -> bool:
        """Finalize a run. Only the first call for a run has any effect."""
        counts = stats.as_counts()
        cur = self.conn.execute(
            """
            UPDATE runs SET completed_at=?, status=?, jobs_fetched=?, jobs_posted=?, jobs_skipped=?,
                jobs_failed=?, source_stats=?, error=?
            WHERE id=? AND completed_at IS NULL
            """,
            (
                now_iso(),
                stats.status.value,
                counts["jobs_fetched"],
                counts["jobs_posted"],
                counts["jobs_skipped"],
                counts["jobs_failed"],
                json.dumps({name: s.as_dict() for name, s in stats.sources.items()}, ensure_ascii=False),
                stats.error,
                run_id,
            ),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def get_run(self, run_id: int) -> sqlite3.Row | None:
        return self.conn.execute("SELECT * FROM runs WHERE id=?", (run_id,)).fetchone()

    def list_runs(self, limit: int = 20) -> list[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,)).fetchall()

    # sources

    def sync_sources(self, plugins: Iterable, enabled: Iterable[str]) -> None:
        """Register plugins not seen before. Existing rows keep their operator-set ``enabled`` flag and prompt override."""
        enabled_names = set(enabled)
        stamp = now_iso()
        for plugin in plugins:
            self.conn.execute(
                """
                INSERT OR IGNORE INTO sources(
                    id, display_name, hashtag, type, base_url, feed_url, enabled, created_at, updated_at
                ) VALUES (?,?,?,?,?,?,?,?,?)
                """,
                (
                    plugin.name,
                    plugin.display_name or plugin.name,
                    plugin.hashtag,
                    plugin.kind,
                    plugin.base_url,
                    plugin.listing_url or None,
                    int(plugin.name in enabled_names),
                    stamp,
                    stamp,
                ),
            )
        self.conn.commit()

    def list_sources(self) -> list[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM sources ORDER BY id").fetchall()

    def enabled_source_ids(self) -> set[str]:
        rows = self.conn.execute("SELECT id FROM sources WHERE enabled=1").fetchall()
        return {row["id"] for row in rows}

    def set_source_enabled(self, source_id: str, enabled: bool) -> bool:
        cur = self.conn.execute(
            "UPDATE sources SET enabled=?, updated_at=? WHERE id=?", (int(enabled), now_iso(), source_id)
        )
        self.conn.commit()
        return cur.rowcount > 0

    # prompt overrides

    def prompt_override(self, source_id: str) -> dict[str, object]:
        row = self.conn.execute("SELECT ai_prompt_config FROM sources WHERE id=?", (source_id,)).fetchone()
        return _load_override(row["ai_prompt_config"]) if row else {}

    def prompt_overrides(self) -> dict[str, dict[str, object]]:
        rows = self.conn.execute("SELECT id, ai_prompt_config FROM sources WHERE ai_prompt_config IS NOT NULL").fetchall()
        overrides = {row["id"]: _load_override(row["ai_prompt_config"]) for row in rows}
        return {source_id: override for source_id, override in overrides.items() if override}

    def set_prompt_field(self, source_id: str, field: str, value: object) -> bool:
        """Store one field of a source's prompt override. Returns False for an unknown source."""
        row = self.conn.execute("SELECT ai_prompt_config FROM sources WHERE id=?", (source_id,)).fetchone()
        if row is None:
            return False
        override = _load_override(row["ai_prompt_config"])
        override[field] = value
        self.conn.execute(
            "UPDATE sources SET ai_prompt_config=?, updated_at=? WHERE id=?",
            (json.dumps(override, ensure_ascii=False), now_iso(), source_id),
        )
        self.conn.commit()
        return True

    def clear_prompt_overrides(self, source_id: str | None = None) -> int:
        query = "UPDATE sources SET ai_prompt_config=NULL, updated_at=? WHERE ai_prompt_config IS NOT NULL"
        params: tuple = (now_iso(),)
        if source_id is not None:
            query += " AND id=?"
            params = (now_iso(), source_id)
        cur = self.conn.execute(query, params)
        self.conn.commit()
        return cur.rowcount

    # settings

    def get_setting(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT INTO settings(key, value, updated_at) VALUES (?,?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
            (key, value, now_iso()),
        )
        self.conn.commit()

    def delete_setting(self, key: str) -> bool:
        cur = self.conn.execute("DELETE FROM settings WHERE key=?", (key,))
        self.conn.commit()
        return cur.rowcount > 0

    def settings_with_prefix(self, prefix: str) -> dict[str, str]:
        rows = self.conn.execute(
            "SELECT key, value FROM settings WHERE substr(key, 1, ?) = ?", (len(prefix), prefix)
        ).fetchall()
        return {row["key"][len(prefix) :]: row["value"] for row in rows}

    def close(self) -> None:
        self.conn.close()


def _load_override(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return payload if isinstance(payload, dict) else {}

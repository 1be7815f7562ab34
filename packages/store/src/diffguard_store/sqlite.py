"""SQLiteStore — local file-based store for single runners and CI caches.

Schema:
  reviews  — one row per submitted PR review. Findings are kept as a JSON
             column so read paths never need a JOIN.

The (repo, pr_number) index makes last_reviewed_sha() a single indexed
lookup, which is the query the scope resolver runs on every push.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from diffguard_store.base import BaseStore
from diffguard_store.models import FindingRecord, ReviewRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    repo            TEXT NOT NULL,
    pr_number       INTEGER NOT NULL,
    head_sha        TEXT NOT NULL,
    base_sha        TEXT,
    reviewed_at     TEXT,
    verdict         TEXT,
    files_reviewed  INTEGER DEFAULT 0,
    findings_json   TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_reviews_repo ON reviews (repo);
CREATE INDEX IF NOT EXISTS idx_reviews_pr   ON reviews (repo, pr_number);
"""


class SQLiteStore(BaseStore):
    """Stores review history in a local SQLite database file.

    The database file path defaults to `.diffguard.db` in the current working
    directory. Configure via .diffguard.yml: `store_path: /path/to/diffguard.db`.
    """

    def __init__(self, db_path: str = ".diffguard.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, record: ReviewRecord) -> None:
        findings_json = json.dumps(
            [{"file": f.file, "hunk_header": f.hunk_header, "comment": f.comment} for f in record.findings]
        )
        self._conn.execute(
            """
            INSERT INTO reviews
              (repo, pr_number, head_sha, base_sha, reviewed_at, verdict, files_reviewed, findings_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.repo,
                record.pr_number,
                record.head_sha,
                record.base_sha,
                record.reviewed_at,
                record.verdict,
                record.files_reviewed,
                findings_json,
            ),
        )
        self._conn.commit()

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        if pr_number is not None:
            rows = self._conn.execute(
                "SELECT * FROM reviews WHERE repo=? AND pr_number=? ORDER BY reviewed_at, id",
                (repo, pr_number),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM reviews WHERE repo=? ORDER BY reviewed_at, id",
                (repo,),
            ).fetchall()

        return [self._row_to_record(r) for r in rows]

    def last_reviewed_sha(self, repo: str, pr_number: int) -> str | None:
        try:
            row = self._conn.execute(
                "SELECT head_sha FROM reviews WHERE repo=? AND pr_number=? ORDER BY reviewed_at DESC, id DESC LIMIT 1",
                (repo, pr_number),
            ).fetchone()
        except sqlite3.Error as e:
            logger.warning("SQLiteStore.last_reviewed_sha() failed: %s", e)
            return None
        return row["head_sha"] if row else None

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ReviewRecord:
        findings = [
            FindingRecord(
                file=f.get("file", ""),
                comment=f.get("comment", ""),
                hunk_header=f.get("hunk_header"),
            )
            for f in json.loads(row["findings_json"] or "[]")
        ]
        return ReviewRecord(
            repo=row["repo"],
            pr_number=row["pr_number"],
            head_sha=row["head_sha"],
            base_sha=row["base_sha"] or "",
            reviewed_at=row["reviewed_at"] or "",
            verdict=row["verdict"] or "",
            files_reviewed=row["files_reviewed"],
            findings=findings,
        )

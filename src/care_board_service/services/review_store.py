"""SQLite-backed review storage."""

from __future__ import annotations

import contextlib
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock

from care_board_service.core.state import ReviewRecord


class DuplicateReviewError(Exception):
    """Raised when a duplicate (reviewer_id, reviewee_id, task_id) is inserted."""


class ReviewStore:
    """
    Append-only review storage.

    The (reviewer_id, reviewee_id, task_id) triple is unique at the index
    level, so a racing second submission fails in the database rather than
    producing a second row.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS reviews (
                    review_id      TEXT PRIMARY KEY,
                    task_id        TEXT NOT NULL,
                    reviewer_id    TEXT NOT NULL,
                    reviewee_id    TEXT NOT NULL,
                    reviewee_role  TEXT NOT NULL,
                    rating         INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    comment        TEXT NOT NULL DEFAULT '',
                    created_at     TEXT NOT NULL
                );

                CREATE UNIQUE INDEX IF NOT EXISTS ux_reviews_triple
                    ON reviews (reviewer_id, reviewee_id, task_id);

                CREATE INDEX IF NOT EXISTS ix_reviews_task
                    ON reviews (task_id);

                CREATE INDEX IF NOT EXISTS ix_reviews_reviewee
                    ON reviews (reviewee_id);
                """
            )
            self._db.commit()

    def _row_to_record(self, row: sqlite3.Row) -> ReviewRecord:
        """Convert a database row to a ReviewRecord."""
        return ReviewRecord(
            review_id=str(row["review_id"]),
            task_id=str(row["task_id"]),
            reviewer_id=str(row["reviewer_id"]),
            reviewee_id=str(row["reviewee_id"]),
            reviewee_role=str(row["reviewee_role"]),
            rating=int(row["rating"]),
            comment=str(row["comment"]),
            created_at=str(row["created_at"]),
        )

    def insert_review(
        self,
        task_id: str,
        reviewer_id: str,
        reviewee_id: str,
        reviewee_role: str,
        rating: int,
        comment: str,
    ) -> ReviewRecord:
        """
        Insert a review record.

        Raises:
            DuplicateReviewError: If the (reviewer_id, reviewee_id, task_id)
                triple already exists.
        """
        review_id = f"rev-{uuid.uuid4()}"
        created_at = datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    """
                    INSERT INTO reviews
                        (review_id, task_id, reviewer_id, reviewee_id,
                         reviewee_role, rating, comment, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        review_id,
                        task_id,
                        reviewer_id,
                        reviewee_id,
                        reviewee_role,
                        rating,
                        comment,
                        created_at,
                    ),
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                error_msg = str(exc).lower()
                if "unique" in error_msg:
                    raise DuplicateReviewError(
                        f"Review already exists for ({reviewer_id}, {reviewee_id}, {task_id})"
                    ) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

        return ReviewRecord(
            review_id=review_id,
            task_id=task_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            reviewee_role=reviewee_role,
            rating=rating,
            comment=comment,
            created_at=created_at,
        )

    def exists(self, reviewer_id: str, reviewee_id: str, task_id: str) -> bool:
        """Check whether a review already exists for the triple."""
        with self._lock:
            row = self._db.execute(
                "SELECT 1 FROM reviews WHERE reviewer_id = ? AND reviewee_id = ? AND task_id = ?",
                (reviewer_id, reviewee_id, task_id),
            ).fetchone()
        return row is not None

    def get_by_task(self, task_id: str) -> list[ReviewRecord]:
        """Get all reviews for a task, ordered by created_at."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM reviews WHERE task_id = ? ORDER BY created_at, rowid",
                (task_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def ratings_for_reviewee(self, reviewee_id: str, task_ids: list[str]) -> list[int]:
        """Return ratings received by reviewee_id on any of the given tasks."""
        if len(task_ids) == 0:
            return []
        placeholders = ", ".join("?" for _ in task_ids)
        query = (
            "SELECT rating FROM reviews WHERE reviewee_id = ? "  # nosec B608
            "AND task_id IN (" + placeholders + ")"
        )
        with self._lock:
            rows = self._db.execute(query, [reviewee_id, *task_ids]).fetchall()
        return [int(row["rating"]) for row in rows]

    def count(self) -> int:
        """Count total reviews."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM reviews").fetchone()
        return int(row[0]) if row else 0

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()

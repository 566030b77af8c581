"""SQLite-backed task storage with an applicant roster and version-guarded updates."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any


class DuplicateTaskError(Exception):
    """Raised when attempting to insert a task with a duplicate task_id."""


class DuplicateApplicantError(Exception):
    """Raised when a helper is added twice to the same task roster."""


class StaleTaskError(Exception):
    """Raised when a conditional update finds the task at a different version."""


class TaskStore:
    """
    SQLite-backed storage for tasks and their applicant rosters.

    Every mutation of an existing task runs in one ``BEGIN IMMEDIATE``
    transaction whose final statement is
    ``UPDATE tasks ... WHERE task_id = ? AND version = ?``. If that update
    does not hit exactly one row the whole transaction is rolled back and
    StaleTaskError is raised, so a read-validate-write sequence built on a
    snapshot can never overwrite a concurrent change.
    """

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "title",
        "description",
        "category",
        "location",
        "budget",
        "reward",
        "scheduled_date",
        "scheduled_time",
        "pet_id",
        "status",
        "assigned_to",
        "posted_by",
        "version",
        "created_at",
        "updated_at",
        "assigned_at",
        "completed_at",
        "confirmed_at",
        "cancelled_at",
    )
    # Columns a lifecycle update may touch. version is bumped by the store itself.
    _MUTABLE_COLUMNS: frozenset[str] = frozenset(
        {
            "status",
            "assigned_to",
            "updated_at",
            "assigned_at",
            "completed_at",
            "confirmed_at",
            "cancelled_at",
        }
    )
    _TASK_COLUMNS_SQL = ", ".join(_TASK_COLUMNS)
    _TASK_INSERT_SQL = (
        "INSERT INTO tasks ("
        + _TASK_COLUMNS_SQL
        + ") VALUES ("
        + ", ".join("?" for _ in _TASK_COLUMNS)
        + ")"
    )
    _TASK_SELECT_BASE_SQL = "SELECT " + _TASK_COLUMNS_SQL + " FROM tasks"

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
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL,
                    location TEXT NOT NULL,
                    budget REAL,
                    reward TEXT NOT NULL,
                    scheduled_date TEXT,
                    scheduled_time TEXT,
                    pet_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'open',
                    assigned_to TEXT,
                    posted_by TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    assigned_at TEXT,
                    completed_at TEXT,
                    confirmed_at TEXT,
                    cancelled_at TEXT
                );

                CREATE INDEX IF NOT EXISTS ix_tasks_posted_by ON tasks (posted_by);
                CREATE INDEX IF NOT EXISTS ix_tasks_assigned_to ON tasks (assigned_to);

                CREATE TABLE IF NOT EXISTS task_applicants (
                    task_id TEXT NOT NULL REFERENCES tasks (task_id),
                    helper_id TEXT NOT NULL,
                    applied_at TEXT NOT NULL,
                    PRIMARY KEY (task_id, helper_id)
                );

                CREATE INDEX IF NOT EXISTS ix_task_applicants_helper
                    ON task_applicants (helper_id);
                """
            )
            self._db.commit()

    def _row_to_task(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._TASK_COLUMNS}

    def _applicants_for(self, task_id: str) -> list[str]:
        rows = self._db.execute(
            "SELECT helper_id FROM task_applicants WHERE task_id = ? ORDER BY rowid",
            (task_id,),
        ).fetchall()
        return [str(row["helper_id"]) for row in rows]

    def _guarded_update(
        self,
        task_id: str,
        updates: dict[str, Any],
        expected_version: int,
    ) -> None:
        """Run the version-checked UPDATE; must be called inside an open transaction."""
        if any(column not in self._MUTABLE_COLUMNS for column in updates):
            msg = "Attempted to update unknown or immutable task column"
            raise ValueError(msg)

        assignments = [f"{column} = ?" for column in updates]
        assignments.append("version = version + 1")
        params: list[object] = list(updates.values())
        params.extend([task_id, expected_version])

        query = (
            "UPDATE tasks SET "  # nosec B608
            + ", ".join(assignments)
            + " WHERE task_id = ? AND version = ?"
        )
        cursor = self._db.execute(query, params)
        if cursor.rowcount != 1:
            raise StaleTaskError(
                f"Task {task_id} changed since version {expected_version} was read"
            )

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data[column] for column in self._TASK_COLUMNS)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(self._TASK_INSERT_SQL, values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                error_msg = str(exc).lower()
                if "unique" in error_msg:
                    raise DuplicateTaskError(
                        f"A task with task_id={task_data['task_id']} already exists"
                    ) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID, including its applicants in application order."""
        with self._lock:
            row = self._db.execute(
                self._TASK_SELECT_BASE_SQL + " WHERE task_id = ?",
                (task_id,),
            ).fetchone()
            if row is None:
                return None
            task = self._row_to_task(row)
            task["applicants"] = self._applicants_for(task_id)
        return task

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_version: int,
    ) -> None:
        """
        Apply column updates if the task is still at expected_version.

        Raises:
            StaleTaskError: If the task was modified after expected_version was read.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._guarded_update(task_id, updates, expected_version)
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def add_applicant(
        self,
        task_id: str,
        helper_id: str,
        applied_at: str,
        updates: dict[str, Any],
        *,
        expected_version: int,
    ) -> None:
        """
        Append a helper to the roster and apply task updates atomically.

        Raises:
            DuplicateApplicantError: If the helper is already on the roster.
            StaleTaskError: If the task was modified after expected_version was read.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    "INSERT INTO task_applicants (task_id, helper_id, applied_at) "
                    "VALUES (?, ?, ?)",
                    (task_id, helper_id, applied_at),
                )
                self._guarded_update(task_id, updates, expected_version)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                error_msg = str(exc).lower()
                if "unique" in error_msg or "primary key" in error_msg:
                    raise DuplicateApplicantError(
                        f"{helper_id} has already applied to task {task_id}"
                    ) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def remove_applicant(
        self,
        task_id: str,
        helper_id: str,
        updates: dict[str, Any],
        *,
        expected_version: int,
    ) -> None:
        """
        Remove a helper from the roster and apply task updates atomically.

        Raises:
            StaleTaskError: If the task was modified after expected_version was read.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(
                    "DELETE FROM task_applicants WHERE task_id = ? AND helper_id = ?",
                    (task_id, helper_id),
                )
                self._guarded_update(task_id, updates, expected_version)
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def list_tasks(
        self,
        status: str | None,
        posted_by: str | None,
        assigned_to: str | None,
        applicant_id: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters, newest first."""
        query = self._TASK_SELECT_BASE_SQL
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if posted_by is not None:
            clauses.append("posted_by = ?")
            params.append(posted_by)
        if assigned_to is not None:
            clauses.append("assigned_to = ?")
            params.append(assigned_to)
        if applicant_id is not None:
            clauses.append(
                "task_id IN (SELECT task_id FROM task_applicants WHERE helper_id = ?)"
            )
            params.append(applicant_id)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC, rowid DESC"

        if limit is not None or offset is not None:
            query += " LIMIT ?"
            params.append(limit if limit is not None else -1)
        if offset is not None:
            query += " OFFSET ?"
            params.append(offset)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
            tasks = [self._row_to_task(row) for row in rows]
            for task in tasks:
                task["applicants"] = self._applicants_for(task["task_id"])
        return tasks

    def list_task_ids(
        self,
        *,
        posted_by: str | None = None,
        assigned_to: str | None = None,
    ) -> list[str]:
        """List ids of tasks posted by, or assigned to, a user."""
        clauses: list[str] = []
        params: list[object] = []
        if posted_by is not None:
            clauses.append("posted_by = ?")
            params.append(posted_by)
        if assigned_to is not None:
            clauses.append("assigned_to = ?")
            params.append(assigned_to)
        if len(clauses) == 0:
            msg = "list_task_ids requires posted_by or assigned_to"
            raise ValueError(msg)

        query = "SELECT task_id FROM tasks WHERE " + " AND ".join(clauses)  # nosec B608
        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [str(row["task_id"]) for row in rows]

    def count_tasks(self) -> int:
        """Count total tasks."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(row[0]) if row is not None else 0

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()

"""SQLite-backed user and pet directory shared with the profile services."""

from __future__ import annotations

import contextlib
import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import Any

# Role name -> (rating column, review count column)
_RATING_COLUMNS: dict[str, tuple[str, str]] = {
    "owner": ("owner_rating", "owner_review_count"),
    "helper": ("helper_rating", "helper_review_count"),
}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


class UserDirectory:
    """
    User and pet records this service reads, plus the rating fields it owns.

    Pets are written by the pet profile surface that shares the database;
    register_pet exists for that writer. Rating fields are written only
    through set_rating.
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
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id              TEXT PRIMARY KEY,
                    roles                TEXT NOT NULL DEFAULT '[]',
                    owner_rating         REAL NOT NULL DEFAULT 0,
                    helper_rating        REAL NOT NULL DEFAULT 0,
                    owner_review_count   INTEGER NOT NULL DEFAULT 0,
                    helper_review_count  INTEGER NOT NULL DEFAULT 0,
                    updated_at           TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS pets (
                    pet_id      TEXT PRIMARY KEY,
                    owner_id    TEXT NOT NULL,
                    name        TEXT NOT NULL,
                    created_at  TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS ix_pets_owner ON pets (owner_id);
                """
            )
            self._db.commit()

    def _write(self, query: str, params: tuple[object, ...]) -> None:
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(query, params)
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def record_user(self, user_id: str, roles: list[str]) -> None:
        """Create the user row if missing and merge roles into its role set."""
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                row = self._db.execute(
                    "SELECT roles FROM users WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
                known: set[str] = set(json.loads(row["roles"])) if row is not None else set()
                merged = json.dumps(sorted(known | set(roles)))
                self._db.execute(
                    """
                    INSERT INTO users (user_id, roles, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT (user_id) DO UPDATE SET
                        roles = excluded.roles,
                        updated_at = excluded.updated_at
                    """,
                    (user_id, merged, _now_iso()),
                )
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a user's role set and rating fields."""
        with self._lock:
            row = self._db.execute(
                "SELECT user_id, roles, owner_rating, helper_rating, owner_review_count, "
                "helper_review_count, updated_at FROM users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return {
            "user_id": str(row["user_id"]),
            "roles": json.loads(row["roles"]),
            "owner_rating": float(row["owner_rating"]),
            "helper_rating": float(row["helper_rating"]),
            "owner_review_count": int(row["owner_review_count"]),
            "helper_review_count": int(row["helper_review_count"]),
            "updated_at": str(row["updated_at"]),
        }

    def list_user_ids(self) -> list[str]:
        """List every known user id."""
        with self._lock:
            rows = self._db.execute("SELECT user_id FROM users ORDER BY user_id").fetchall()
        return [str(row["user_id"]) for row in rows]

    def set_rating(self, user_id: str, role: str, rating: float, review_count: int) -> None:
        """Overwrite the rating field and review count for one role."""
        if role not in _RATING_COLUMNS:
            msg = f"Unknown rating role: {role}"
            raise ValueError(msg)
        rating_column, count_column = _RATING_COLUMNS[role]
        query = (
            f"INSERT INTO users (user_id, {rating_column}, {count_column}, updated_at) "  # nosec B608
            "VALUES (?, ?, ?, ?) "
            f"ON CONFLICT (user_id) DO UPDATE SET {rating_column} = excluded.{rating_column}, "
            f"{count_column} = excluded.{count_column}, updated_at = excluded.updated_at"
        )
        self._write(query, (user_id, rating, review_count, _now_iso()))

    def register_pet(self, pet_id: str, owner_id: str, name: str) -> None:
        """Insert or replace a pet record."""
        self._write(
            """
            INSERT INTO pets (pet_id, owner_id, name, created_at) VALUES (?, ?, ?, ?)
            ON CONFLICT (pet_id) DO UPDATE SET
                owner_id = excluded.owner_id,
                name = excluded.name
            """,
            (pet_id, owner_id, name, _now_iso()),
        )

    def get_pet(self, pet_id: str) -> dict[str, Any] | None:
        """Fetch a pet by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT pet_id, owner_id, name FROM pets WHERE pet_id = ?",
                (pet_id,),
            ).fetchone()
        if row is None:
            return None
        return {
            "pet_id": str(row["pet_id"]),
            "owner_id": str(row["owner_id"]),
            "name": str(row["name"]),
        }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()

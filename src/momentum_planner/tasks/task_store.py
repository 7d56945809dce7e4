# src/momentum_planner/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from ..errors import NotFoundError, PersistenceError, ValidationError
from .task_models import Task, TaskStatus, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

_COLUMNS = "id, title, description, start_time, end_time, status, reminded"


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Times are stored twice: start_time/end_time keep the RFC 3339 text with
    the caller's offset, start_ts/end_ts hold epoch seconds so that overlap
    and due-reminder predicates run inside SQLite.

    Thread-safety:
    - each method opens its own SQLite connection
    - SQLite (WAL + busy timeout) serializes concurrent writers
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except PersistenceError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connect(self, action: str) -> Iterator[sqlite3.Connection]:
        """Open a connection and translate sqlite errors into PersistenceError."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to open task database: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.exception("TaskStore %s failed", action)
            raise PersistenceError(f"failed to {action}: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect("create schema") as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    reminded INTEGER NOT NULL DEFAULT 0,
                    start_ts REAL NOT NULL DEFAULT 0,
                    end_ts REAL NOT NULL DEFAULT 0
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> bool:
                if name in cols:
                    return False
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)
                return True

            add_col("description", "TEXT NOT NULL DEFAULT ''")
            add_col("status", "TEXT NOT NULL DEFAULT 'pending'")
            add_col("reminded", "INTEGER NOT NULL DEFAULT 0")
            added_start = add_col("start_ts", "REAL NOT NULL DEFAULT 0")
            added_end = add_col("end_ts", "REAL NOT NULL DEFAULT 0")
            if added_start or added_end:
                self._backfill_epochs(cur)

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_window ON tasks(start_ts, end_ts)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(reminded, status, start_ts)")

            conn.commit()

    @staticmethod
    def _backfill_epochs(cur: sqlite3.Cursor) -> None:
        """Fill start_ts/end_ts for rows written before those columns existed."""
        rows = cur.execute("SELECT id, start_time, end_time FROM tasks").fetchall()
        filled = 0
        for row in rows:
            try:
                start = parse_timestamp(row["start_time"], field="start_time")
                end = parse_timestamp(row["end_time"], field="end_time")
            except ValidationError:
                logger.warning("TaskStore migration: task id=%s has unparsable times, left as is", row["id"])
                continue
            cur.execute(
                "UPDATE tasks SET start_ts = ?, end_ts = ? WHERE id = ?",
                (start.timestamp(), end.timestamp(), int(row["id"])),
            )
            filled += 1
        if filled:
            logger.info("TaskStore migration: backfilled start_ts/end_ts for %d task(s)", filled)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            start_time=parse_timestamp(row["start_time"], field="start_time"),
            end_time=parse_timestamp(row["end_time"], field="end_time"),
            status=TaskStatus.from_db(row["status"]),
            reminded=bool(row["reminded"]),
        )

    @staticmethod
    def _validate(title: str, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        """Check a record and return its window truncated to whole seconds (the stored precision)."""
        if not title or not title.strip():
            raise ValidationError("title is required")
        if start.tzinfo is None or end.tzinfo is None:
            raise ValidationError("start_time and end_time must carry a timezone offset")
        start = start.replace(microsecond=0)
        end = end.replace(microsecond=0)
        if end <= start:
            raise ValidationError(
                f"end_time ({format_timestamp(end)}) must be after start_time ({format_timestamp(start)})"
            )
        return start, end

    # ---- public API ----

    def count_tasks(self) -> int:
        with self._connect("count tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def create(self, title: str, description: str, start: datetime, end: datetime) -> Task:
        start, end = self._validate(title, start, end)
        description = description or ""

        with self._connect("insert task") as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks(title, description, start_time, end_time,
                                  status, reminded, start_ts, end_ts)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    title,
                    description,
                    format_timestamp(start),
                    format_timestamp(end),
                    TaskStatus.PENDING.value,
                    start.timestamp(),
                    end.timestamp(),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise PersistenceError("SQLite did not return lastrowid for tasks insert")

        task = Task(
            id=int(rowid),
            title=title,
            description=description,
            start_time=start,
            end_time=end,
        )
        logger.debug("Task added id=%s title=%r start=%s", task.id, task.title, format_timestamp(start))
        return task

    def list_tasks(self) -> list[Task]:
        with self._connect("list tasks") as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM tasks ORDER BY start_ts ASC, id ASC"
            ).fetchall()
            return [self._row_to_task(r) for r in rows]

    def get(self, task_id: int) -> Task:
        with self._connect("get task") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM tasks WHERE id = ?", (int(task_id),)
            ).fetchone()
        if row is None:
            raise NotFoundError(int(task_id))
        return self._row_to_task(row)

    def update(self, task: Task) -> None:
        """Full-record replace. Any edit invalidates a prior reminder."""
        start, end = self._validate(task.title, task.start_time, task.end_time)

        with self._connect("update task") as conn:
            cur = conn.execute(
                """
                UPDATE tasks
                SET title = ?, description = ?, start_time = ?, end_time = ?,
                    status = ?, reminded = 0, start_ts = ?, end_ts = ?
                WHERE id = ?
                """,
                (
                    task.title,
                    task.description or "",
                    format_timestamp(start),
                    format_timestamp(end),
                    TaskStatus(task.status).value,
                    start.timestamp(),
                    end.timestamp(),
                    int(task.id),
                ),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise NotFoundError(int(task.id))
        logger.debug("Task updated id=%s", task.id)

    def delete(self, task_id: int) -> None:
        with self._connect("delete task") as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            if cur.rowcount == 0:
                raise NotFoundError(int(task_id))
        logger.debug("Task deleted id=%s", task_id)

    def find_overlap(self, start: datetime, end: datetime, exclude_id: int = 0) -> Task | None:
        """
        Return one task whose [start_time, end_time) intersects [start, end).

        excludeId lets an update skip its own row. When several tasks overlap,
        the first one in storage order wins.
        """
        with self._connect("check overlap") as conn:
            row = conn.execute(
                f"""
                SELECT {_COLUMNS}
                FROM tasks
                WHERE id != ?
                  AND start_ts < ?
                  AND end_ts > ?
                ORDER BY id ASC
                LIMIT 1
                """,
                (int(exclude_id), end.timestamp(), start.timestamp()),
            ).fetchone()
        return self._row_to_task(row) if row else None

    def due_reminders(self, within_seconds: float = 0.0, *, now_ts: float | None = None) -> list[Task]:
        """
        Tasks starting at or before now + within_seconds that have not been
        reminded and are not completed.

        There is no lower bound: tasks missed while nothing was polling are
        surfaced on the next call.
        """
        if now_ts is None:
            now_ts = time.time()
        target = float(now_ts) + max(0.0, float(within_seconds))

        with self._connect("query due reminders") as conn:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS}
                FROM tasks
                WHERE start_ts <= ?
                  AND reminded = 0
                  AND status != ?
                ORDER BY start_ts ASC, id ASC
                """,
                (target, TaskStatus.COMPLETED.value),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]

    def mark_reminded(self, task_id: int) -> None:
        with self._connect("mark task reminded") as conn:
            conn.execute("UPDATE tasks SET reminded = 1 WHERE id = ?", (int(task_id),))
            conn.commit()

# src/taskmaster/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from ..errors import PersistenceError
from .task_models import Task, TaskNote, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

# Stays well under SQLITE_MAX_VARIABLE_NUMBER.
ID_CHUNK_SIZE = 500


def _id_chunks(task_ids: Iterable[str], size: int = ID_CHUNK_SIZE) -> list[list[str]]:
    ids = sorted({str(t) for t in task_ids})
    return [ids[i : i + size] for i in range(0, len(ids), size)]


class TaskStore:
    """
    SQLite task store.

    Tables:
    - tasks: one row per task; list fields are JSON text columns
    - task_dependencies: (task_id, depends_on_id) edges, indexed both ways

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection

    Every sqlite3.Error is re-raised as PersistenceError.
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
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Short-lived connection; uncommitted work is rolled back on close."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open task store {self._db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    priority TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    scheduled_at REAL,
                    started_at REAL,
                    completed_at REAL,
                    estimated_duration_minutes INTEGER,
                    suggested_subtasks TEXT NOT NULL DEFAULT '[]',
                    execution_steps TEXT NOT NULL DEFAULT '[]',
                    notes TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_dependencies (
                    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                    depends_on_id TEXT NOT NULL,
                    PRIMARY KEY (task_id, depends_on_id)
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("priority", "TEXT")
            add_col("started_at", "REAL")
            add_col("completed_at", "REAL")
            add_col("estimated_duration_minutes", "INTEGER")
            add_col("suggested_subtasks", "TEXT NOT NULL DEFAULT '[]'")
            add_col("execution_steps", "TEXT NOT NULL DEFAULT '[]'")
            add_col("notes", "TEXT NOT NULL DEFAULT '[]'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status_sched ON tasks(status, scheduled_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status_done ON tasks(status, completed_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_deps_target ON task_dependencies(depends_on_id)")

            conn.commit()

    @staticmethod
    def _list_to_str(items: Iterable[str]) -> str:
        return json.dumps([str(x) for x in items], ensure_ascii=False)

    @staticmethod
    def _str_to_list(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except ValueError:
            return []
        return [str(x) for x in val] if isinstance(val, list) else []

    @staticmethod
    def _notes_to_str(notes: Iterable[TaskNote]) -> str:
        return json.dumps([{"at": n.at, "text": n.text} for n in notes], ensure_ascii=False)

    @staticmethod
    def _str_to_notes(s: str | None) -> tuple[TaskNote, ...]:
        if not s:
            return ()
        try:
            val = json.loads(s)
        except ValueError:
            return ()
        if not isinstance(val, list):
            return ()
        out: list[TaskNote] = []
        for item in val:
            if isinstance(item, dict) and "text" in item:
                out.append(TaskNote(at=float(item.get("at") or 0.0), text=str(item["text"])))
        return tuple(out)

    def _row_to_task(self, row: sqlite3.Row, deps: Iterable[str] = ()) -> Task:
        dur = row["estimated_duration_minutes"]
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            status=TaskStatus.from_db(row["status"]),
            created_at=float(row["created_at"] or 0.0),
            priority=TaskPriority.from_db(row["priority"]),
            scheduled_at=float(row["scheduled_at"]) if row["scheduled_at"] is not None else None,
            started_at=float(row["started_at"]) if row["started_at"] is not None else None,
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
            estimated_duration_minutes=int(dur) if dur is not None else None,
            suggested_subtasks=self._str_to_list(row["suggested_subtasks"]),
            execution_steps=self._str_to_list(row["execution_steps"]),
            depends_on=frozenset(deps),
            notes=self._str_to_notes(row["notes"]),
        )

    @staticmethod
    def _load_dependencies(conn: sqlite3.Connection, task_ids: list[str]) -> dict[str, set[str]]:
        out: dict[str, set[str]] = {tid: set() for tid in task_ids}
        if not task_ids:
            return out
        placeholders = ",".join("?" for _ in task_ids)
        cur = conn.execute(
            f"SELECT task_id, depends_on_id FROM task_dependencies WHERE task_id IN ({placeholders})",
            task_ids,
        )
        for row in cur.fetchall():
            out[str(row["task_id"])].add(str(row["depends_on_id"]))
        return out

    def _select(self, where: str = "", params: Iterable[Any] = (), order: str = "created_at ASC") -> list[Task]:
        sql = "SELECT * FROM tasks"
        if where:
            sql += f" WHERE {where}"
        sql += f" ORDER BY {order}"
        with self._connect() as conn:
            rows = conn.execute(sql, list(params)).fetchall()
            deps = self._load_dependencies(conn, [str(r["id"]) for r in rows])
            return [self._row_to_task(r, deps[str(r["id"])]) for r in rows]

    @staticmethod
    def _status_placeholders(statuses: Iterable[TaskStatus]) -> tuple[str, list[str]]:
        vals = [s.value for s in statuses]
        return ",".join("?" for _ in vals), vals

    # ---- public API ----

    def count_tasks(self) -> int:
        with self._connect() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def create_task(self, task: Task) -> Task:
        """Insert the task row and its dependency edges in one transaction."""
        if not task.id or not task.id.strip():
            raise ValueError("id is required")
        if not task.title or not task.title.strip():
            raise ValueError("title is required")
        if not task.description or not task.description.strip():
            raise ValueError("description is required")

        now = time.time()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks(
                    id, title, description, status, priority,
                    created_at, updated_at, scheduled_at, started_at, completed_at,
                    estimated_duration_minutes, suggested_subtasks, execution_steps, notes
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.title,
                    task.description,
                    task.status.value,
                    task.priority.value if task.priority is not None else None,
                    float(task.created_at),
                    now,
                    task.scheduled_at,
                    task.started_at,
                    task.completed_at,
                    task.estimated_duration_minutes,
                    self._list_to_str(task.suggested_subtasks),
                    self._list_to_str(task.execution_steps),
                    self._notes_to_str(task.notes),
                ),
            )
            conn.executemany(
                "INSERT INTO task_dependencies(task_id, depends_on_id) VALUES (?, ?)",
                [(task.id, dep) for dep in sorted(task.depends_on)],
            )
            conn.commit()
        logger.debug(
            "Task created id=%s status=%s deps=%s", task.id, task.status.value, sorted(task.depends_on)
        )
        return task

    def get_task(self, task_id: str) -> Task | None:
        tasks = self._select("id = ?", (task_id,))
        return tasks[0] if tasks else None

    def exists(self, task_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return row is not None

    def find_all_by_id(self, task_ids: Iterable[str]) -> list[Task]:
        out: list[Task] = []
        for chunk in _id_chunks(task_ids):
            placeholders = ",".join("?" for _ in chunk)
            out.extend(self._select(f"id IN ({placeholders})", chunk))
        out.sort(key=lambda t: t.created_at)
        return out

    def list_tasks(self) -> list[Task]:
        return self._select()

    def find_by_status(self, status: TaskStatus) -> list[Task]:
        return self._select("status = ?", (status.value,))

    def find_by_status_in(self, statuses: Iterable[TaskStatus]) -> list[Task]:
        placeholders, vals = self._status_placeholders(statuses)
        if not vals:
            return []
        return self._select(f"status IN ({placeholders})", vals)

    def find_unscheduled(self, statuses: Iterable[TaskStatus]) -> list[Task]:
        """Tasks in one of `statuses` with no scheduled_at yet."""
        placeholders, vals = self._status_placeholders(statuses)
        if not vals:
            return []
        return self._select(f"status IN ({placeholders}) AND scheduled_at IS NULL", vals)

    def find_due(self, now_ts: float, status: TaskStatus = TaskStatus.SCHEDULED) -> list[Task]:
        """Tasks in `status` whose scheduled_at <= now_ts, earliest first."""
        return self._select(
            "status = ? AND scheduled_at IS NOT NULL AND scheduled_at <= ?",
            (status.value, float(now_ts)),
            order="scheduled_at ASC, created_at ASC",
        )

    def find_completed_before(self, statuses: Iterable[TaskStatus], cutoff_ts: float) -> list[Task]:
        placeholders, vals = self._status_placeholders(statuses)
        if not vals:
            return []
        return self._select(
            f"status IN ({placeholders}) AND completed_at IS NOT NULL AND completed_at < ?",
            [*vals, float(cutoff_ts)],
            order="completed_at ASC",
        )

    def find_dependents(self, task_id: str) -> list[str]:
        """Ids of tasks whose dependency set contains task_id."""
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT task_id FROM task_dependencies WHERE depends_on_id = ? ORDER BY task_id",
                (task_id,),
            )
            return [str(r["task_id"]) for r in cur.fetchall()]

    def update_task(
        self,
        task: Task,
        *,
        expected_status: TaskStatus | None = None,
        expect_unscheduled: bool = False,
    ) -> bool:
        """
        Write every mutable column of `task`.

        With expected_status the write is conditional:
          UPDATE ... WHERE id = ? AND status = expected_status
        so a concurrent writer that moved the task first wins and this call
        returns False. expect_unscheduled adds "AND scheduled_at IS NULL".
        Title, description and dependency edges are not touched.
        """
        sql = """
            UPDATE tasks
            SET status = ?,
                priority = ?,
                scheduled_at = ?,
                started_at = ?,
                completed_at = ?,
                estimated_duration_minutes = ?,
                suggested_subtasks = ?,
                execution_steps = ?,
                notes = ?,
                updated_at = ?
            WHERE id = ?
        """
        params: list[Any] = [
            task.status.value,
            task.priority.value if task.priority is not None else None,
            task.scheduled_at,
            task.started_at,
            task.completed_at,
            task.estimated_duration_minutes,
            self._list_to_str(task.suggested_subtasks),
            self._list_to_str(task.execution_steps),
            self._notes_to_str(task.notes),
            time.time(),
            task.id,
        ]
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(expected_status.value)
        if expect_unscheduled:
            sql += " AND scheduled_at IS NULL"

        with self._connect() as conn:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount == 1

    def delete_task(self, task_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            return cur.rowcount == 1

    def delete_all(self, task_ids: Iterable[str]) -> int:
        """Delete a batch of tasks in one transaction. Returns rows deleted."""
        chunks = _id_chunks(task_ids)
        if not chunks:
            return 0
        deleted = 0
        with self._connect() as conn:
            for chunk in chunks:
                placeholders = ",".join("?" for _ in chunk)
                cur = conn.execute(f"DELETE FROM tasks WHERE id IN ({placeholders})", chunk)
                deleted += int(cur.rowcount)
            conn.commit()
        return deleted

"""SQLite database initialization and CRUD operations."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config.exceptions import DatabaseError
from models.character import Character
from models.enums import MessageRole
from models.message import ChatMessage, ChatThread
from models.outline import OutlineTree
from models.project import NovelProject, ProjectMetadata, ProjectProgress, ProjectSnapshot
from models.world import WorldSetting

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    metadata TEXT NOT NULL DEFAULT '{}',
    current_progress TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_documents (
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    kind TEXT NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (project_id, kind)
);

CREATE TABLE IF NOT EXISTS chapter_contents (
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    chapter_id TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL,
    PRIMARY KEY (project_id, chapter_id)
);

CREATE TABLE IF NOT EXISTS chat_threads (
    thread_id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    thread_id TEXT NOT NULL REFERENCES chat_threads(thread_id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    step TEXT,
    timestamp REAL NOT NULL
);
"""

_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_thread ON chat_messages(thread_id, seq)",
    "CREATE INDEX IF NOT EXISTS idx_chat_threads_project ON chat_threads(project_id)",
]

_WORLD = "world"
_CHARACTERS = "characters"
_OUTLINE = "outline"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """SQLite database manager for projects, documents and chat transcripts."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot open database: {e}", {"path": str(self.db_path)}) from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes)."""
        with self._get_conn() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    # ---- Project CRUD ----

    def create_project(
        self,
        metadata: ProjectMetadata | None = None,
        project_id: str | None = None,
    ) -> NovelProject:
        project = NovelProject(
            id=project_id or f"proj_{uuid.uuid4().hex[:12]}",
            metadata=metadata or ProjectMetadata(),
        )
        with self._get_conn() as conn:
            try:
                conn.execute(
                    "INSERT INTO projects (id, metadata, current_progress, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (project.id, project.metadata.model_dump_json(),
                     project.current_progress.model_dump_json(),
                     project.created_at, project.updated_at),
                )
            except sqlite3.IntegrityError as e:
                raise DatabaseError(f"Project already exists: {project.id}") from e
        logger.info("Project %s created", project.id)
        return project

    def get_project(self, project_id: str) -> Optional[NovelProject]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            if not row:
                return None
            return self._row_to_project(row)

    def update_project(self, project: NovelProject) -> NovelProject:
        project = project.model_copy(update={"updated_at": _now()})
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE projects SET metadata=?, current_progress=?, updated_at=? WHERE id=?",
                (project.metadata.model_dump_json(),
                 project.current_progress.model_dump_json(),
                 project.updated_at, project.id),
            )
            if cursor.rowcount == 0:
                raise DatabaseError(f"Project not found: {project.id}")
        return project

    def update_progress(self, project_id: str, progress: ProjectProgress) -> None:
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE projects SET current_progress=?, updated_at=? WHERE id=?",
                (progress.model_dump_json(), _now(), project_id),
            )

    def list_projects(self) -> list[NovelProject]:
        with self._get_conn() as conn:
            rows = conn.execute("SELECT * FROM projects ORDER BY created_at").fetchall()
            return [self._row_to_project(r) for r in rows]

    def delete_project(self, project_id: str):
        """Delete a project with its documents and chapter contents."""
        with self._get_conn() as conn:
            conn.execute("DELETE FROM project_documents WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM chapter_contents WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        logger.info("Project %s and all associated data deleted", project_id)

    def _row_to_project(self, row) -> NovelProject:
        return NovelProject(
            id=row["id"],
            metadata=ProjectMetadata.model_validate_json(row["metadata"]),
            current_progress=ProjectProgress.model_validate_json(row["current_progress"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ---- Project documents ----

    def _save_document(self, project_id: str, kind: str, data: str):
        with self._get_conn() as conn:
            try:
                conn.execute(
                    "INSERT INTO project_documents (project_id, kind, data, updated_at) "
                    "VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(project_id, kind) DO UPDATE SET "
                    "data=excluded.data, updated_at=excluded.updated_at",
                    (project_id, kind, data, _now()),
                )
            except sqlite3.IntegrityError as e:
                raise DatabaseError(f"Project not found: {project_id}", {"kind": kind}) from e

    def _load_document(self, project_id: str, kind: str) -> Optional[str]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT data FROM project_documents WHERE project_id = ? AND kind = ?",
                (project_id, kind),
            ).fetchone()
            return row["data"] if row else None

    def save_world_setting(self, project_id: str, world: WorldSetting):
        self._save_document(project_id, _WORLD, world.model_dump_json())

    def get_world_setting(self, project_id: str) -> Optional[WorldSetting]:
        data = self._load_document(project_id, _WORLD)
        return WorldSetting.model_validate_json(data) if data else None

    def save_characters(self, project_id: str, characters: list[Character]):
        payload = json.dumps([c.model_dump(mode="json") for c in characters], ensure_ascii=False)
        self._save_document(project_id, _CHARACTERS, payload)

    def get_characters(self, project_id: str) -> list[Character]:
        data = self._load_document(project_id, _CHARACTERS)
        if not data:
            return []
        return [Character.model_validate(c) for c in json.loads(data)]

    def save_outline(self, project_id: str, outline: OutlineTree):
        self._save_document(project_id, _OUTLINE, outline.model_dump_json())

    def get_outline(self, project_id: str) -> Optional[OutlineTree]:
        data = self._load_document(project_id, _OUTLINE)
        return OutlineTree.model_validate_json(data) if data else None

    # ---- Chapter contents ----

    def save_chapter_content(self, project_id: str, chapter_id: str, content: str):
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO chapter_contents (project_id, chapter_id, content, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(project_id, chapter_id) DO UPDATE SET "
                "content=excluded.content, updated_at=excluded.updated_at",
                (project_id, chapter_id, content, _now()),
            )

    def get_chapter_content(self, project_id: str, chapter_id: str) -> Optional[str]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT content FROM chapter_contents WHERE project_id = ? AND chapter_id = ?",
                (project_id, chapter_id),
            ).fetchone()
            return row["content"] if row else None

    def get_project_snapshot(self, project_id: str) -> Optional[ProjectSnapshot]:
        """Load project plus world, characters and outline in one call."""
        project = self.get_project(project_id)
        if project is None:
            return None
        return ProjectSnapshot(
            project=project,
            world=self.get_world_setting(project_id),
            characters=self.get_characters(project_id),
            outline=self.get_outline(project_id),
        )

    # ---- Chat threads ----

    def create_thread(self, thread_id: str, project_id: str = "", title: str = "") -> ChatThread:
        now = _now()
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO chat_threads (thread_id, project_id, title, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?) ON CONFLICT(thread_id) DO NOTHING",
                (thread_id, project_id, title, now, now),
            )
        return self.get_thread(thread_id)

    def get_thread(self, thread_id: str) -> Optional[ChatThread]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT t.*, (SELECT COUNT(*) FROM chat_messages m WHERE m.thread_id = t.thread_id) "
                "AS message_count FROM chat_threads t WHERE t.thread_id = ?",
                (thread_id,),
            ).fetchone()
            return self._row_to_thread(row) if row else None

    def list_threads(self, project_id: str | None = None) -> list[ChatThread]:
        sql = (
            "SELECT t.*, (SELECT COUNT(*) FROM chat_messages m WHERE m.thread_id = t.thread_id) "
            "AS message_count FROM chat_threads t"
        )
        with self._get_conn() as conn:
            if project_id is not None:
                rows = conn.execute(
                    sql + " WHERE t.project_id = ? ORDER BY t.updated_at DESC", (project_id,)
                ).fetchall()
            else:
                rows = conn.execute(sql + " ORDER BY t.updated_at DESC").fetchall()
            return [self._row_to_thread(r) for r in rows]

    def _row_to_thread(self, row) -> ChatThread:
        return ChatThread(
            thread_id=row["thread_id"], project_id=row["project_id"],
            title=row["title"], created_at=row["created_at"],
            updated_at=row["updated_at"], message_count=row["message_count"],
        )

    # ---- Chat messages ----

    def append_message(
        self,
        thread_id: str,
        role: MessageRole,
        content: str,
        step: str | None = None,
    ) -> ChatMessage:
        """Append a message to a thread's transcript, creating the thread if needed."""
        message = ChatMessage(role=role, content=content, step=step)
        now = _now()
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO chat_threads (thread_id, created_at, updated_at) "
                "VALUES (?, ?, ?) ON CONFLICT(thread_id) DO UPDATE SET updated_at=excluded.updated_at",
                (thread_id, now, now),
            )
            conn.execute(
                "INSERT INTO chat_messages (id, thread_id, role, content, step, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (message.id, thread_id, message.role.value, message.content,
                 message.step, message.timestamp),
            )
        return message

    def get_messages(self, thread_id: str, limit: int = 50, offset: int = 0) -> list[ChatMessage]:
        """Page through a transcript, newest message first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM chat_messages WHERE thread_id = ? "
                "ORDER BY seq DESC LIMIT ? OFFSET ?",
                (thread_id, limit, offset),
            ).fetchall()
            return [self._row_to_message(r) for r in rows]

    def get_latest_messages(self, thread_id: str, limit: int) -> list[ChatMessage]:
        """Return the last ``limit`` messages in chronological order."""
        return list(reversed(self.get_messages(thread_id, limit=limit)))

    def get_message_count(self, thread_id: str) -> int:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM chat_messages WHERE thread_id = ?", (thread_id,)
            ).fetchone()
            return row["n"]

    def _row_to_message(self, row) -> ChatMessage:
        return ChatMessage(
            id=row["id"], role=MessageRole(row["role"]), content=row["content"],
            step=row["step"], timestamp=row["timestamp"],
        )

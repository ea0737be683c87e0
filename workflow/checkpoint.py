"""Checkpoint persistence: one record per thread, rewritten after every step."""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from langgraph.checkpoint.serde.jsonplus import JsonPlusSerializer
from pydantic import BaseModel, Field

from config.exceptions import CheckpointError
from models.enums import CheckpointStatus
from workflow.state import NovelState

logger = logging.getLogger(__name__)

_serde = JsonPlusSerializer()


class Checkpoint(BaseModel):
    """Everything needed to continue a thread: position plus full state.

    ``pending_step`` is set only while suspended and names the post-resume
    step. ``next_step`` is the step the engine would run next (None once
    the thread reached its end or is suspended).
    """

    thread_id: str
    state: NovelState
    status: CheckpointStatus = CheckpointStatus.RUNNING
    next_step: Optional[str] = None
    pending_step: Optional[str] = None
    suspended_at: Optional[str] = None
    payload: str = ""
    instruction: str = ""
    step_count: int = 0
    updated_at: float = Field(default_factory=time.time)

    @property
    def awaiting_feedback(self) -> bool:
        return self.status == CheckpointStatus.SUSPENDED and bool(self.pending_step)

    @property
    def interrupted(self) -> bool:
        """A step failed (or the process died) mid-run; ``next_step`` retries it."""
        return self.status == CheckpointStatus.RUNNING and bool(self.next_step)


def encode_state(state: NovelState) -> tuple[str, bytes]:
    return _serde.dumps_typed(state.model_dump(mode="json"))


def decode_state(type_: str, blob: bytes) -> NovelState:
    return NovelState.model_validate(_serde.loads_typed((type_, blob)))


@runtime_checkable
class CheckpointStore(Protocol):
    """Storage backend for checkpoints. ``save`` is atomic per call."""

    def load(self, thread_id: str) -> Optional[Checkpoint]:
        ...

    def save(self, checkpoint: Checkpoint) -> None:
        ...

    def delete(self, thread_id: str) -> None:
        ...

    def list_threads(self) -> list[Checkpoint]:
        ...


class MemoryCheckpointStore:
    """In-process store. Records are kept encoded so callers never share state objects."""

    def __init__(self):
        self._records: dict[str, tuple[dict, str, bytes]] = {}

    def load(self, thread_id: str) -> Optional[Checkpoint]:
        record = self._records.get(thread_id)
        if record is None:
            return None
        header, type_, blob = record
        try:
            return Checkpoint(**header, state=decode_state(type_, blob))
        except Exception as e:
            logger.warning("Discarding undecodable checkpoint for thread %s: %s", thread_id, e)
            return None

    def save(self, checkpoint: Checkpoint) -> None:
        header = checkpoint.model_dump(exclude={"state"})
        type_, blob = encode_state(checkpoint.state)
        self._records[checkpoint.thread_id] = (header, type_, blob)

    def delete(self, thread_id: str) -> None:
        self._records.pop(thread_id, None)

    def list_threads(self) -> list[Checkpoint]:
        loaded = (self.load(tid) for tid in list(self._records))
        return sorted((c for c in loaded if c), key=lambda c: c.updated_at, reverse=True)


_CREATE_SQL = """
CREATE TABLE IF NOT EXISTS checkpoints (
    thread_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    next_step TEXT,
    pending_step TEXT,
    suspended_at TEXT,
    payload TEXT NOT NULL DEFAULT '',
    instruction TEXT NOT NULL DEFAULT '',
    step_count INTEGER NOT NULL DEFAULT 0,
    state_type TEXT NOT NULL,
    state_blob BLOB NOT NULL,
    updated_at REAL NOT NULL
);
"""

_UPSERT_SQL = """
INSERT INTO checkpoints (
    thread_id, status, next_step, pending_step, suspended_at, payload,
    instruction, step_count, state_type, state_blob, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(thread_id) DO UPDATE SET
    status=excluded.status,
    next_step=excluded.next_step,
    pending_step=excluded.pending_step,
    suspended_at=excluded.suspended_at,
    payload=excluded.payload,
    instruction=excluded.instruction,
    step_count=excluded.step_count,
    state_type=excluded.state_type,
    state_blob=excluded.state_blob,
    updated_at=excluded.updated_at
"""


class SqliteCheckpointStore:
    """Durable store: survives process restarts, shareable between processes."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_conn("") as conn:
            conn.executescript(_CREATE_SQL)
        logger.info("SqliteCheckpointStore: %s", self.db_path)

    def _get_conn(self, thread_id: str) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
        except sqlite3.Error as e:
            raise CheckpointError(thread_id, f"Checkpoint store unreachable: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def load(self, thread_id: str) -> Optional[Checkpoint]:
        try:
            with self._get_conn(thread_id) as conn:
                row = conn.execute(
                    "SELECT * FROM checkpoints WHERE thread_id = ?", (thread_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise CheckpointError(thread_id, f"Checkpoint read failed: {e}") from e
        if row is None:
            return None
        return self._row_to_checkpoint(row)

    def _row_to_checkpoint(self, row) -> Optional[Checkpoint]:
        thread_id = row["thread_id"]
        try:
            return Checkpoint(
                thread_id=thread_id,
                state=decode_state(row["state_type"], row["state_blob"]),
                status=CheckpointStatus(row["status"]),
                next_step=row["next_step"],
                pending_step=row["pending_step"],
                suspended_at=row["suspended_at"],
                payload=row["payload"],
                instruction=row["instruction"],
                step_count=row["step_count"],
                updated_at=row["updated_at"],
            )
        except Exception as e:
            logger.warning("Discarding corrupt checkpoint for thread %s: %s", thread_id, e)
            return None

    def save(self, checkpoint: Checkpoint) -> None:
        type_, blob = encode_state(checkpoint.state)
        try:
            with self._get_conn(checkpoint.thread_id) as conn:
                conn.execute(
                    _UPSERT_SQL,
                    (
                        checkpoint.thread_id,
                        checkpoint.status.value,
                        checkpoint.next_step,
                        checkpoint.pending_step,
                        checkpoint.suspended_at,
                        checkpoint.payload,
                        checkpoint.instruction,
                        checkpoint.step_count,
                        type_,
                        blob,
                        checkpoint.updated_at,
                    ),
                )
        except sqlite3.Error as e:
            raise CheckpointError(checkpoint.thread_id, f"Checkpoint write failed: {e}") from e
        logger.debug(
            "Checkpoint saved: thread=%s status=%s next=%s",
            checkpoint.thread_id, checkpoint.status.value, checkpoint.next_step or checkpoint.pending_step,
        )

    def delete(self, thread_id: str) -> None:
        try:
            with self._get_conn(thread_id) as conn:
                conn.execute("DELETE FROM checkpoints WHERE thread_id = ?", (thread_id,))
        except sqlite3.Error as e:
            raise CheckpointError(thread_id, f"Checkpoint delete failed: {e}") from e

    def list_threads(self) -> list[Checkpoint]:
        try:
            with self._get_conn("") as conn:
                rows = conn.execute("SELECT * FROM checkpoints ORDER BY updated_at DESC").fetchall()
        except sqlite3.Error as e:
            raise CheckpointError("", f"Checkpoint listing failed: {e}") from e
        return [c for c in (self._row_to_checkpoint(r) for r in rows) if c is not None]


def get_checkpoint_store(settings=None) -> CheckpointStore:
    """Create the checkpoint store selected by ``settings.checkpoint_backend``."""
    if settings is None:
        from config.settings import get_settings
        settings = get_settings()
    if settings.checkpoint_backend == "memory":
        logger.info("Using in-memory checkpoint store")
        return MemoryCheckpointStore()
    return SqliteCheckpointStore(settings.checkpoint_db_path)

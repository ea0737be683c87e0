"""Invocation surface: submit a message or resume a suspended thread."""

import asyncio
import logging
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from models.database import Database
from models.enums import MessageRole
from models.message import ChatMessage
from workflow.checkpoint import Checkpoint
from workflow.engine import ResumeSignal, WorkflowEngine
from workflow.events import ErrorEvent, StepEvent, ThreadEvent, WorkflowEvent
from workflow.state import WorkflowInput

logger = logging.getLogger(__name__)


class NovelWorkflowService:
    """Drives the engine and mirrors the conversation into the chat transcript.

    Invocations on the same thread id are serialized with a per-thread lock
    inside this process. Driving one thread from several processes at once
    is the caller's responsibility to avoid.
    """

    def __init__(self, engine: WorkflowEngine, db: Database):
        self.engine = engine
        self.db = db
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @property
    def settings(self):
        return self.engine.resources.settings

    @asynccontextmanager
    async def _thread_lock(self, thread_id: str):
        """Hold the thread's lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._lock_users[thread_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[thread_id] -= 1
            if self._lock_users[thread_id] <= 0:
                del self._lock_users[thread_id]
                self._locks.pop(thread_id, None)

    async def submit(
        self,
        message: str,
        thread_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> AsyncIterator[WorkflowEvent]:
        """Start a new turn on a thread (a fresh uuid4 thread when none is given)."""
        thread_id = thread_id or str(uuid.uuid4())
        project_id = project_id or ""
        yield ThreadEvent(thread_id=thread_id)

        if not message.strip():
            yield ErrorEvent(message="message is required")
            return

        async with self._thread_lock(thread_id):
            fields = {
                "user_input": message,
                "messages": [ChatMessage(role=MessageRole.USER, content=message)],
                "project_id": project_id,
                "max_revisions": self.settings.max_revisions,
            }
            if project_id:
                snapshot = self.db.get_project_snapshot(project_id)
                if snapshot is None:
                    yield ErrorEvent(message=f"Project not found: {project_id}")
                    return
                if self.db.get_thread(thread_id) is None:
                    self.db.create_thread(thread_id, project_id, title=message[:30])
                self.db.append_message(thread_id, MessageRole.USER, message)
                # The stored project is authoritative for the specialist artifacts
                fields.update(
                    world_setting=snapshot.world,
                    characters=snapshot.characters,
                    outline=snapshot.outline,
                )
            command = WorkflowInput(**fields)

            logger.info("Submit on thread %s (project=%s)", thread_id, project_id or "-")
            async for event in self._drive(thread_id, project_id, command):
                yield event

    async def resume(
        self,
        thread_id: str,
        feedback: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> AsyncIterator[WorkflowEvent]:
        """Resume a suspended thread, or retry one whose last run failed.

        Feedback defaults to the confirmation token and is recorded in the
        transcript only when the thread is actually waiting for it.
        """
        yield ThreadEvent(thread_id=thread_id)
        feedback = (feedback or "").strip() or self.settings.confirm_token

        async with self._thread_lock(thread_id):
            snapshot = self.engine.get_snapshot(thread_id)
            if project_id is None:
                project_id = snapshot.state.project_id if snapshot else ""
            if snapshot is None or not (snapshot.awaiting_feedback or snapshot.interrupted):
                # Rejected by the engine; keep the transcript clean
                project_id = ""
            elif project_id and snapshot.awaiting_feedback:
                self.db.append_message(thread_id, MessageRole.USER, feedback)

            logger.info("Resume on thread %s", thread_id)
            async for event in self._drive(thread_id, project_id, ResumeSignal(feedback=feedback)):
                yield event

    def get_snapshot(self, thread_id: str) -> Optional[Checkpoint]:
        return self.engine.get_snapshot(thread_id)

    async def _drive(self, thread_id: str, project_id: str, command) -> AsyncIterator[WorkflowEvent]:
        async for event in self.engine.run(thread_id, command):
            if project_id:
                self._record(thread_id, event)
            yield event

    def _record(self, thread_id: str, event: WorkflowEvent):
        if isinstance(event, StepEvent) and event.agent_output:
            self.db.append_message(thread_id, MessageRole.ASSISTANT, event.agent_output, step=event.step)
        elif isinstance(event, ErrorEvent):
            self.db.append_message(thread_id, MessageRole.SYSTEM, f"错误: {event.message}")

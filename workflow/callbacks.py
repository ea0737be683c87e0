"""Workflow event callbacks for monitoring and terminal rendering."""

import logging
from typing import Optional, Protocol, runtime_checkable

from workflow.events import (
    DoneEvent,
    ErrorEvent,
    InterruptEvent,
    StepEvent,
    ThreadEvent,
    TokenEvent,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class EventCallback(Protocol):
    """Protocol for workflow event callbacks.

    Implement this protocol to hook into a running invocation; feed events
    to it with :func:`dispatch`.
    """

    def on_thread(self, thread_id: str) -> None:
        ...

    def on_token(self, step: str, content: str) -> None:
        ...

    def on_node_exit(self, event: StepEvent) -> None:
        """Called after a step's update has been merged and checkpointed."""
        ...

    def on_interrupt(self, event: InterruptEvent) -> None:
        ...

    def on_error(self, event: ErrorEvent) -> None:
        ...

    def on_workflow_complete(self, event: DoneEvent) -> None:
        ...


def dispatch(callback: EventCallback, event) -> None:
    """Route one event to the matching callback method."""
    if isinstance(event, ThreadEvent):
        callback.on_thread(event.thread_id)
    elif isinstance(event, TokenEvent):
        callback.on_token(event.step, event.content)
    elif isinstance(event, StepEvent):
        callback.on_node_exit(event)
    elif isinstance(event, InterruptEvent):
        callback.on_interrupt(event)
    elif isinstance(event, ErrorEvent):
        callback.on_error(event)
    elif isinstance(event, DoneEvent):
        callback.on_workflow_complete(event)


class LoggingCallback:
    """Lightweight callback that logs progress to the standard logger."""

    def on_thread(self, thread_id: str) -> None:
        logger.debug("thread: %s", thread_id)

    def on_token(self, step: str, content: str) -> None:
        pass

    def on_node_exit(self, event: StepEvent) -> None:
        logger.debug("← node: %s", event.step)

    def on_interrupt(self, event: InterruptEvent) -> None:
        logger.info("Suspended at %s, waiting for feedback (resumes at %s)", event.suspended_at, event.pending_step)

    def on_error(self, event: ErrorEvent) -> None:
        logger.error("Workflow error in '%s': %s", event.step or "?", event.message)

    def on_workflow_complete(self, event: DoneEvent) -> None:
        logger.info("Turn complete (route=%s)", event.route_target)


class RichEventCallback:
    """Renders events in the terminal with Rich: step labels, streamed prose, panels."""

    _NODE_LABELS: dict[str, str] = {
        "memory_loader": "加载近期对话",
        "knowledge_loader": "加载项目知识库",
        "director": "总导演分析意图",
        "director_confirm": "等待确认方案",
        "director_confirm_apply": "应用确认结果",
        "world_builder": "构建世界观",
        "casting_director": "塑造角色",
        "outliner": "规划大纲",
        "human_review": "等待人工审核",
        "human_review_apply": "应用审核意见",
        "write_prepare": "准备章节",
        "knowledge_retriever": "检索相关剧情",
        "writer": "撰写正文",
        "editor": "审校草稿",
        "save_to_store": "保存数据",
        "direct_response": "回复",
    }

    def __init__(self, console=None, show_tokens: bool = True):
        if console is None:
            from rich.console import Console
            console = Console()
        self._console = console
        self._show_tokens = show_tokens
        self._streaming: Optional[str] = None
        self._last_output: Optional[str] = None
        self.thread_id: Optional[str] = None

    def _end_stream(self) -> None:
        if self._streaming is not None:
            self._console.print()
            self._streaming = None

    def on_thread(self, thread_id: str) -> None:
        self.thread_id = thread_id
        self._console.print(f"[dim]thread: {thread_id}[/]")

    def on_token(self, step: str, content: str) -> None:
        if not self._show_tokens:
            return
        if self._streaming != step:
            self._end_stream()
            self._streaming = step
        self._console.print(content, end="", markup=False, highlight=False)

    def on_node_exit(self, event: StepEvent) -> None:
        self._end_stream()
        label = self._NODE_LABELS.get(event.step, event.step)
        suffix = f" → {event.route_target}" if event.route_target else ""
        self._console.print(f"[dim]✓ {label}{suffix}[/]")

    def on_interrupt(self, event: InterruptEvent) -> None:
        from rich.panel import Panel

        self._end_stream()
        # The done event right before an interrupt already showed the payload
        if event.payload != self._last_output:
            self._console.print(Panel(event.payload or "(空)", title="待确认", border_style="yellow"))
        self._console.print(f"[yellow]{event.instruction}[/]")

    def on_error(self, event: ErrorEvent) -> None:
        self._end_stream()
        where = f" ({event.step})" if event.step else ""
        self._console.print(f"[bold red]错误{where}: {event.message}[/]")

    def on_workflow_complete(self, event: DoneEvent) -> None:
        from rich.markdown import Markdown
        from rich.panel import Panel

        self._end_stream()
        self._last_output = event.agent_output
        if event.agent_output:
            self._console.print(Panel(Markdown(event.agent_output), title="助手", border_style="green"))

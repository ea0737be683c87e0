"""Graph builder and execution engine for the workflow.

The builder API mirrors LangGraph's ``StateGraph``: register steps, wire
fixed and conditional edges, set the entry point, then ``compile``. The
compiled engine runs one step at a time over a ``NovelState``, merges each
step's typed update, persists a checkpoint after every step and streams
events to the caller. Suspension is durable: a suspended thread holds no
in-memory continuation, only its checkpoint.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from config.exceptions import (
    GraphBuildError,
    NovelAgentError,
    WorkflowRecursionError,
    WorkflowResumeError,
    WorkflowRoutingError,
    WorkflowStateError,
)
from models.enums import CheckpointStatus, MessageRole
from models.message import ChatMessage
from workflow.checkpoint import Checkpoint, CheckpointStore
from workflow.events import (
    DoneEvent,
    ErrorEvent,
    InterruptEvent,
    StepEvent,
    TokenEvent,
    WorkflowEvent,
)
from workflow.state import (
    FeedbackReceived,
    NovelState,
    ReplyRecorded,
    StepUpdate,
    WorkflowInput,
    apply_update,
)

logger = logging.getLogger(__name__)

END = "__end__"


@dataclass
class StepContext:
    """Per-invocation context handed to a step alongside the state."""

    resources: Any
    thread_id: str
    emit_token: Callable[[str], None]
    resume_input: Optional[str] = None


@dataclass
class Suspend:
    """Returned by a pre-suspend step: persist, notify the caller, stop."""

    payload: str
    instruction: str
    update: Optional[StepUpdate] = None


class ResumeSignal(BaseModel):
    feedback: str = ""


StepResult = Union[StepUpdate, Suspend, None]
StepFn = Callable[[NovelState, StepContext], Awaitable[StepResult]]
Router = Callable[[NovelState], str]


@dataclass
class _Node:
    name: str
    fn: StepFn
    returns: tuple[type, ...]
    suspends: bool = False


@dataclass
class _Branch:
    router: Router
    path_map: dict[str, str]


@dataclass
class WorkflowGraph:
    """Mutable graph definition; call :meth:`compile` to get an engine."""

    nodes: dict[str, _Node] = field(default_factory=dict)
    edges: dict[str, str] = field(default_factory=dict)
    branches: dict[str, _Branch] = field(default_factory=dict)
    entry: Optional[str] = None

    def add_node(
        self,
        name: str,
        fn: StepFn,
        returns: tuple[type, ...] | type = (),
        suspends: bool = False,
    ) -> "WorkflowGraph":
        if name in self.nodes or name == END:
            raise GraphBuildError(f"Duplicate or reserved node name: {name}")
        if isinstance(returns, type):
            returns = (returns,)
        self.nodes[name] = _Node(name, fn, tuple(returns), suspends)
        return self

    def add_edge(self, source: str, target: str) -> "WorkflowGraph":
        if source in self.edges or source in self.branches:
            raise GraphBuildError(f"Node '{source}' already has an outgoing edge")
        self.edges[source] = target
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Router,
        path_map: dict[str, str] | list[str],
    ) -> "WorkflowGraph":
        if source in self.edges or source in self.branches:
            raise GraphBuildError(f"Node '{source}' already has an outgoing edge")
        if isinstance(path_map, list):
            path_map = {p: p for p in path_map}
        self.branches[source] = _Branch(router, dict(path_map))
        return self

    def set_entry_point(self, name: str) -> "WorkflowGraph":
        self.entry = name
        return self

    def validate(self):
        if self.entry is None or self.entry not in self.nodes:
            raise GraphBuildError(f"Entry point is not a registered node: {self.entry}")
        for name, node in self.nodes.items():
            if name not in self.edges and name not in self.branches:
                raise GraphBuildError(f"Node '{name}' has no outgoing edge")
            if node.suspends and name not in self.edges:
                raise GraphBuildError(f"Suspending node '{name}' needs a fixed successor")
        targets = list(self.edges.values())
        for branch in self.branches.values():
            targets.extend(branch.path_map.values())
        for source in list(self.edges) + list(self.branches):
            if source not in self.nodes:
                raise GraphBuildError(f"Edge from unknown node '{source}'")
        for target in targets:
            if target != END and target not in self.nodes:
                raise GraphBuildError(f"Edge to unknown node '{target}'")

    def compile(
        self,
        store: CheckpointStore,
        resources: Any = None,
        recursion_limit: int = 50,
    ) -> "WorkflowEngine":
        self.validate()
        return WorkflowEngine(self, store, resources, recursion_limit)


class WorkflowEngine:
    """Runs a compiled graph for any number of independent threads.

    One thread id must not be driven by two concurrent ``run`` calls; the
    service layer serializes invocations per thread.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        store: CheckpointStore,
        resources: Any = None,
        recursion_limit: int = 50,
    ):
        self.graph = graph
        self.store = store
        self.resources = resources
        self.recursion_limit = recursion_limit

    def get_snapshot(self, thread_id: str) -> Optional[Checkpoint]:
        return self.store.load(thread_id)

    async def run(
        self,
        thread_id: str,
        command: WorkflowInput | ResumeSignal,
    ) -> AsyncIterator[WorkflowEvent]:
        """Drive a thread until it ends, suspends or fails.

        Never raises for workflow failures: they are reported as a final
        :class:`ErrorEvent` and the last good checkpoint is left in place.
        A ``ResumeSignal`` on a thread whose run was interrupted retries
        from the step that failed.
        """
        step: Optional[str] = None
        try:
            previous, state, step, resume_input = self._start(thread_id, command)
            step_count = previous.step_count if previous else 0
            executed = 0

            while step != END:
                if executed >= self.recursion_limit:
                    raise WorkflowRecursionError(self.recursion_limit)
                node = self.graph.nodes[step]
                logger.debug("Thread %s -> %s", thread_id, step)

                result = None
                async for item in self._invoke(node, state, thread_id, resume_input):
                    if isinstance(item, TokenEvent):
                        yield item
                    else:
                        result = item
                executed += 1
                step_count += 1
                resume_input = None

                if isinstance(result, Suspend):
                    if not node.suspends:
                        raise WorkflowStateError(f"Step '{step}' is not allowed to suspend")
                    if result.update is not None:
                        state = apply_update(state, self._check(node, result.update))
                    state = self._record_reply(state, step)
                    pending = self.graph.edges[step]
                    self.store.save(Checkpoint(
                        thread_id=thread_id,
                        state=state,
                        status=CheckpointStatus.SUSPENDED,
                        pending_step=pending,
                        suspended_at=step,
                        payload=result.payload,
                        instruction=result.instruction,
                        step_count=step_count,
                    ))
                    logger.info("Thread %s suspended at %s (resumes at %s)", thread_id, step, pending)
                    yield self._step_event(step, state, result.update)
                    yield self._done_event(state)
                    yield InterruptEvent(
                        pending_step=pending,
                        suspended_at=step,
                        instruction=result.instruction,
                        payload=result.payload,
                    )
                    return

                update = self._check(node, result) if result is not None else None
                if update is not None:
                    state = apply_update(state, update)
                next_step = self._next(step, state)
                if next_step == END:
                    state = self._record_reply(state, step)
                self.store.save(Checkpoint(
                    thread_id=thread_id,
                    state=state,
                    status=CheckpointStatus.COMPLETED if next_step == END else CheckpointStatus.RUNNING,
                    next_step=None if next_step == END else next_step,
                    step_count=step_count,
                ))
                yield self._step_event(step, state, update)
                step = next_step

            logger.info("Thread %s completed", thread_id)
            yield self._done_event(state)

        except NovelAgentError as e:
            logger.error("Workflow error in '%s' (thread %s): %s", step, thread_id, e)
            yield ErrorEvent(message=str(e), step=step)
        except Exception as e:
            logger.exception("Step '%s' failed (thread %s)", step, thread_id)
            yield ErrorEvent(message=str(e) or type(e).__name__, step=step)

    def _start(self, thread_id: str, command):
        previous = self.store.load(thread_id)
        if isinstance(command, ResumeSignal):
            if previous is None:
                raise WorkflowResumeError(thread_id, f"No checkpoint for thread '{thread_id}'")
            if previous.interrupted:
                # Retry the step that failed; feedback only applies at a suspension
                logger.info("Retrying thread %s at %s", thread_id, previous.next_step)
                return previous, previous.state, previous.next_step, None
            if not previous.awaiting_feedback:
                raise WorkflowResumeError(thread_id, f"Thread '{thread_id}' is not suspended")
            state = previous.state
            feedback = command.feedback.strip()
            if feedback:
                state = apply_update(state, FeedbackReceived(
                    messages=[ChatMessage(role=MessageRole.USER, content=feedback)]
                ))
            logger.info("Resuming thread %s at %s", thread_id, previous.pending_step)
            return previous, state, previous.pending_step, feedback

        if not isinstance(command, WorkflowInput):
            raise WorkflowStateError(f"Unsupported command: {type(command).__name__}")
        state = previous.state if previous else NovelState(thread_id=thread_id)
        if previous and previous.awaiting_feedback:
            logger.info("Thread %s was suspended at %s; starting a new turn", thread_id, previous.suspended_at)
        return previous, apply_update(state, command), self.graph.entry, None

    async def _invoke(
        self,
        node: _Node,
        state: NovelState,
        thread_id: str,
        resume_input: Optional[str],
    ) -> AsyncIterator[Any]:
        """Run one step, yielding its tokens as they arrive, then its result."""
        queue: asyncio.Queue[str] = asyncio.Queue()
        ctx = StepContext(self.resources, thread_id, queue.put_nowait, resume_input)
        task = asyncio.ensure_future(node.fn(state, ctx))
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield TokenEvent(step=node.name, content=getter.result())
                    continue
                getter.cancel()
                break
            while not queue.empty():
                yield TokenEvent(step=node.name, content=queue.get_nowait())
            yield task.result()
        finally:
            if not task.done():
                task.cancel()

    def _check(self, node: _Node, update: Any) -> StepUpdate:
        if not isinstance(update, StepUpdate):
            raise WorkflowStateError(
                f"Step '{node.name}' returned {type(update).__name__}, not a step update"
            )
        if node.returns and not isinstance(update, node.returns):
            allowed = ", ".join(t.__name__ for t in node.returns)
            raise WorkflowStateError(
                f"Step '{node.name}' returned {type(update).__name__}; expected {allowed}"
            )
        return update

    def _next(self, step: str, state: NovelState) -> str:
        if step in self.graph.edges:
            return self.graph.edges[step]
        branch = self.graph.branches[step]
        label = branch.router(state)
        if label not in branch.path_map:
            raise WorkflowRoutingError(step, label, list(branch.path_map))
        return branch.path_map[label]

    @staticmethod
    def _record_reply(state: NovelState, step: str) -> NovelState:
        """Append the turn's reply to the conversation before it is persisted.

        A reply already recorded at a suspension is not recorded again when
        the resumed turn ends without producing a new one.
        """
        if not state.agent_output:
            return state
        last_reply = next((m for m in reversed(state.messages) if m.role == MessageRole.ASSISTANT), None)
        if last_reply is not None and last_reply.content == state.agent_output:
            return state
        return apply_update(state, ReplyRecorded(
            messages=[ChatMessage(role=MessageRole.ASSISTANT, content=state.agent_output, step=step)]
        ))

    @staticmethod
    def _step_event(step: str, state: NovelState, update: Optional[StepUpdate]) -> StepEvent:
        changes = update.changes() if update is not None else {}
        route = changes.get("route_target")
        return StepEvent(
            step=step,
            agent_output=changes.get("agent_output"),
            route_target=route.value if route is not None else None,
            update=update.model_dump(mode="json", exclude_unset=True, exclude={"kind"}) if update else {},
        )

    @staticmethod
    def _done_event(state: NovelState) -> DoneEvent:
        return DoneEvent(
            agent_output=state.agent_output,
            draft=state.draft or None,
            route_target=state.route_target.value,
        )

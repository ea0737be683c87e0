"""Workflow package: engine, graph, state, conditions, and utilities."""

from workflow.engine import END, ResumeSignal, StepContext, Suspend, WorkflowEngine, WorkflowGraph
from workflow.events import (
    DoneEvent,
    ErrorEvent,
    InterruptEvent,
    StepEvent,
    ThreadEvent,
    TokenEvent,
    WorkflowEvent,
)
from workflow.state import AnyStepUpdate, NovelState, StepUpdate, WorkflowInput, apply_update
from workflow.conditions import (
    route_after_confirm,
    route_after_director,
    route_after_editor,
    route_after_write_prepare,
)
from workflow.checkpoint import (
    Checkpoint,
    CheckpointStore,
    MemoryCheckpointStore,
    SqliteCheckpointStore,
    get_checkpoint_store,
)
from workflow.callbacks import EventCallback, LoggingCallback, RichEventCallback, dispatch
from workflow.graph import WorkflowResources, build_graph, compile_workflow
from workflow.service import NovelWorkflowService

__all__ = [
    "END",
    "ResumeSignal",
    "StepContext",
    "Suspend",
    "WorkflowEngine",
    "WorkflowGraph",
    "DoneEvent",
    "ErrorEvent",
    "InterruptEvent",
    "StepEvent",
    "ThreadEvent",
    "TokenEvent",
    "WorkflowEvent",
    "AnyStepUpdate",
    "NovelState",
    "StepUpdate",
    "WorkflowInput",
    "apply_update",
    "route_after_confirm",
    "route_after_director",
    "route_after_editor",
    "route_after_write_prepare",
    "Checkpoint",
    "CheckpointStore",
    "MemoryCheckpointStore",
    "SqliteCheckpointStore",
    "get_checkpoint_store",
    "EventCallback",
    "LoggingCallback",
    "RichEventCallback",
    "dispatch",
    "WorkflowResources",
    "build_graph",
    "compile_workflow",
    "NovelWorkflowService",
]

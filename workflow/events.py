"""Events streamed to callers while a workflow invocation runs."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class _Event(BaseModel):
    type: str


class ThreadEvent(_Event):
    type: Literal["thread"] = "thread"
    thread_id: str


class TokenEvent(_Event):
    type: Literal["token"] = "token"
    step: str
    content: str


class StepEvent(_Event):
    type: Literal["node"] = "node"
    step: str
    agent_output: Optional[str] = None
    route_target: Optional[str] = None
    update: dict[str, Any] = Field(default_factory=dict)


class DoneEvent(_Event):
    type: Literal["done"] = "done"
    agent_output: str = ""
    draft: Optional[str] = None
    route_target: Optional[str] = None


class InterruptEvent(_Event):
    type: Literal["interrupt"] = "interrupt"
    pending_step: str
    suspended_at: str
    instruction: str
    payload: str


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    message: str
    step: Optional[str] = None


WorkflowEvent = Annotated[
    Union[ThreadEvent, TokenEvent, StepEvent, DoneEvent, InterruptEvent, ErrorEvent],
    Field(discriminator="type"),
]

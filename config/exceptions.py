"""Custom exception hierarchy for the novel director workflow."""

from typing import Optional


class NovelAgentError(Exception):
    """Base exception for all novel agent errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- LLM Errors ----

class LLMError(NovelAgentError):
    """Base exception for generation call errors."""


class LLMRateLimitError(LLMError):
    """Generation API rate limit exceeded."""

    def __init__(self, message: str = "API rate limit exceeded", retry_after: Optional[float] = None):
        details = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details)
        self.retry_after = retry_after


class LLMTimeoutError(LLMError):
    """Generation call exceeded its time budget."""

    def __init__(self, timeout: float, message: str = ""):
        super().__init__(message or f"Generation call timed out after {timeout:g}s", {"timeout": timeout})
        self.timeout = timeout


class LLMResponseParseError(LLMError):
    """Failed to decode a structured payload from a generation response."""

    def __init__(self, message: str = "Failed to parse LLM response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


# ---- Storage Errors ----

class DatabaseError(NovelAgentError):
    """Project or transcript storage operation failed."""


class CheckpointError(NovelAgentError):
    """Checkpoint store is unreachable or a checkpoint write failed."""

    def __init__(self, thread_id: str, message: str):
        super().__init__(message, {"thread_id": thread_id})
        self.thread_id = thread_id


class RetrievalError(NovelAgentError):
    """Vector retrieval backend failed."""


# ---- Workflow Errors ----

class WorkflowError(NovelAgentError):
    """Base exception for workflow orchestration errors."""


class GraphBuildError(WorkflowError):
    """The workflow graph is malformed (missing node, dangling edge, ...)."""


class WorkflowStateError(WorkflowError):
    """A step returned an update the engine cannot accept."""


class WorkflowRoutingError(WorkflowError):
    """A router produced a step name outside its declared path map."""

    def __init__(self, source: str, target: str, allowed: list[str]):
        super().__init__(
            f"Router after '{source}' returned unknown target '{target}'",
            {"allowed": ",".join(sorted(allowed))},
        )
        self.source = source
        self.target = target


class WorkflowResumeError(WorkflowError):
    """Resume requested for a thread that is unknown or not suspended."""

    def __init__(self, thread_id: str, message: str):
        super().__init__(message, {"thread_id": thread_id})
        self.thread_id = thread_id


class WorkflowRecursionError(WorkflowError):
    """A single invocation executed more steps than the recursion limit."""

    def __init__(self, limit: int):
        super().__init__(f"Step limit of {limit} reached without hitting a stop condition", {"limit": limit})
        self.limit = limit

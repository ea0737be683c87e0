"""Workflow state definition, reducers and the typed step-update variants."""

import operator
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from models.character import Character
from models.enums import RouteTarget
from models.message import ChatMessage
from models.outline import ChapterNode, OutlineTree
from models.world import WorldSetting


@dataclass(frozen=True)
class Reducer:
    """Field metadata: how an incoming value combines with the current one."""

    fn: Callable[[Any, Any], Any]
    name: str = ""


APPEND = Reducer(operator.add, "append")


class NovelState(BaseModel):
    """Global state shared by all workflow steps, one instance per thread.

    Fields are grouped logically:
    - Identity: thread_id (never written by a step)
    - Conversation: messages (append reducer), user_input, agent_output
    - Routing: route_target
    - Project data: project_id, world_setting, characters, outline
    - Chapter cycle: current_chapter, draft, critique, revision_count, review_score
    - Context: memory_summary, knowledge_context, knowledge_retrieved
    - Config: max_revisions (from Settings)

    Every field without a Reducer in its metadata is replaced on update.
    """

    thread_id: str = ""

    messages: Annotated[list[ChatMessage], APPEND] = Field(default_factory=list)
    user_input: str = ""
    agent_output: str = ""

    route_target: RouteTarget = RouteTarget.DIRECT

    project_id: str = ""
    world_setting: Optional[WorldSetting] = None
    characters: list[Character] = Field(default_factory=list)
    outline: Optional[OutlineTree] = None

    current_chapter: Optional[ChapterNode] = None
    draft: str = ""
    critique: str = ""
    revision_count: int = Field(0, ge=0)
    review_score: Optional[float] = None

    memory_summary: str = ""
    knowledge_context: str = ""
    knowledge_retrieved: str = ""

    max_revisions: int = Field(3, ge=1)


def reducer_for(field_name: str) -> Optional[Reducer]:
    field = NovelState.model_fields[field_name]
    for meta in field.metadata:
        if isinstance(meta, Reducer):
            return meta
    return None


# ---------------------------------------------------------------------------
# Step updates
# ---------------------------------------------------------------------------

class StepUpdate(BaseModel):
    """Base for partial state updates. Only explicitly-set fields are merged."""

    model_config = ConfigDict(extra="forbid")

    kind: str

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"kind"})


class WorkflowInput(StepUpdate):
    """Merged before the entry step of a fresh submission."""
    kind: Literal["input"] = "input"
    user_input: str
    messages: list[ChatMessage] = Field(default_factory=list)
    project_id: str = ""
    max_revisions: int = Field(3, ge=1)
    world_setting: Optional[WorldSetting] = None
    characters: list[Character] = Field(default_factory=list)
    outline: Optional[OutlineTree] = None


class FeedbackReceived(StepUpdate):
    kind: Literal["feedback"] = "feedback"
    messages: list[ChatMessage]


class ReplyRecorded(StepUpdate):
    kind: Literal["reply"] = "reply"
    messages: list[ChatMessage]


class MemoryLoaded(StepUpdate):
    kind: Literal["memory"] = "memory"
    memory_summary: str


class KnowledgeLoaded(StepUpdate):
    kind: Literal["knowledge"] = "knowledge"
    knowledge_context: str


class RouteDecided(StepUpdate):
    kind: Literal["route"] = "route"
    route_target: RouteTarget
    agent_output: str


class InputRevised(StepUpdate):
    """Post-resume result; ``user_input`` is set only for non-confirming feedback."""
    kind: Literal["input_revised"] = "input_revised"
    user_input: str = ""


class WorldUpdate(StepUpdate):
    kind: Literal["world"] = "world"
    agent_output: str
    world_setting: Optional[WorldSetting] = None


class CastUpdate(StepUpdate):
    kind: Literal["cast"] = "cast"
    agent_output: str
    characters: list[Character] = Field(default_factory=list)


class OutlineUpdate(StepUpdate):
    kind: Literal["outline"] = "outline"
    agent_output: str
    outline: Optional[OutlineTree] = None


class ChapterPrepared(StepUpdate):
    """Starts a write cycle. The reset fields are required so they are always merged."""
    kind: Literal["chapter_prepared"] = "chapter_prepared"
    current_chapter: ChapterNode
    revision_count: Literal[0]
    draft: Literal[""]
    critique: Literal[""]
    review_score: None


class PrepareRejected(StepUpdate):
    kind: Literal["prepare_rejected"] = "prepare_rejected"
    route_target: Literal[RouteTarget.DIRECT]
    agent_output: str


class RetrievalUpdate(StepUpdate):
    kind: Literal["retrieval"] = "retrieval"
    knowledge_retrieved: str


class DraftUpdate(StepUpdate):
    kind: Literal["draft"] = "draft"
    draft: str
    revision_count: int = Field(ge=1)
    agent_output: str


class ReviewUpdate(StepUpdate):
    kind: Literal["review"] = "review"
    critique: str
    review_score: Optional[float] = None
    agent_output: str


class SaveUpdate(StepUpdate):
    kind: Literal["save"] = "save"
    agent_output: str
    outline: Optional[OutlineTree] = None
    current_chapter: Optional[ChapterNode] = None


AnyStepUpdate = Annotated[
    Union[
        WorkflowInput,
        FeedbackReceived,
        ReplyRecorded,
        MemoryLoaded,
        KnowledgeLoaded,
        RouteDecided,
        InputRevised,
        WorldUpdate,
        CastUpdate,
        OutlineUpdate,
        ChapterPrepared,
        PrepareRejected,
        RetrievalUpdate,
        DraftUpdate,
        ReviewUpdate,
        SaveUpdate,
    ],
    Field(discriminator="kind"),
]

_UPDATE_ADAPTER = TypeAdapter(AnyStepUpdate)


def parse_update(data: dict) -> StepUpdate:
    """Rebuild a step update from its dumped form (``kind`` selects the variant)."""
    return _UPDATE_ADAPTER.validate_python(data)


def apply_update(state: NovelState, update: StepUpdate) -> NovelState:
    """Merge an update into a copy of the state via per-field reducers."""
    values = {}
    for name in update.model_fields_set - {"kind"}:
        incoming = getattr(update, name)
        reducer = reducer_for(name)
        values[name] = reducer.fn(getattr(state, name), incoming) if reducer else incoming
    if not values:
        return state
    return state.model_copy(update=values)

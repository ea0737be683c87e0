"""Workflow graph: wires the steps into the fixed director topology."""

import logging
from typing import Optional

from agents.casting_director_agent import CastingDirectorAgent
from agents.director_agent import DirectorAgent
from agents.editor_agent import EditorAgent
from agents.outliner_agent import OutlinerAgent
from agents.world_builder_agent import WorldBuilderAgent
from agents.writer_agent import WriterAgent
from config.settings import Settings, get_settings
from memory.chroma_store import ChromaStore
from memory.knowledge_retriever import KnowledgeRetriever
from models.database import Database
from tools.agent_sdk_client import AgentSDKClient
from workflow import nodes
from workflow.checkpoint import CheckpointStore, get_checkpoint_store
from workflow.conditions import (
    route_after_confirm,
    route_after_director,
    route_after_editor,
    route_after_write_prepare,
)
from workflow.engine import END, WorkflowEngine, WorkflowGraph
from workflow.state import (
    CastUpdate,
    ChapterPrepared,
    DraftUpdate,
    InputRevised,
    KnowledgeLoaded,
    MemoryLoaded,
    OutlineUpdate,
    PrepareRejected,
    RetrievalUpdate,
    ReviewUpdate,
    RouteDecided,
    SaveUpdate,
    WorldUpdate,
)

logger = logging.getLogger(__name__)


class WorkflowResources:
    """Lazily-initialized collaborators shared by all steps of one engine.

    Passed to the engine explicitly; anything supplied to the constructor
    is used as-is, the rest is built from settings on first access.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        db: Optional[Database] = None,
        llm: Optional[AgentSDKClient] = None,
        retriever: Optional[KnowledgeRetriever] = None,
    ):
        self._settings = settings
        self._db = db
        self._llm = llm
        self._retriever = retriever
        self._agents: dict[str, object] = {}

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = Database(self.settings.sqlite_db_path)
        return self._db

    @property
    def llm(self) -> AgentSDKClient:
        if self._llm is None:
            self._llm = AgentSDKClient(self.settings)
        return self._llm

    @property
    def retriever(self) -> KnowledgeRetriever:
        if self._retriever is None:
            store = ChromaStore(self.settings.chroma_persist_dir)
            self._retriever = KnowledgeRetriever(store, top_k=self.settings.retrieval_top_k)
        return self._retriever

    def _agent(self, cls):
        agent = self._agents.get(cls.__name__)
        if agent is None:
            agent = cls(self.llm, self.settings)
            self._agents[cls.__name__] = agent
        return agent

    @property
    def director(self) -> DirectorAgent:
        return self._agent(DirectorAgent)

    @property
    def world_builder(self) -> WorldBuilderAgent:
        return self._agent(WorldBuilderAgent)

    @property
    def casting_director(self) -> CastingDirectorAgent:
        return self._agent(CastingDirectorAgent)

    @property
    def outliner(self) -> OutlinerAgent:
        return self._agent(OutlinerAgent)

    @property
    def writer(self) -> WriterAgent:
        return self._agent(WriterAgent)

    @property
    def editor(self) -> EditorAgent:
        return self._agent(EditorAgent)


def build_graph() -> WorkflowGraph:
    """Build the (uncompiled) workflow graph."""
    graph = WorkflowGraph()

    # Context loading + routing
    graph.add_node("memory_loader", nodes.memory_loader, returns=MemoryLoaded)
    graph.add_node("knowledge_loader", nodes.knowledge_loader, returns=KnowledgeLoaded)
    graph.add_node("director", nodes.director, returns=RouteDecided)

    # Suspension points and their post-resume halves
    graph.add_node("director_confirm", nodes.director_confirm, suspends=True)
    graph.add_node("director_confirm_apply", nodes.director_confirm_apply, returns=InputRevised)
    graph.add_node("human_review", nodes.human_review, suspends=True)
    graph.add_node("human_review_apply", nodes.human_review_apply, returns=InputRevised)

    # Specialists
    graph.add_node("world_builder", nodes.world_builder, returns=WorldUpdate)
    graph.add_node("casting_director", nodes.casting_director, returns=CastUpdate)
    graph.add_node("outliner", nodes.outliner, returns=OutlineUpdate)

    # Write cycle
    graph.add_node("write_prepare", nodes.write_prepare, returns=(ChapterPrepared, PrepareRejected))
    graph.add_node("knowledge_retriever", nodes.knowledge_retriever, returns=RetrievalUpdate)
    graph.add_node("writer", nodes.writer, returns=DraftUpdate)
    graph.add_node("editor", nodes.editor, returns=ReviewUpdate)

    # Terminals
    graph.add_node("save_to_store", nodes.save_to_store, returns=SaveUpdate)
    graph.add_node("direct_response", nodes.direct_response)

    graph.set_entry_point("memory_loader")
    graph.add_edge("memory_loader", "knowledge_loader")
    graph.add_edge("knowledge_loader", "director")

    # direct -> reply now; anything else -> confirm with the author first
    graph.add_conditional_edges(
        "director",
        route_after_director,
        {
            "direct_response": "direct_response",
            "director_confirm": "director_confirm",
        },
    )
    graph.add_edge("director_confirm", "director_confirm_apply")
    graph.add_conditional_edges(
        "director_confirm_apply",
        route_after_confirm,
        ["world_builder", "casting_director", "outliner", "write_prepare", "direct_response"],
    )

    # Specialists -> human review -> save
    graph.add_edge("world_builder", "human_review")
    graph.add_edge("casting_director", "human_review")
    graph.add_edge("outliner", "human_review")
    graph.add_edge("human_review", "human_review_apply")
    graph.add_edge("human_review_apply", "save_to_store")

    # write_prepare -> retrieve -> writer -> editor
    graph.add_conditional_edges(
        "write_prepare",
        route_after_write_prepare,
        {
            "direct_response": "direct_response",
            "knowledge_retriever": "knowledge_retriever",
        },
    )
    graph.add_edge("knowledge_retriever", "writer")
    graph.add_edge("writer", "editor")

    # Conditional: after review -> save (pass), writer (revise), human (budget spent)
    graph.add_conditional_edges(
        "editor",
        route_after_editor,
        {
            "save_to_store": "save_to_store",
            "writer": "writer",
            "human_review": "human_review",
        },
    )

    graph.add_edge("save_to_store", END)
    graph.add_edge("direct_response", END)

    return graph


def compile_workflow(
    resources: Optional[WorkflowResources] = None,
    store: Optional[CheckpointStore] = None,
) -> WorkflowEngine:
    """Build and compile the workflow with its resources and checkpoint store."""
    resources = resources or WorkflowResources()
    store = store or get_checkpoint_store(resources.settings)
    engine = build_graph().compile(
        store=store,
        resources=resources,
        recursion_limit=resources.settings.recursion_limit,
    )
    logger.info("Workflow compiled (%d steps)", len(engine.graph.nodes))
    return engine

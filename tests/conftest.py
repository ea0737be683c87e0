"""Shared pytest fixtures for the novel-director test suite."""

import json
from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, AsyncMock


# ---------------------------------------------------------------------------
# Settings / storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path.

    Each role gets its own model name so a scripted client can tell the
    agents apart.
    """
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "novels.db",
        checkpoint_db_path=tmp_path / "checkpoints.db",
        checkpoint_backend="memory",
        chroma_persist_dir=tmp_path / "chroma",
        log_dir=tmp_path / "logs",
        llm_model_director="m-director",
        llm_model_world="m-world",
        llm_model_casting="m-casting",
        llm_model_outline="m-outline",
        llm_model_writing="m-writing",
        llm_model_editing="m-editing",
    )


@pytest.fixture
def db(settings):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(settings.sqlite_db_path)


@pytest.fixture
def store():
    from workflow.checkpoint import MemoryCheckpointStore
    return MemoryCheckpointStore()


# ---------------------------------------------------------------------------
# Generation / retrieval mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_llm():
    """Return a MagicMock replacing AgentSDKClient."""
    llm = MagicMock()
    llm.chat = AsyncMock(return_value="这是一段测试内容。")
    llm.get_usage_summary.return_value = {"total_calls": 1}
    return llm


class ScriptedLLM:
    """Stand-in for AgentSDKClient that answers per model name from a script.

    ``script`` maps a model name to a list of replies consumed in order; the
    last reply repeats once the list is exhausted. Replies may be exceptions,
    which are raised. ``on_token`` receives the reply in two fragments.
    """

    def __init__(self, script: dict[str, list]):
        self.script = {k: list(v) for k, v in script.items()}
        self.calls: list[dict] = []

    def count(self, model: str) -> int:
        return sum(1 for c in self.calls if c["model"] == model)

    async def chat(self, system_prompt, user_prompt, model=None, on_event=None, on_token=None, timeout=None):
        self.calls.append({"model": model, "system_prompt": system_prompt, "user_prompt": user_prompt})
        replies = self.script.get(model)
        if not replies:
            raise AssertionError(f"Unexpected generation call for model {model}")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        if on_token is not None:
            half = len(reply) // 2
            on_token(reply[:half])
            on_token(reply[half:])
        return reply


@pytest.fixture
def scripted_llm():
    """Factory: ``scripted_llm({"m-director": [...], ...})``."""
    return ScriptedLLM


@pytest.fixture
def fake_retriever():
    retriever = MagicMock()
    retriever.retrieve.return_value = ""
    retriever.reindex.return_value = 0
    return retriever


# ---------------------------------------------------------------------------
# Replies in the shapes the agents decode
# ---------------------------------------------------------------------------

def route_reply(target: str, output: str = "好的，我来安排。") -> str:
    return json.dumps({"routeTarget": target, "agentOutput": output}, ensure_ascii=False)


def review_reply(score: float, issues: list | None = None) -> str:
    status = "PASS" if score >= 80 else "REVISE"
    return json.dumps(
        {"status": status, "score": score, "issues": issues or [], "agentOutput": f"评分 {score:g}"},
        ensure_ascii=False,
    )


@pytest.fixture
def replies():
    """Helpers building generation replies: ``replies.route(...)``, ``replies.review(...)``."""
    return SimpleNamespace(route=route_reply, review=review_reply)


# ---------------------------------------------------------------------------
# Sample project data
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_world():
    from models.world import Location, PowerSystem, WorldSetting
    return WorldSetting(
        background="灵气复苏后的近未来都市，宗门以公司形式存在。",
        power_systems=[PowerSystem(name="灵脉", levels=["开脉", "通玄", "化神"])],
        geography=[Location(id="loc_1", name="青岚市", description="沿海巨城")],
        core_conflict="旧宗门与新财团争夺灵脉。",
    )


@pytest.fixture
def sample_characters():
    from models.character import Character, Personality, Relationship
    return [
        Character(
            id="char_1",
            name="林澈",
            role="PROTAGONIST",
            personality=Personality(traits=["冷静", "嘴硬"], fears=["失去家人"], speaking_style="简短"),
            relationships=[Relationship(target_char_id="char_2", type="宿敌")],
        ),
        Character(id="char_2", name="沈夜", role="ANTAGONIST"),
    ]


@pytest.fixture
def sample_outline():
    from models.outline import ChapterNode, OutlineTree, SceneBeat, VolumeNode
    return OutlineTree(
        volumes=[
            VolumeNode(
                id="vol_1",
                title="觉醒",
                chapters=[
                    ChapterNode(
                        id="ch_1",
                        title="雨夜",
                        summary="林澈在雨夜觉醒灵脉",
                        beats=[SceneBeat(id="b1", type="hook", summary="雷击", emotional_tone="紧张")],
                    ),
                    ChapterNode(id="ch_2", title="入局", summary="林澈被财团盯上"),
                ],
            ),
            VolumeNode(
                id="vol_2",
                title="争锋",
                chapters=[ChapterNode(id="ch_3", title="对峙", summary="林澈与沈夜初次交手")],
            ),
        ]
    )


@pytest.fixture
def project_id(db, sample_world, sample_characters, sample_outline):
    """A stored project holding the sample world, roster and outline."""
    from models.project import ProjectMetadata
    project = db.create_project(ProjectMetadata(title="灵脉纪元", genre="都市异能"), project_id="proj_test")
    db.save_world_setting(project.id, sample_world)
    db.save_characters(project.id, sample_characters)
    db.save_outline(project.id, sample_outline)
    return project.id


# ---------------------------------------------------------------------------
# Engine / service
# ---------------------------------------------------------------------------

@pytest.fixture
def make_engine(settings, db, store, fake_retriever):
    """Factory: compile the full workflow around a given generation client."""
    def _make(llm):
        from workflow.graph import WorkflowResources, compile_workflow
        resources = WorkflowResources(settings=settings, db=db, llm=llm, retriever=fake_retriever)
        return compile_workflow(resources, store)
    return _make


@pytest.fixture
def make_service(make_engine, db):
    def _make(llm):
        from workflow.service import NovelWorkflowService
        return NovelWorkflowService(make_engine(llm), db)
    return _make


@pytest.fixture
def collect():
    """Drain an async event stream into a list."""
    async def _collect(stream):
        return [event async for event in stream]
    return _collect

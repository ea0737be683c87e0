"""Tests for individual workflow steps."""

from unittest.mock import MagicMock

import pytest

from models.enums import ChapterStatus, MessageRole, RouteTarget


@pytest.fixture
def make_ctx(settings, db, fake_retriever, mock_llm):
    """Build a StepContext around real settings/db and mocked collaborators."""
    def _make(llm=None, resume_input=None, thread_id="t1", tokens=None):
        from workflow.engine import StepContext
        from workflow.graph import WorkflowResources
        resources = WorkflowResources(settings=settings, db=db, llm=llm or mock_llm, retriever=fake_retriever)
        sink = tokens if tokens is not None else []
        return StepContext(resources, thread_id, sink.append, resume_input)
    return _make


def _state(**kwargs):
    from workflow.state import NovelState
    return NovelState(**kwargs)


class TestContextLoaders:
    @pytest.mark.asyncio
    async def test_memory_from_state_without_project(self, make_ctx):
        from models.message import ChatMessage
        from workflow.nodes import memory_loader
        state = _state(messages=[ChatMessage(role=MessageRole.USER, content="你好")])
        update = await memory_loader(state, make_ctx())
        assert update.memory_summary == "用户: 你好"

    @pytest.mark.asyncio
    async def test_memory_from_transcript_with_project(self, make_ctx, db, project_id):
        from workflow.nodes import memory_loader
        db.append_message("t1", MessageRole.USER, "存档里的话")
        update = await memory_loader(_state(project_id=project_id), make_ctx())
        assert "存档里的话" in update.memory_summary

    @pytest.mark.asyncio
    async def test_knowledge_empty_without_project(self, make_ctx, sample_world):
        from workflow.nodes import knowledge_loader
        update = await knowledge_loader(_state(world_setting=sample_world), make_ctx())
        assert update.knowledge_context == ""

    @pytest.mark.asyncio
    async def test_knowledge_built_from_project_artifacts(self, make_ctx, project_id, sample_world, sample_characters):
        from workflow.nodes import knowledge_loader
        state = _state(project_id=project_id, world_setting=sample_world, characters=sample_characters)
        update = await knowledge_loader(state, make_ctx())
        assert "灵气复苏" in update.knowledge_context
        assert "林澈" in update.knowledge_context


class TestSuspensionSteps:
    @pytest.mark.asyncio
    async def test_director_confirm_suspends_with_explanation(self, make_ctx):
        from workflow.engine import Suspend
        from workflow.nodes import CONFIRM_INSTRUCTION, director_confirm
        result = await director_confirm(_state(agent_output="我将为你构建世界观"), make_ctx())
        assert isinstance(result, Suspend)
        assert result.payload == "我将为你构建世界观"
        assert result.instruction == CONFIRM_INSTRUCTION
        assert result.update is None

    @pytest.mark.asyncio
    async def test_human_review_suspends_with_output(self, make_ctx):
        from workflow.nodes import REVIEW_INSTRUCTION, human_review
        result = await human_review(_state(agent_output="世界观设定已生成。"), make_ctx())
        assert result.payload == "世界观设定已生成。"
        assert result.instruction == REVIEW_INSTRUCTION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("feedback", ["确认", "  确认  ", "", None])
    async def test_confirmation_keeps_input(self, make_ctx, feedback):
        from workflow.nodes import director_confirm_apply
        update = await director_confirm_apply(_state(user_input="原始"), make_ctx(resume_input=feedback))
        assert "user_input" not in update.model_fields_set

    @pytest.mark.asyncio
    async def test_other_feedback_replaces_input(self, make_ctx):
        from workflow.nodes import human_review_apply
        update = await human_review_apply(_state(user_input="原始"), make_ctx(resume_input="主角改成女性"))
        assert update.user_input == "主角改成女性"


class TestWritePrepare:
    @pytest.mark.asyncio
    async def test_no_outline(self, make_ctx):
        from workflow.nodes import NO_OUTLINE_REPLY, write_prepare
        from workflow.state import PrepareRejected
        update = await write_prepare(_state(route_target=RouteTarget.WRITE), make_ctx())
        assert isinstance(update, PrepareRejected)
        assert update.route_target == RouteTarget.DIRECT
        assert update.agent_output == NO_OUTLINE_REPLY

    @pytest.mark.asyncio
    async def test_default_progress_selects_first_chapter(self, make_ctx, sample_outline):
        from workflow.nodes import write_prepare
        from workflow.state import ChapterPrepared
        state = _state(outline=sample_outline, draft="旧", critique="旧", revision_count=3, review_score=50)
        update = await write_prepare(state, make_ctx())
        assert isinstance(update, ChapterPrepared)
        assert update.current_chapter.id == "ch_1"
        assert update.changes()["revision_count"] == 0
        assert update.changes()["draft"] == ""

    @pytest.mark.asyncio
    async def test_stored_chapter_id_wins_over_indices(self, make_ctx, db, project_id, sample_outline):
        from models.project import ProjectProgress
        from workflow.nodes import write_prepare
        db.update_progress(project_id, ProjectProgress(volume_index=0, chapter_index=0, chapter_id="ch_3"))
        update = await write_prepare(_state(project_id=project_id, outline=sample_outline), make_ctx())
        assert update.current_chapter.id == "ch_3"

    @pytest.mark.asyncio
    async def test_stale_chapter_id_falls_back_to_indices(self, make_ctx, db, project_id, sample_outline):
        from models.project import ProjectProgress
        from workflow.nodes import write_prepare
        db.update_progress(project_id, ProjectProgress(volume_index=0, chapter_index=1, chapter_id="deleted"))
        update = await write_prepare(_state(project_id=project_id, outline=sample_outline), make_ctx())
        assert update.current_chapter.id == "ch_2"

    @pytest.mark.asyncio
    async def test_progress_past_end(self, make_ctx, db, project_id, sample_outline):
        from models.project import ProjectProgress
        from workflow.nodes import NO_CHAPTER_REPLY, write_prepare
        from workflow.state import PrepareRejected
        db.update_progress(project_id, ProjectProgress(volume_index=1, chapter_index=1))
        update = await write_prepare(_state(project_id=project_id, outline=sample_outline), make_ctx())
        assert isinstance(update, PrepareRejected)
        assert update.agent_output == NO_CHAPTER_REPLY


class TestKnowledgeRetriever:
    @pytest.mark.asyncio
    async def test_queries_with_chapter_summary(self, make_ctx, fake_retriever, sample_outline):
        from workflow.nodes import knowledge_retriever
        fake_retriever.retrieve.return_value = "1. [觉醒 / 雨夜] (相关度: 90%)"
        chapter = sample_outline.find_chapter("ch_1")
        state = _state(project_id="p", outline=sample_outline, current_chapter=chapter, user_input="写")
        update = await knowledge_retriever(state, make_ctx())
        fake_retriever.retrieve.assert_called_once_with("p", sample_outline, "林澈在雨夜觉醒灵脉")
        assert update.knowledge_retrieved.startswith("1. [觉醒 / 雨夜]")

    @pytest.mark.asyncio
    async def test_backend_failure_degrades_to_empty(self, make_ctx, fake_retriever):
        from config.exceptions import RetrievalError
        from workflow.nodes import knowledge_retriever
        fake_retriever.retrieve.side_effect = RetrievalError("chroma down")
        update = await knowledge_retriever(_state(user_input="写"), make_ctx())
        assert update.knowledge_retrieved == ""

    @pytest.mark.asyncio
    async def test_previous_chapter_ending_appended(self, make_ctx, db, project_id, sample_outline):
        from workflow.nodes import knowledge_retriever
        db.save_chapter_content(project_id, "ch_1", "很长的正文。" * 10 + "雨停了。")
        chapter = sample_outline.find_chapter("ch_2")
        state = _state(project_id=project_id, outline=sample_outline, current_chapter=chapter)
        update = await knowledge_retriever(state, make_ctx())
        assert "上一章结尾:" in update.knowledge_retrieved
        assert update.knowledge_retrieved.endswith("雨停了。")


class TestWriterEditor:
    @pytest.mark.asyncio
    async def test_writer_increments_revision_and_streams(self, make_ctx, scripted_llm, sample_outline):
        from workflow.nodes import writer
        llm = scripted_llm({"m-writing": ["雨夜，雷声滚过青岚市。"]})
        tokens = []
        chapter = sample_outline.find_chapter("ch_1")
        update = await writer(_state(current_chapter=chapter, revision_count=1), make_ctx(llm=llm, tokens=tokens))
        assert update.revision_count == 2
        assert update.draft == "雨夜，雷声滚过青岚市。"
        assert "".join(tokens) == update.draft
        assert "第 2 版" in update.agent_output

    @pytest.mark.asyncio
    async def test_writer_includes_critique_on_revision(self, make_ctx, scripted_llm):
        from workflow.nodes import writer
        llm = scripted_llm({"m-writing": ["新稿"]})
        state = _state(draft="旧稿", critique='["节奏拖沓"]', revision_count=1)
        await writer(state, make_ctx(llm=llm))
        prompt = llm.calls[0]["system_prompt"]
        assert "节奏拖沓" in prompt
        assert "旧稿" in prompt

    @pytest.mark.asyncio
    async def test_editor_revise_sets_critique(self, make_ctx, scripted_llm, replies):
        from workflow.nodes import editor
        llm = scripted_llm({"m-editing": [replies.review(40, ["开头太慢"])]})
        update = await editor(_state(draft="草稿", revision_count=1), make_ctx(llm=llm))
        assert "开头太慢" in update.critique
        assert update.review_score == 40

    @pytest.mark.asyncio
    async def test_editor_pass_clears_critique(self, make_ctx, scripted_llm, replies):
        from workflow.nodes import editor
        llm = scripted_llm({"m-editing": [replies.review(85)]})
        update = await editor(_state(draft="草稿", critique="[]", revision_count=2), make_ctx(llm=llm))
        assert update.critique == ""
        assert update.review_score == 85


class TestSaveToStore:
    @pytest.mark.asyncio
    async def test_no_project_is_a_noop(self, make_ctx, sample_world, sample_outline):
        from workflow.graph import WorkflowResources
        from workflow.nodes import save_to_store
        ctx = make_ctx()
        spy_db = MagicMock()
        ctx.resources = WorkflowResources(settings=ctx.resources.settings, db=spy_db, retriever=MagicMock())
        state = _state(world_setting=sample_world, outline=sample_outline, draft="稿", agent_output="完成")
        assert await save_to_store(state, ctx) is None
        assert spy_db.method_calls == []

    @pytest.mark.asyncio
    async def test_world_only(self, make_ctx, db):
        from models.project import ProjectMetadata
        from models.world import WorldSetting
        from workflow.nodes import SAVED_SUFFIX, save_to_store
        project = db.create_project(ProjectMetadata(title="空项目"))
        state = _state(project_id=project.id, world_setting=WorldSetting(background="新世界"), agent_output="世界观设定已生成。")
        update = await save_to_store(state, make_ctx())
        assert update.agent_output == "世界观设定已生成。" + SAVED_SUFFIX
        assert db.get_world_setting(project.id).background == "新世界"
        assert db.get_characters(project.id) == []
        assert db.get_outline(project.id) is None

    @pytest.mark.asyncio
    async def test_passed_draft_marks_done_and_advances(self, make_ctx, db, project_id, sample_outline, fake_retriever):
        from workflow.nodes import save_to_store
        chapter = sample_outline.find_chapter("ch_1")
        state = _state(
            project_id=project_id, route_target=RouteTarget.WRITE, outline=sample_outline,
            current_chapter=chapter, draft="正文", agent_output="ok",
        )
        update = await save_to_store(state, make_ctx())

        assert db.get_chapter_content(project_id, "ch_1") == "正文"
        assert db.get_outline(project_id).find_chapter("ch_1").status == ChapterStatus.DONE
        assert update.outline.find_chapter("ch_1").status == ChapterStatus.DONE
        assert update.current_chapter.status == ChapterStatus.DONE
        progress = db.get_project(project_id).current_progress
        assert (progress.volume_index, progress.chapter_index, progress.chapter_id) == (0, 1, "ch_2")
        fake_retriever.reindex.assert_called_once()

    @pytest.mark.asyncio
    async def test_escalated_draft_marked_reviewing(self, make_ctx, db, project_id, sample_outline):
        from workflow.nodes import save_to_store
        chapter = sample_outline.find_chapter("ch_1")
        state = _state(
            project_id=project_id, route_target=RouteTarget.WRITE, outline=sample_outline, current_chapter=chapter,
            draft="正文", critique='["问题"]', agent_output="ok",
        )
        await save_to_store(state, make_ctx())
        assert db.get_outline(project_id).find_chapter("ch_1").status == ChapterStatus.REVIEWING
        assert db.get_project(project_id).current_progress.chapter_id is None
        assert db.get_project(project_id).current_progress.chapter_index == 0

    @pytest.mark.asyncio
    async def test_progress_crosses_volume_boundary(self, make_ctx, db, project_id, sample_outline):
        from workflow.nodes import save_to_store
        chapter = sample_outline.find_chapter("ch_2")
        state = _state(
            project_id=project_id, route_target=RouteTarget.WRITE, outline=sample_outline,
            current_chapter=chapter, draft="正文",
        )
        await save_to_store(state, make_ctx())
        progress = db.get_project(project_id).current_progress
        assert (progress.volume_index, progress.chapter_index, progress.chapter_id) == (1, 0, "ch_3")

    @pytest.mark.asyncio
    async def test_last_chapter_moves_past_end(self, make_ctx, db, project_id, sample_outline):
        from workflow.nodes import save_to_store
        chapter = sample_outline.find_chapter("ch_3")
        state = _state(
            project_id=project_id, route_target=RouteTarget.WRITE, outline=sample_outline,
            current_chapter=chapter, draft="终章",
        )
        await save_to_store(state, make_ctx())
        progress = db.get_project(project_id).current_progress
        assert (progress.volume_index, progress.chapter_index, progress.chapter_id) == (1, 1, None)

    @pytest.mark.asyncio
    async def test_leftover_draft_ignored_on_specialist_save(self, make_ctx, db, project_id, sample_outline):
        from models.project import ProjectProgress
        from models.world import WorldSetting
        from workflow.nodes import save_to_store
        db.save_chapter_content(project_id, "ch_1", "定稿")
        db.update_progress(project_id, ProjectProgress(volume_index=1, chapter_index=0, chapter_id="ch_3"))
        state = _state(
            project_id=project_id, route_target=RouteTarget.WORLD, world_setting=WorldSetting(background="新设定"),
            outline=sample_outline, current_chapter=sample_outline.find_chapter("ch_1"), draft="旧稿",
            agent_output="世界观已更新。",
        )
        update = await save_to_store(state, make_ctx())

        assert db.get_world_setting(project_id).background == "新设定"
        assert db.get_chapter_content(project_id, "ch_1") == "定稿"
        assert db.get_outline(project_id).find_chapter("ch_1").status == ChapterStatus.PLANNED
        assert db.get_project(project_id).current_progress.chapter_id == "ch_3"
        assert update.current_chapter is None

    @pytest.mark.asyncio
    async def test_reindex_failure_is_not_fatal(self, make_ctx, project_id, sample_outline, fake_retriever):
        from config.exceptions import RetrievalError
        from workflow.nodes import SAVED_SUFFIX, save_to_store
        fake_retriever.reindex.side_effect = RetrievalError("chroma down")
        update = await save_to_store(_state(project_id=project_id, outline=sample_outline), make_ctx())
        assert update.agent_output.endswith(SAVED_SUFFIX)


class TestDirectResponse:
    @pytest.mark.asyncio
    async def test_returns_nothing(self, make_ctx):
        from workflow.nodes import direct_response
        assert await direct_response(_state(agent_output="你好"), make_ctx()) is None

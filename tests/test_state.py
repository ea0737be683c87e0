"""Tests for workflow state reducers and typed step updates."""

import pytest


class TestReducers:
    def test_messages_field_appends(self):
        from models.message import ChatMessage
        from workflow.state import FeedbackReceived, NovelState, apply_update

        state = NovelState(messages=[ChatMessage(content="一")])
        new = apply_update(state, FeedbackReceived(messages=[ChatMessage(content="二")]))
        assert [m.content for m in new.messages] == ["一", "二"]

    def test_plain_fields_replace(self):
        from workflow.state import MemoryLoaded, NovelState, apply_update

        state = NovelState(memory_summary="旧")
        new = apply_update(state, MemoryLoaded(memory_summary="新"))
        assert new.memory_summary == "新"

    def test_apply_does_not_mutate_input(self):
        from workflow.state import MemoryLoaded, NovelState, apply_update

        state = NovelState(memory_summary="旧")
        apply_update(state, MemoryLoaded(memory_summary="新"))
        assert state.memory_summary == "旧"

    def test_only_explicit_fields_merged(self):
        from workflow.state import NovelState, WorldUpdate, apply_update

        state = NovelState(agent_output="x")
        new = apply_update(state, WorldUpdate(agent_output="世界观解析失败"))
        # world_setting was not set on the update, so it stays untouched
        assert new.world_setting is None
        assert new.agent_output == "世界观解析失败"

    def test_empty_input_revision_changes_nothing(self):
        from workflow.state import InputRevised, NovelState, apply_update

        state = NovelState(user_input="写第一章")
        assert apply_update(state, InputRevised()) is state

    def test_reducer_lookup(self):
        from workflow.state import APPEND, reducer_for

        assert reducer_for("messages") is APPEND
        assert reducer_for("draft") is None


class TestChapterPrepared:
    def test_resets_chapter_scoped_fields(self):
        from models.outline import ChapterNode
        from workflow.state import ChapterPrepared, NovelState, apply_update

        state = NovelState(draft="旧稿", critique="[]", revision_count=3, review_score=40)
        update = ChapterPrepared(
            current_chapter=ChapterNode(id="ch_2"), revision_count=0, draft="", critique="", review_score=None
        )
        new = apply_update(state, update)
        assert new.current_chapter.id == "ch_2"
        assert (new.draft, new.critique, new.revision_count, new.review_score) == ("", "", 0, None)

    def test_reset_values_are_enforced(self):
        from pydantic import ValidationError
        from models.outline import ChapterNode
        from workflow.state import ChapterPrepared

        with pytest.raises(ValidationError):
            ChapterPrepared(
                current_chapter=ChapterNode(id="ch_1"), revision_count=2, draft="", critique="", review_score=None
            )


class TestUpdateVariants:
    def test_unknown_field_rejected(self):
        from pydantic import ValidationError
        from workflow.state import MemoryLoaded

        with pytest.raises(ValidationError):
            MemoryLoaded(memory_summary="x", draft="not allowed")

    def test_draft_update_requires_positive_revision(self):
        from pydantic import ValidationError
        from workflow.state import DraftUpdate

        with pytest.raises(ValidationError):
            DraftUpdate(draft="d", revision_count=0, agent_output="")

    def test_parse_update_selects_variant_by_kind(self):
        from workflow.state import RouteDecided, parse_update

        update = parse_update({"kind": "route", "route_target": "outline", "agent_output": "规划大纲"})
        assert isinstance(update, RouteDecided)
        assert update.route_target.value == "outline"

    def test_changes_excludes_kind_and_unset(self):
        from workflow.state import WorldUpdate

        assert WorldUpdate(agent_output="ok").changes() == {"agent_output": "ok"}


class TestStateRoundTrip:
    def test_repersisting_state_is_stable(self, sample_world, sample_outline):
        from models.message import ChatMessage
        from workflow.checkpoint import decode_state, encode_state
        from workflow.state import NovelState

        state = NovelState(
            thread_id="t1",
            messages=[ChatMessage(content="你好")],
            world_setting=sample_world,
            outline=sample_outline,
        )
        once = decode_state(*encode_state(state))
        twice = decode_state(*encode_state(once))
        assert once == state
        assert twice == once
        assert len(twice.messages) == 1

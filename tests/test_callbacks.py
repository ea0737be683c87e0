"""Tests for event rendering callbacks and event serialization."""

import io
import logging

import pytest
from rich.console import Console


@pytest.fixture
def rich_callback():
    from workflow.callbacks import RichEventCallback
    buffer = io.StringIO()
    console = Console(file=buffer, width=100, color_system=None)
    return RichEventCallback(console), buffer


class TestDispatch:
    def test_routes_each_event_type(self):
        from unittest.mock import MagicMock
        from workflow.callbacks import dispatch
        from workflow.events import DoneEvent, ErrorEvent, InterruptEvent, StepEvent, ThreadEvent, TokenEvent

        cb = MagicMock()
        step = StepEvent(step="director", route_target="world")
        interrupt = InterruptEvent(pending_step="a", suspended_at="b", instruction="i", payload="p")
        error = ErrorEvent(message="boom")
        done = DoneEvent(agent_output="ok")
        for event in (ThreadEvent(thread_id="t1"), TokenEvent(step="writer", content="字"),
                      step, interrupt, error, done):
            dispatch(cb, event)

        cb.on_thread.assert_called_once_with("t1")
        cb.on_token.assert_called_once_with("writer", "字")
        cb.on_node_exit.assert_called_once_with(step)
        cb.on_interrupt.assert_called_once_with(interrupt)
        cb.on_error.assert_called_once_with(error)
        cb.on_workflow_complete.assert_called_once_with(done)

    def test_callbacks_satisfy_protocol(self):
        from workflow.callbacks import EventCallback, LoggingCallback, RichEventCallback
        assert isinstance(LoggingCallback(), EventCallback)
        assert isinstance(RichEventCallback(Console(file=io.StringIO())), EventCallback)


class TestLoggingCallback:
    def test_logs_interrupt_and_error(self, caplog):
        from workflow.callbacks import LoggingCallback, dispatch
        from workflow.events import ErrorEvent, InterruptEvent
        cb = LoggingCallback()
        with caplog.at_level(logging.INFO, logger="workflow.callbacks"):
            dispatch(cb, InterruptEvent(pending_step="human_review_apply", suspended_at="human_review",
                                        instruction="i", payload="p"))
            dispatch(cb, ErrorEvent(message="boom", step="writer"))
        assert "human_review_apply" in caplog.text
        assert "Workflow error in 'writer': boom" in caplog.text


class TestRichEventCallback:
    def test_step_labels_and_route(self, rich_callback):
        from workflow.events import StepEvent
        cb, buffer = rich_callback
        cb.on_node_exit(StepEvent(step="director", route_target="write"))
        cb.on_node_exit(StepEvent(step="custom_step"))
        out = buffer.getvalue()
        assert "总导演分析意图 → write" in out
        assert "custom_step" in out

    def test_tokens_streamed_then_line_closed(self, rich_callback):
        from workflow.events import StepEvent
        cb, buffer = rich_callback
        cb.on_token("writer", "雨夜，")
        cb.on_token("writer", "雷声。")
        cb.on_node_exit(StepEvent(step="writer"))
        assert "雨夜，雷声。\n" in buffer.getvalue()

    def test_tokens_hidden(self):
        from workflow.callbacks import RichEventCallback
        buffer = io.StringIO()
        cb = RichEventCallback(Console(file=buffer), show_tokens=False)
        cb.on_token("writer", "隐藏")
        assert buffer.getvalue() == ""

    def test_interrupt_payload_not_repeated(self, rich_callback):
        from workflow.events import DoneEvent, InterruptEvent
        cb, buffer = rich_callback
        cb.on_workflow_complete(DoneEvent(agent_output="方案内容"))
        cb.on_interrupt(InterruptEvent(pending_step="a", suspended_at="b", instruction="请确认", payload="方案内容"))
        out = buffer.getvalue()
        assert out.count("方案内容") == 1
        assert "请确认" in out

    def test_interrupt_shows_new_payload(self, rich_callback):
        from workflow.events import InterruptEvent
        cb, buffer = rich_callback
        cb.on_interrupt(InterruptEvent(pending_step="a", suspended_at="b", instruction="请审核", payload="新内容"))
        assert "待确认" in buffer.getvalue()
        assert "新内容" in buffer.getvalue()

    def test_thread_and_error(self, rich_callback):
        from workflow.events import ErrorEvent
        cb, buffer = rich_callback
        cb.on_thread("t-123")
        cb.on_error(ErrorEvent(message="超时", step="writer"))
        assert cb.thread_id == "t-123"
        assert "错误 (writer): 超时" in buffer.getvalue()


class TestEventSerialization:
    def test_discriminated_union(self):
        from pydantic import TypeAdapter
        from workflow.events import StepEvent, WorkflowEvent
        event = TypeAdapter(WorkflowEvent).validate_python({"type": "node", "step": "writer"})
        assert isinstance(event, StepEvent)

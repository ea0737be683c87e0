"""Recent-conversation summary fed to every generation step."""

from models.enums import MessageRole
from models.message import ChatMessage
from tools.text_utils import truncate_tail

TRUNCATION_MARKER = "\n...(近期对话已截断)"

_ROLE_LABELS = {
    MessageRole.USER: "用户",
    MessageRole.ASSISTANT: "助手",
    MessageRole.SYSTEM: "系统",
}


def summarize_recent(
    messages: list[ChatMessage],
    max_messages: int = 15,
    max_chars: int = 2000,
) -> str:
    """Render the last ``max_messages`` messages as ``角色: 内容`` lines.

    The result is cut to ``max_chars`` with a truncation marker appended.
    """
    recent = messages[-max_messages:] if max_messages else []
    if not recent:
        return ""
    text = "\n".join(f"{_ROLE_LABELS.get(m.role, '系统')}: {m.content}" for m in recent)
    return truncate_tail(text, max_chars, TRUNCATION_MARKER)

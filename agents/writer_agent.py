"""Writer Agent: drafts chapter prose from the outline and prior critique."""

import logging
from typing import Callable, Optional

from agents.base_agent import BaseAgent
from models.character import Character
from models.outline import ChapterNode
from models.world import WorldSetting
from tools.text_utils import count_total_chars

logger = logging.getLogger(__name__)


def _chapter_context(
    world: Optional[WorldSetting],
    characters: list[Character],
    chapter: Optional[ChapterNode],
) -> str:
    parts = []
    if world is not None:
        parts.append(f"【世界观】\n{world.background}")
        if world.power_systems:
            ps = world.power_systems[0]
            parts.append(f"【力量体系】{ps.name}: {' -> '.join(ps.levels)}")
    if characters:
        cast = "\n".join(
            f"- {c.name}({c.role.value}): {'/'.join(c.personality.traits)}，"
            f"说话风格: {c.personality.speaking_style}"
            for c in characters
        )
        parts.append(f"【登场角色】\n{cast}")
    if chapter is not None:
        parts.append(f"【本章信息】\n标题: {chapter.title}\n摘要: {chapter.summary}")
        if chapter.beats:
            beats = "\n".join(
                f"  {i}. [{b.type}] {b.summary} (情感: {b.emotional_tone})"
                for i, b in enumerate(chapter.beats, start=1)
            )
            parts.append(f"【场景节拍】\n{beats}")
    return "\n\n".join(parts)


def _labelled(label: str, body: str) -> str:
    return f"\n\n【{label}】\n{body}" if body else ""


class WriterAgent(BaseAgent):
    """Generates chapter drafts; streams fragments through ``on_token``."""

    prompt_name = "writer"

    async def write(
        self,
        user_input: str,
        revision_number: int,
        chapter: Optional[ChapterNode] = None,
        world: Optional[WorldSetting] = None,
        characters: Optional[list[Character]] = None,
        critique: str = "",
        previous_draft: str = "",
        memory_summary: str = "",
        knowledge_context: str = "",
        knowledge_retrieved: str = "",
        on_token: Optional[Callable[[str], None]] = None,
    ) -> dict:
        """Write one draft of the current chapter.

        Args:
            user_input: The author's latest instruction.
            revision_number: 1-based pass number, shown to the author.
            critique: Editor issues from the previous pass ("" on the first pass).
            previous_draft: Draft the critique refers to.

        Returns:
            Dict with keys: draft, agent_output.
        """
        revision_block = ""
        if critique:
            revision_block = (
                f"\n\n【审校反馈 - 请根据以下意见修改】\n{critique}"
                f"\n\n【上一版草稿】\n{previous_draft}"
            )
        system_prompt = self._system_prompt(
            "输出要求",
            "\n\n" + _chapter_context(world, characters or [], chapter),
            _labelled("项目知识库", knowledge_context),
            _labelled("剧情知识检索", knowledge_retrieved),
            _labelled("近期对话摘要", memory_summary),
            revision_block,
        )

        title = chapter.title if chapter else "?"
        logger.info("Writing chapter '%s' (pass %d)...", title, revision_number)

        draft = await self.llm.chat(
            system_prompt=system_prompt,
            user_prompt=user_input,
            model=self.settings.llm_model_writing,
            on_token=on_token,
        )
        size = count_total_chars(draft)
        logger.info("Draft pass %d: %d chars", revision_number, size)
        return {
            "draft": draft,
            "agent_output": f"正文草稿已生成（第 {revision_number} 版，约 {size} 字）。",
        }

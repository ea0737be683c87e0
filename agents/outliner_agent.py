"""Outliner Agent: plans volumes, chapters and scene beats."""

import logging
from typing import Optional

from pydantic import ValidationError

from agents.base_agent import BaseAgent, context_block
from models.character import Character
from models.outline import OutlineTree
from models.world import WorldSetting
from tools.json_parsing import try_parse_json

logger = logging.getLogger(__name__)


class OutlinerAgent(BaseAgent):
    prompt_name = "outliner"

    async def plan(
        self,
        user_input: str,
        existing: Optional[OutlineTree] = None,
        world: Optional[WorldSetting] = None,
        characters: Optional[list[Character]] = None,
        memory_summary: str = "",
        knowledge_context: str = "",
    ) -> dict:
        """Returns a dict with outline (None on decode failure) and agent_output."""
        world_text = f"{world.background}\n核心冲突: {world.core_conflict}" if world else ""
        cast_text = "\n".join(
            f"- {c.name}({c.role.value}): {c.personality.core_drive}" for c in characters or []
        )
        system_prompt = self._system_prompt(
            "输出格式",
            context_block("已有大纲", existing.model_dump_json(by_alias=True, indent=2) if existing else ""),
            context_block("世界观背景", world_text),
            context_block("角色列表", cast_text),
            self._shared_context(knowledge_context, memory_summary),
        )
        raw = await self.llm.chat(
            system_prompt=system_prompt,
            user_prompt=user_input,
            model=self.settings.llm_model_outline,
        )
        parsed = try_parse_json(raw)
        payload = (parsed or {}).get("outline")
        if not isinstance(payload, dict):
            logger.warning("Outliner returned no decodable outline")
            return {"outline": None, "agent_output": raw.strip() or "大纲生成时遇到了问题。"}
        try:
            outline = OutlineTree.model_validate(payload)
        except ValidationError as e:
            logger.warning("Outline failed validation: %s", e)
            return {"outline": None, "agent_output": raw.strip()}
        logger.info("Outline has %d volumes / %d chapters", len(outline.volumes), outline.chapter_count())
        return {"outline": outline, "agent_output": parsed.get("agentOutput") or "大纲已生成/更新。"}

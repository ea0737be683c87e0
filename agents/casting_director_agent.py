"""Casting Director Agent: creates characters and merges them into the roster."""

import json
import logging
from typing import Optional

from pydantic import ValidationError

from agents.base_agent import BaseAgent, context_block
from models.character import Character, merge_roster
from models.world import WorldSetting
from tools.json_parsing import try_parse_json

logger = logging.getLogger(__name__)


class CastingDirectorAgent(BaseAgent):
    prompt_name = "casting_director"

    async def cast(
        self,
        user_input: str,
        existing: Optional[list[Character]] = None,
        world: Optional[WorldSetting] = None,
        memory_summary: str = "",
        knowledge_context: str = "",
    ) -> dict:
        """Generate characters.

        Returns:
            Dict with keys: characters (merged roster, or None on decode
            failure) and agent_output.
        """
        existing = existing or []
        roster_json = json.dumps(
            [c.model_dump(mode="json", by_alias=True) for c in existing], ensure_ascii=False, indent=2
        ) if existing else ""
        system_prompt = self._system_prompt(
            "输出格式",
            context_block("已有角色", roster_json),
            context_block("世界观背景", world.background if world else ""),
            self._shared_context(knowledge_context, memory_summary),
        )
        raw = await self.llm.chat(
            system_prompt=system_prompt,
            user_prompt=user_input,
            model=self.settings.llm_model_casting,
        )
        parsed = try_parse_json(raw)
        items = (parsed or {}).get("characters")
        if not isinstance(items, list):
            logger.warning("Casting director returned no decodable roster")
            return {"characters": None, "agent_output": raw.strip() or "角色生成时遇到了问题。"}
        try:
            incoming = [Character.model_validate(c) for c in items if isinstance(c, dict)]
        except ValidationError as e:
            logger.warning("Character cards failed validation: %s", e)
            return {"characters": None, "agent_output": raw.strip()}
        merged = merge_roster(existing, incoming)
        logger.info("Roster now has %d characters (%d generated)", len(merged), len(incoming))
        return {"characters": merged, "agent_output": parsed.get("agentOutput") or "角色已创建/更新。"}

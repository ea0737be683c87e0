"""World Builder Agent: generates or amends the world setting."""

import logging
from typing import Optional

from pydantic import ValidationError

from agents.base_agent import BaseAgent, context_block
from models.world import WorldSetting
from tools.json_parsing import try_parse_json

logger = logging.getLogger(__name__)


class WorldBuilderAgent(BaseAgent):
    prompt_name = "world_builder"

    async def build(
        self,
        user_input: str,
        existing: Optional[WorldSetting] = None,
        memory_summary: str = "",
        knowledge_context: str = "",
    ) -> dict:
        """Returns a dict with world_setting (None on decode failure) and agent_output."""
        existing_block = context_block(
            "已有世界观", existing.model_dump_json(by_alias=True, indent=2) if existing else ""
        )
        system_prompt = self._system_prompt(
            "输出格式", existing_block, self._shared_context(knowledge_context, memory_summary)
        )
        raw = await self.llm.chat(
            system_prompt=system_prompt,
            user_prompt=user_input,
            model=self.settings.llm_model_world,
        )
        parsed = try_parse_json(raw)
        payload = (parsed or {}).get("worldSetting") or (parsed or {}).get("world_setting")
        if not isinstance(payload, dict):
            logger.warning("World builder returned no decodable setting")
            return {"world_setting": None, "agent_output": raw.strip() or "世界观生成时遇到了问题。"}
        try:
            world = WorldSetting.model_validate(payload)
        except ValidationError as e:
            logger.warning("World setting failed validation: %s", e)
            return {"world_setting": None, "agent_output": raw.strip()}
        return {"world_setting": world, "agent_output": parsed.get("agentOutput") or "世界观设定已生成。"}

"""Director Agent: classifies each user message into a workflow route."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError, LLMTimeoutError
from models.character import Character
from models.enums import RouteTarget
from models.outline import OutlineTree
from models.world import WorldSetting
from tools.json_parsing import try_parse_json

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "我来帮你分析一下..."


def project_overview(
    world: Optional[WorldSetting],
    characters: list[Character],
    outline: Optional[OutlineTree],
) -> str:
    """Compact project summary used for routing."""
    parts = []
    if world is not None:
        parts.append(f"[当前世界观]: {world.one_liner(120)}")
    if characters:
        names = ", ".join(f"{c.name}({c.role.value})" for c in characters)
        parts.append(f"[已有角色]: {names}")
    if outline is not None:
        parts.append(f"[大纲状态]: {len(outline.volumes)}卷, {outline.chapter_count()}章")
    if not parts:
        return "\n\n当前项目为空，尚未创建任何设定。"
    return "\n\n当前项目上下文:\n" + "\n".join(parts)


class DirectorAgent(BaseAgent):
    """Routes the conversation; never raises on bad output or backend errors."""

    prompt_name = "director"

    async def classify(
        self,
        user_input: str,
        world: Optional[WorldSetting] = None,
        characters: Optional[list[Character]] = None,
        outline: Optional[OutlineTree] = None,
        memory_summary: str = "",
        knowledge_context: str = "",
    ) -> dict:
        """Pick a route for the latest user input.

        Returns:
            Dict with keys: route_target (RouteTarget), agent_output (str).

        Raises:
            LLMTimeoutError: If the classification call times out.
        """
        system_prompt = self._system_prompt(
            "路由指令",
            project_overview(world, characters or [], outline),
            self._shared_context(knowledge_context, memory_summary),
        )
        try:
            raw = await self.llm.chat(
                system_prompt=system_prompt,
                user_prompt=user_input,
                model=self.settings.llm_model_director,
            )
        except LLMTimeoutError:
            raise
        except LLMError as e:
            logger.warning("Director classification failed, answering directly: %s", e)
            return {"route_target": RouteTarget.DIRECT, "agent_output": FALLBACK_REPLY}

        parsed = try_parse_json(raw)
        if parsed is None or not ({"routeTarget", "route_target", "agentOutput"} & parsed.keys()):
            logger.info("Director output was not a routing payload; replying with raw text")
            return {"route_target": RouteTarget.DIRECT, "agent_output": raw.strip() or FALLBACK_REPLY}

        route = RouteTarget.parse(parsed.get("routeTarget") or parsed.get("route_target"))
        reply = parsed.get("agentOutput") or parsed.get("reasoning") or FALLBACK_REPLY
        logger.info("Director routed to %s", route.value)
        return {"route_target": route, "agent_output": str(reply)}

"""Editor Agent: scores a draft against the rubric and itemizes issues."""

import json
import logging
from typing import Optional

from agents.base_agent import BaseAgent
from models.character import Character
from models.outline import ChapterNode
from tools.json_parsing import try_parse_json

logger = logging.getLogger(__name__)

UNPARSED_REVIEW = "审查完成，草稿质量达标。"


def _score(value) -> Optional[float]:
    try:
        return max(0.0, min(100.0, float(value)))
    except (TypeError, ValueError):
        return None


class EditorAgent(BaseAgent):
    """Reviews drafts. The verdict is decided here, not by the model's label."""

    prompt_name = "editor"

    async def review(
        self,
        draft: str,
        chapter: Optional[ChapterNode] = None,
        characters: Optional[list[Character]] = None,
        memory_summary: str = "",
        knowledge_context: str = "",
    ) -> dict:
        """Review a draft.

        A score at or above ``settings.editor_pass_score`` passes. Without a
        usable score the model's PASS/REVISE status decides. Output that
        cannot be decoded passes, so a broken review never blocks a chapter.

        Returns:
            Dict with keys: passed, score, issues, critique, agent_output.
            ``critique`` is "" when passed, else the JSON issue list.
        """
        ooc = "\n".join(
            f"- {c.name}: {'/'.join(c.personality.traits)}, 恐惧: {'/'.join(c.personality.fears)}"
            for c in characters or []
        )
        system_prompt = self._system_prompt(
            "审查标准",
            f"\n\n角色设定（用于 OOC 检查）:\n{ooc}" if ooc else "",
            f"\n\n本章大纲:\n{chapter.summary}" if chapter else "",
            self._shared_context(knowledge_context, memory_summary),
        )
        raw = await self.llm.chat(
            system_prompt=system_prompt,
            user_prompt=f"请审查以下草稿:\n\n{draft}",
            model=self.settings.llm_model_editing,
        )

        parsed = try_parse_json(raw)
        if parsed is None:
            logger.warning("Editor output was not JSON; treating draft as approved")
            return {"passed": True, "score": None, "issues": [], "critique": "", "agent_output": UNPARSED_REVIEW}

        score = _score(parsed.get("score"))
        status = str(parsed.get("status", "")).upper()
        if score is not None:
            passed = score >= self.settings.editor_pass_score
        else:
            passed = status != "REVISE"
        issues = parsed.get("issues") or []
        if not isinstance(issues, list):
            issues = [issues]

        critique = "" if passed else json.dumps(issues, ensure_ascii=False, indent=2)
        verdict = "PASS" if passed else "REVISE"
        score_text = f"{score:g}" if score is not None else "?"
        logger.info("Editor verdict: %s (score=%s, issues=%d)", verdict, score_text, len(issues))
        return {
            "passed": passed,
            "score": score,
            "issues": issues,
            "critique": critique,
            "agent_output": parsed.get("agentOutput") or f"审查完成：{verdict}（{score_text}分）",
        }

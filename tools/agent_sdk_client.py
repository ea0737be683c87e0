"""Claude Agent SDK wrapper used by every generation step."""

import asyncio
import logging
import os
from typing import Callable, Optional

from claude_agent_sdk import (
    query,
    ClaudeAgentOptions,
    ResultMessage,
    AssistantMessage,
)
from claude_agent_sdk.types import StreamEvent

from config.settings import Settings
from config.exceptions import LLMError, LLMTimeoutError
from tools.json_parsing import parse_json_response

logger = logging.getLogger(__name__)

# The SDK refuses to start when launched from inside a Claude Code session.
os.environ.pop("CLAUDECODE", None)


def _delta_text(event: dict) -> str:
    """Pull the text fragment out of a raw ``content_block_delta`` stream event."""
    if event.get("type") != "content_block_delta":
        return ""
    delta = event.get("delta") or {}
    if delta.get("type") != "text_delta":
        return ""
    return delta.get("text") or ""


class AgentSDKClient:
    """Claude Agent SDK wrapper.

    Uses claude_agent_sdk.query() for all generation calls. Authentication
    is handled by the Claude Code CLI. Each call is bounded by
    ``settings.generation_timeout``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.total_calls = 0

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        on_event: Optional[Callable[[dict], None]] = None,
        on_token: Optional[Callable[[str], None]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Send a request and return the text result.

        Args:
            system_prompt: System message guiding the model's behavior.
            user_prompt: User message content.
            model: Model name override. Defaults to the writing model.
            on_event: Optional callback fired with progress events:
                      {"type": "thinking", "text": str}
                      {"type": "text",     "text": str}
                      {"type": "result"}
            on_token: Optional callback receiving incremental text fragments.
            timeout: Seconds before the call is abandoned. Defaults to
                     ``settings.generation_timeout``.

        Returns:
            The model's text response.

        Raises:
            LLMTimeoutError: If the call exceeds its time budget.
            LLMError: If the query fails.
        """
        model = model or self.settings.llm_model_writing
        timeout = timeout or self.settings.generation_timeout
        self.total_calls += 1

        logger.debug("AgentSDK call: model=%s, timeout=%.0fs", model, timeout)

        try:
            result_text = await asyncio.wait_for(
                self._collect(system_prompt, user_prompt, model, on_event, on_token),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("AgentSDK call timed out after %.0fs (model=%s)", timeout, model)
            raise LLMTimeoutError(timeout) from e
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"Agent SDK query failed: {e}") from e

        if not result_text:
            logger.warning("AgentSDK returned no content")

        return result_text

    async def _collect(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        on_event: Optional[Callable[[dict], None]],
        on_token: Optional[Callable[[str], None]],
    ) -> str:
        result_text = ""
        streamed: list[str] = []
        text_fired = False
        # Do NOT return/break early from inside the async for loop: query()
        # uses anyio cancel scopes and must be exhausted in the same task.
        options = ClaudeAgentOptions(
            system_prompt=system_prompt,
            model=model,
            max_turns=1,
            include_partial_messages=on_token is not None,
        )
        async for message in query(prompt=user_prompt, options=options):
            if isinstance(message, StreamEvent):
                fragment = _delta_text(message.event)
                if fragment:
                    streamed.append(fragment)
                    on_token(fragment)
            elif isinstance(message, ResultMessage):
                result_text = message.result or ""
                logger.debug(
                    "AgentSDK result: %d chars, cost=$%s",
                    len(result_text),
                    message.total_cost_usd,
                )
                if on_event:
                    on_event({"type": "result"})
            elif isinstance(message, AssistantMessage):
                for block in message.content:
                    if getattr(block, "type", None) == "thinking":
                        thinking = getattr(block, "thinking", "")
                        if thinking and on_event:
                            on_event({"type": "thinking", "text": thinking})
                        continue
                    text = getattr(block, "text", None)
                    if text:
                        if on_event and not text_fired:
                            text_fired = True
                            on_event({"type": "text", "text": text})
                        if not result_text:
                            result_text += text
        return result_text or "".join(streamed)

    async def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """Send a request and parse the response as a JSON object.

        Raises:
            LLMResponseParseError: If the response cannot be parsed as JSON.
        """
        text = await self.chat(system_prompt, user_prompt, model, timeout=timeout)
        return parse_json_response(text)

    def get_usage_summary(self) -> dict:
        """Return call count statistics."""
        return {"total_calls": self.total_calls}

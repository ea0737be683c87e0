"""Tools package: Agent SDK client, text utilities, and JSON parsing."""

from tools.agent_sdk_client import AgentSDKClient
from tools.json_parsing import parse_json_response, try_parse_json
from tools.text_utils import (
    count_chinese_chars,
    count_total_chars,
    get_chapter_ending,
    truncate_tail,
)

__all__ = [
    "AgentSDKClient",
    "parse_json_response",
    "try_parse_json",
    "count_chinese_chars",
    "count_total_chars",
    "get_chapter_ending",
    "truncate_tail",
]

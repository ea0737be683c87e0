"""Chinese text utilities: character counting and truncation."""

import re


def count_chinese_chars(text: str) -> int:
    """Count Chinese characters (CJK Unified Ideographs) in text.

    Punctuation, whitespace and Latin characters are excluded.
    """
    return len(re.findall(r"[\u4e00-\u9fff\u3400-\u4dbf]", text))


def count_total_chars(text: str) -> int:
    """Count all non-whitespace characters including punctuation."""
    return len(re.sub(r"\s", "", text))


def truncate_tail(text: str, limit: int, marker: str = "") -> str:
    """Keep the first ``limit`` characters and append ``marker`` if cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def get_chapter_ending(content: str, char_limit: int = 500) -> str:
    """Return the last ``char_limit`` characters of a draft for revision context."""
    if not content:
        return ""
    if len(content) <= char_limit:
        return content
    return content[-char_limit:]

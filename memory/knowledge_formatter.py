"""Render a project's world, roster and outline as a Markdown context block."""

from typing import Optional

from models.character import Character, resolve_relationships
from models.enums import ChapterStatus
from models.outline import OutlineTree
from models.world import WorldSetting

SECTION_SEPARATOR = "\n\n---\n\n"


def format_world(world: WorldSetting) -> str:
    lines = ["## 世界观设定", f"**背景**: {world.background}"]
    if world.core_conflict:
        lines.append(f"**核心冲突**: {world.core_conflict}")
    if world.power_systems:
        lines.append("**力量体系**:")
        for ps in world.power_systems:
            lines.append(f"- {ps.name}: {' → '.join(ps.levels)}")
            if ps.rules:
                lines.append(f"  规则: {'; '.join(ps.rules)}")
    if world.geography:
        lines.append("**地理**:")
        lines.extend(f"- {loc.name}: {loc.description}" for loc in world.geography)
    if world.concepts:
        lines.append("**核心概念**:")
        lines.extend(f"- {c.term}: {c.definition}" for c in world.concepts)
    return "\n".join(lines)


def format_characters(characters: list[Character]) -> str:
    lines = ["## 角色档案"]
    for c in characters:
        p = c.personality
        lines.append(f"### {c.name} ({c.role.value})")
        lines.append(f"- 年龄: {c.age}, 性别: {c.gender}")
        lines.append(f"- 性格特征: {'/'.join(p.traits)}")
        lines.append(f"- 核心驱动: {p.core_drive}")
        lines.append(f"- 恐惧: {'/'.join(p.fears)}")
        lines.append(f"- 说话风格: {p.speaking_style}")
        if c.gap_moe:
            lines.append(f"- 反差萌: {c.gap_moe}")
        lines.append(f"- 背景: {c.background}")
        if c.arc.start_state or c.arc.end_state:
            lines.append(f"- 成长弧: {c.arc.start_state} → {c.arc.end_state}")
        related = resolve_relationships(c, characters)
        if related:
            lines.append("- 人物关系:")
            for rel, target in related:
                detail = f": {rel.description}" if rel.description else ""
                lines.append(f"  - {target.name} ({rel.type}){detail}")
    return "\n".join(lines)


def format_outline(outline: OutlineTree) -> str:
    lines = ["## 大纲结构"]
    for vol in outline.volumes:
        lines.append(f"### {vol.title}")
        if vol.summary:
            lines.append(f"> {vol.summary}")
        for ch in vol.chapters:
            tag = f" [{ch.status.value}]" if ch.status != ChapterStatus.PLANNED else ""
            lines.append(f"#### {ch.title}{tag}")
            lines.append(f"摘要: {ch.summary}")
            lines.extend(f"  - [{b.type}] {b.summary} ({b.emotional_tone})" for b in ch.beats)
    return "\n".join(lines)


def build_knowledge_context(
    world: Optional[WorldSetting],
    characters: list[Character],
    outline: Optional[OutlineTree],
) -> str:
    """Join the non-empty sections; returns "" when the project has nothing yet."""
    parts = []
    if world is not None:
        parts.append(format_world(world))
    if characters:
        parts.append(format_characters(characters))
    if outline is not None:
        parts.append(format_outline(outline))
    return SECTION_SEPARATOR.join(parts)

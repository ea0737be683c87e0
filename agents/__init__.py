"""Agents package: all AI agent classes."""

from agents.base_agent import BaseAgent
from agents.director_agent import DirectorAgent
from agents.world_builder_agent import WorldBuilderAgent
from agents.casting_director_agent import CastingDirectorAgent
from agents.outliner_agent import OutlinerAgent
from agents.writer_agent import WriterAgent
from agents.editor_agent import EditorAgent

__all__ = [
    "BaseAgent",
    "DirectorAgent",
    "WorldBuilderAgent",
    "CastingDirectorAgent",
    "OutlinerAgent",
    "WriterAgent",
    "EditorAgent",
]

"""Models package: database, domain records, and enums."""

from models.database import Database
from models.character import (
    Character,
    CharacterArc,
    Personality,
    Relationship,
    merge_roster,
    resolve_relationships,
)
from models.enums import (
    ChapterStatus,
    CharacterRole,
    CheckpointStatus,
    MessageRole,
    RouteTarget,
)
from models.message import ChatMessage, ChatThread
from models.outline import ChapterNode, OutlineTree, SceneBeat, VolumeNode
from models.project import NovelProject, ProjectMetadata, ProjectProgress, ProjectSnapshot
from models.world import Concept, Location, PowerSystem, WorldItem, WorldSetting

__all__ = [
    "Database",
    "Character",
    "CharacterArc",
    "Personality",
    "Relationship",
    "merge_roster",
    "resolve_relationships",
    "ChapterStatus",
    "CharacterRole",
    "CheckpointStatus",
    "MessageRole",
    "RouteTarget",
    "ChatMessage",
    "ChatThread",
    "ChapterNode",
    "OutlineTree",
    "SceneBeat",
    "VolumeNode",
    "NovelProject",
    "ProjectMetadata",
    "ProjectProgress",
    "ProjectSnapshot",
    "Concept",
    "Location",
    "PowerSystem",
    "WorldItem",
    "WorldSetting",
]

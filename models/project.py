"""Project metadata and snapshot models."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from models.base import Record
from models.character import Character
from models.outline import OutlineTree
from models.world import WorldSetting


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectMetadata(Record):
    title: str = ""
    genre: str = ""
    tags: list[str] = Field(default_factory=list)
    target_audience: str = ""
    logline: str = ""


class ProjectProgress(Record):
    """Writing progress pointer.

    ``chapter_id`` is authoritative when it still exists in the outline; the
    indices are the fallback for projects created before ids were tracked.
    """
    volume_index: int = 0
    chapter_index: int = 0
    scene_index: int = 0
    chapter_id: Optional[str] = None


class NovelProject(Record):
    id: str
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
    current_progress: ProjectProgress = Field(default_factory=ProjectProgress)
    created_at: str = Field(default_factory=_utcnow)
    updated_at: str = Field(default_factory=_utcnow)


class ProjectSnapshot(Record):
    project: NovelProject
    world: Optional[WorldSetting] = None
    characters: list[Character] = Field(default_factory=list)
    outline: Optional[OutlineTree] = None

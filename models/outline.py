"""Outline tree: volumes → chapters → scene beats."""

from typing import Optional

from pydantic import Field, field_validator

from models.base import Record
from models.enums import ChapterStatus


class SceneBeat(Record):
    id: str = ""
    type: str = ""
    location_id: str | None = None
    active_character_ids: list[str] = Field(default_factory=list)
    summary: str = ""
    purpose: str = ""
    emotional_tone: str = ""


class ChapterNode(Record):
    """A chapter in the outline. Identity is ``id``; status only moves on save."""
    id: str
    title: str = ""
    summary: str = ""
    pov_character_id: str | None = None
    beats: list[SceneBeat] = Field(default_factory=list)
    status: ChapterStatus = ChapterStatus.PLANNED

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        if isinstance(v, ChapterStatus):
            return v
        try:
            return ChapterStatus(str(v).strip().upper())
        except ValueError:
            return ChapterStatus.PLANNED


class VolumeNode(Record):
    id: str = ""
    title: str = ""
    summary: str = ""
    chapters: list[ChapterNode] = Field(default_factory=list)


class OutlineTree(Record):
    id: str = "outline_1"
    volumes: list[VolumeNode] = Field(default_factory=list)

    def chapter_count(self) -> int:
        return sum(len(v.chapters) for v in self.volumes)

    def chapter_at(self, volume_index: int, chapter_index: int) -> Optional[ChapterNode]:
        """Positional lookup; negative or out-of-range indices return None."""
        if volume_index < 0 or chapter_index < 0:
            return None
        if volume_index >= len(self.volumes):
            return None
        chapters = self.volumes[volume_index].chapters
        if chapter_index >= len(chapters):
            return None
        return chapters[chapter_index]

    def locate(self, chapter_id: str) -> Optional[tuple[int, int]]:
        for vi, volume in enumerate(self.volumes):
            for ci, chapter in enumerate(volume.chapters):
                if chapter.id == chapter_id:
                    return vi, ci
        return None

    def find_chapter(self, chapter_id: str) -> Optional[ChapterNode]:
        pos = self.locate(chapter_id)
        return self.chapter_at(*pos) if pos else None

    def previous_chapter(self, chapter_id: str) -> Optional[ChapterNode]:
        """The chapter before ``chapter_id`` in reading order, across volumes."""
        flat = [c for v in self.volumes for c in v.chapters]
        for i, chapter in enumerate(flat):
            if chapter.id == chapter_id:
                return flat[i - 1] if i > 0 else None
        return None

    def volume_of(self, chapter_id: str) -> Optional[VolumeNode]:
        pos = self.locate(chapter_id)
        return self.volumes[pos[0]] if pos else None

    def next_position(self, volume_index: int, chapter_index: int) -> Optional[tuple[int, int]]:
        """Position of the chapter after (vi, ci), crossing volume boundaries."""
        if self.chapter_at(volume_index, chapter_index + 1) is not None:
            return volume_index, chapter_index + 1
        for vi in range(volume_index + 1, len(self.volumes)):
            if self.volumes[vi].chapters:
                return vi, 0
        return None

    def with_chapter_status(self, chapter_id: str, status: ChapterStatus) -> "OutlineTree":
        """Return a copy of the outline with one chapter's status changed."""
        copy = self.model_copy(deep=True)
        chapter = copy.find_chapter(chapter_id)
        if chapter is not None:
            chapter.status = status
        return copy

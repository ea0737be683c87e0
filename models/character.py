"""Character data models."""

from pydantic import Field, field_validator

from models.base import Record
from models.enums import CharacterRole


class Personality(Record):
    traits: list[str] = Field(default_factory=list)
    core_drive: str = ""
    fears: list[str] = Field(default_factory=list)
    moral_line: str = ""
    speaking_style: str = ""


class Relationship(Record):
    """Non-owning reference to another character by id."""
    target_char_id: str = ""
    type: str = ""
    description: str = ""


class CharacterArc(Record):
    start_state: str = ""
    end_state: str = ""
    key_events: list[str] = Field(default_factory=list)


class Character(Record):
    """Represents a character card. Identity is ``id``."""
    id: str
    name: str = ""
    role: CharacterRole = CharacterRole.SUPPORTING
    age: str = ""
    gender: str = ""
    appearance: str = ""
    personality: Personality = Field(default_factory=Personality)
    gap_moe: str | None = None
    background: str = ""
    relationships: list[Relationship] = Field(default_factory=list)
    arc: CharacterArc = Field(default_factory=CharacterArc)

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, v):
        if isinstance(v, CharacterRole):
            return v
        try:
            return CharacterRole(str(v).strip().upper())
        except ValueError:
            return CharacterRole.SUPPORTING

    @field_validator("age", mode="before")
    @classmethod
    def _age_as_text(cls, v):
        return "" if v is None else str(v)


def merge_roster(existing: list[Character], incoming: list[Character]) -> list[Character]:
    """Merge generated characters into a roster by id.

    Existing characters keep their position and are replaced when an incoming
    card has the same id; unseen incoming ids are appended in order.
    """
    by_id = {c.id: c for c in incoming}
    merged = [by_id.get(c.id, c) for c in existing]
    known = {c.id for c in existing}
    for c in incoming:
        if c.id not in known:
            merged.append(c)
            known.add(c.id)
    return merged


def resolve_relationships(
    character: Character, roster: list[Character]
) -> list[tuple[Relationship, Character]]:
    """Resolve a character's relationships against the roster.

    Dangling target ids are skipped; they are not an error.
    """
    by_id = {c.id: c for c in roster}
    return [
        (rel, by_id[rel.target_char_id])
        for rel in character.relationships
        if rel.target_char_id in by_id
    ]

"""World-building data models."""

from pydantic import Field

from models.base import Record


class PowerSystem(Record):
    name: str = ""
    levels: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)


class Location(Record):
    id: str = ""
    name: str = ""
    description: str = ""
    atmosphere: str = ""
    parent_location_id: str | None = None


class WorldItem(Record):
    id: str = ""
    name: str = ""
    description: str = ""
    significance: str = ""


class Concept(Record):
    term: str = ""
    definition: str = ""


class WorldSetting(Record):
    """The project's world bible. One per project."""
    id: str = "world_1"
    background: str = ""
    power_systems: list[PowerSystem] = Field(default_factory=list)
    geography: list[Location] = Field(default_factory=list)
    items: list[WorldItem] = Field(default_factory=list)
    concepts: list[Concept] = Field(default_factory=list)
    core_conflict: str = ""

    def one_liner(self, limit: int = 80) -> str:
        """Short background line used in routing context."""
        text = " ".join(self.background.split())
        return text if len(text) <= limit else text[:limit] + "…"

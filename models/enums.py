"""Enumerations for routing, lifecycle and status tracking."""

from enum import Enum
from typing import Optional


class RouteTarget(str, Enum):
    WORLD = "world"
    CAST = "cast"
    OUTLINE = "outline"
    WRITE = "write"
    DIRECT = "direct"

    @classmethod
    def parse(cls, label: Optional[str]) -> "RouteTarget":
        """Map a classifier label (including the long-form names) to a route.

        Unknown or empty labels resolve to DIRECT.
        """
        if not label:
            return cls.DIRECT
        key = str(label).strip().lower().replace("-", "_")
        return _ROUTE_ALIASES.get(key, cls.DIRECT)


_ROUTE_ALIASES = {
    "world": RouteTarget.WORLD,
    "world_builder": RouteTarget.WORLD,
    "cast": RouteTarget.CAST,
    "casting": RouteTarget.CAST,
    "casting_director": RouteTarget.CAST,
    "outline": RouteTarget.OUTLINE,
    "outliner": RouteTarget.OUTLINE,
    "write": RouteTarget.WRITE,
    "write_chapter": RouteTarget.WRITE,
    "writer": RouteTarget.WRITE,
    "direct": RouteTarget.DIRECT,
    "direct_response": RouteTarget.DIRECT,
}


class ChapterStatus(str, Enum):
    PLANNED = "PLANNED"
    DRAFTING = "DRAFTING"
    REVIEWING = "REVIEWING"
    DONE = "DONE"


class CharacterRole(str, Enum):
    PROTAGONIST = "PROTAGONIST"
    ANTAGONIST = "ANTAGONIST"
    SUPPORTING = "SUPPORTING"
    MOB = "MOB"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class CheckpointStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"

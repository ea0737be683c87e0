"""Conditional routing functions for the workflow graph."""

from models.enums import RouteTarget
from workflow.state import NovelState

_CONFIRMED_ROUTES = {
    RouteTarget.WORLD: "world_builder",
    RouteTarget.CAST: "casting_director",
    RouteTarget.OUTLINE: "outliner",
    RouteTarget.WRITE: "write_prepare",
    RouteTarget.DIRECT: "direct_response",
}


def route_after_director(state: NovelState) -> str:
    """Direct replies end the turn; every other route asks the author to confirm first."""
    if state.route_target == RouteTarget.DIRECT:
        return "direct_response"
    return "director_confirm"


def route_after_confirm(state: NovelState) -> str:
    """Proceed to the route chosen before suspension; it is never re-evaluated."""
    return _CONFIRMED_ROUTES[state.route_target]


def route_after_write_prepare(state: NovelState) -> str:
    """No resolvable chapter -> explain and stop; otherwise start the write cycle."""
    if state.route_target == RouteTarget.DIRECT or state.current_chapter is None:
        return "direct_response"
    return "knowledge_retriever"


def route_after_editor(state: NovelState) -> str:
    """Route after review: pass -> save, fail -> rewrite (up to max_revisions) -> human."""
    if not state.critique:
        return "save_to_store"
    if state.revision_count >= state.max_revisions:
        return "human_review"
    return "writer"

"""Workflow steps. Each takes the current state and a StepContext and
returns a typed update, a Suspend, or None."""

import logging

from config.exceptions import RetrievalError
from memory.conversation import summarize_recent
from memory.knowledge_formatter import build_knowledge_context
from models.enums import ChapterStatus, RouteTarget
from models.outline import OutlineTree
from models.project import ProjectProgress
from tools.text_utils import count_chinese_chars, get_chapter_ending
from workflow.engine import StepContext, Suspend
from workflow.state import (
    CastUpdate,
    ChapterPrepared,
    DraftUpdate,
    InputRevised,
    KnowledgeLoaded,
    MemoryLoaded,
    NovelState,
    OutlineUpdate,
    PrepareRejected,
    RetrievalUpdate,
    ReviewUpdate,
    RouteDecided,
    SaveUpdate,
    WorldUpdate,
)

logger = logging.getLogger(__name__)

CONFIRM_INSTRUCTION = '请确认以上方案，或补充你的偏好/要求。回复"确认"继续，或直接输入补充信息。'
REVIEW_INSTRUCTION = '请审核以上内容。你可以输入修改意见，或回复"确认"以继续。'
NO_OUTLINE_REPLY = "还没有大纲。请先创建大纲再写正文。"
NO_CHAPTER_REPLY = "大纲中没有找到待写的章节。"
SAVED_SUFFIX = "\n\n[数据已保存]"


# ---------------------------------------------------------------------------
# Context loading
# ---------------------------------------------------------------------------

async def memory_loader(state: NovelState, ctx: StepContext) -> MemoryLoaded:
    """Summarize the recent conversation (stored transcript when a project is bound)."""
    logger.info("Entering node: memory_loader")
    settings = ctx.resources.settings
    if state.project_id:
        messages = ctx.resources.db.get_latest_messages(ctx.thread_id, settings.memory_max_messages)
    else:
        messages = state.messages
    summary = summarize_recent(messages, settings.memory_max_messages, settings.memory_max_chars)
    return MemoryLoaded(memory_summary=summary)


async def knowledge_loader(state: NovelState, ctx: StepContext) -> KnowledgeLoaded:
    logger.info("Entering node: knowledge_loader")
    if not state.project_id:
        return KnowledgeLoaded(knowledge_context="")
    context = build_knowledge_context(state.world_setting, state.characters, state.outline)
    return KnowledgeLoaded(knowledge_context=context)


# ---------------------------------------------------------------------------
# Routing and confirmation
# ---------------------------------------------------------------------------

async def director(state: NovelState, ctx: StepContext) -> RouteDecided:
    logger.info("Entering node: director")
    result = await ctx.resources.director.classify(
        user_input=state.user_input,
        world=state.world_setting,
        characters=state.characters,
        outline=state.outline,
        memory_summary=state.memory_summary,
        knowledge_context=state.knowledge_context,
    )
    return RouteDecided(route_target=result["route_target"], agent_output=result["agent_output"])


def _apply_feedback(ctx: StepContext) -> InputRevised:
    """Confirmation (or empty feedback) keeps user_input; anything else replaces it."""
    feedback = (ctx.resume_input or "").strip()
    if not feedback or feedback == ctx.resources.settings.confirm_token:
        return InputRevised()
    logger.info("Feedback replaces user input (%d chars)", len(feedback))
    return InputRevised(user_input=feedback)


async def director_confirm(state: NovelState, ctx: StepContext) -> Suspend:
    logger.info("Entering node: director_confirm")
    return Suspend(payload=state.agent_output, instruction=CONFIRM_INSTRUCTION)


async def director_confirm_apply(state: NovelState, ctx: StepContext) -> InputRevised:
    logger.info("Entering node: director_confirm_apply")
    return _apply_feedback(ctx)


async def human_review(state: NovelState, ctx: StepContext) -> Suspend:
    logger.info("Entering node: human_review")
    return Suspend(payload=state.agent_output, instruction=REVIEW_INSTRUCTION)


async def human_review_apply(state: NovelState, ctx: StepContext) -> InputRevised:
    logger.info("Entering node: human_review_apply")
    return _apply_feedback(ctx)


# ---------------------------------------------------------------------------
# Specialists
# ---------------------------------------------------------------------------

async def world_builder(state: NovelState, ctx: StepContext) -> WorldUpdate:
    logger.info("Entering node: world_builder")
    result = await ctx.resources.world_builder.build(
        user_input=state.user_input,
        existing=state.world_setting,
        memory_summary=state.memory_summary,
        knowledge_context=state.knowledge_context,
    )
    if result["world_setting"] is None:
        return WorldUpdate(agent_output=result["agent_output"])
    return WorldUpdate(world_setting=result["world_setting"], agent_output=result["agent_output"])


async def casting_director(state: NovelState, ctx: StepContext) -> CastUpdate:
    logger.info("Entering node: casting_director")
    result = await ctx.resources.casting_director.cast(
        user_input=state.user_input,
        existing=state.characters,
        world=state.world_setting,
        memory_summary=state.memory_summary,
        knowledge_context=state.knowledge_context,
    )
    if result["characters"] is None:
        return CastUpdate(agent_output=result["agent_output"])
    return CastUpdate(characters=result["characters"], agent_output=result["agent_output"])


async def outliner(state: NovelState, ctx: StepContext) -> OutlineUpdate:
    logger.info("Entering node: outliner")
    result = await ctx.resources.outliner.plan(
        user_input=state.user_input,
        existing=state.outline,
        world=state.world_setting,
        characters=state.characters,
        memory_summary=state.memory_summary,
        knowledge_context=state.knowledge_context,
    )
    if result["outline"] is None:
        return OutlineUpdate(agent_output=result["agent_output"])
    return OutlineUpdate(outline=result["outline"], agent_output=result["agent_output"])


# ---------------------------------------------------------------------------
# Write cycle
# ---------------------------------------------------------------------------

def _stored_progress(state: NovelState, ctx: StepContext) -> ProjectProgress:
    if not state.project_id:
        return ProjectProgress()
    project = ctx.resources.db.get_project(state.project_id)
    return project.current_progress if project else ProjectProgress()


async def write_prepare(state: NovelState, ctx: StepContext) -> ChapterPrepared | PrepareRejected:
    """Select the chapter to write and reset the chapter-scoped fields."""
    logger.info("Entering node: write_prepare")
    outline = state.outline
    if outline is None:
        return PrepareRejected(route_target=RouteTarget.DIRECT, agent_output=NO_OUTLINE_REPLY)

    progress = _stored_progress(state, ctx)
    chapter = outline.find_chapter(progress.chapter_id) if progress.chapter_id else None
    if chapter is None:
        chapter = outline.chapter_at(progress.volume_index, progress.chapter_index)
    if chapter is None:
        logger.info(
            "No chapter at progress (vol=%d, ch=%d, id=%s)",
            progress.volume_index, progress.chapter_index, progress.chapter_id,
        )
        return PrepareRejected(route_target=RouteTarget.DIRECT, agent_output=NO_CHAPTER_REPLY)

    logger.info("Preparing chapter %s: %s", chapter.id, chapter.title)
    return ChapterPrepared(current_chapter=chapter, revision_count=0, draft="", critique="", review_score=None)


def _previous_ending(state: NovelState, ctx: StepContext) -> str:
    if not state.project_id or state.outline is None or state.current_chapter is None:
        return ""
    previous = state.outline.previous_chapter(state.current_chapter.id)
    if previous is None:
        return ""
    content = ctx.resources.db.get_chapter_content(state.project_id, previous.id)
    return get_chapter_ending(content or "")


async def knowledge_retriever(state: NovelState, ctx: StepContext) -> RetrievalUpdate:
    """Similar-chapter retrieval plus the previous chapter's ending.

    Backend failures degrade to no retrieved context.
    """
    logger.info("Entering node: knowledge_retriever")
    chapter = state.current_chapter
    query = (chapter.summary if chapter and chapter.summary else "") or state.user_input
    try:
        retrieved = ctx.resources.retriever.retrieve(state.project_id, state.outline, query)
    except RetrievalError as e:
        logger.warning("Knowledge retrieval failed, continuing without it: %s", e)
        retrieved = ""
    ending = _previous_ending(state, ctx)
    if ending:
        retrieved = (retrieved + "\n\n" if retrieved else "") + f"上一章结尾:\n{ending}"
    return RetrievalUpdate(knowledge_retrieved=retrieved)


async def writer(state: NovelState, ctx: StepContext) -> DraftUpdate:
    logger.info("Entering node: writer")
    revision = state.revision_count + 1
    result = await ctx.resources.writer.write(
        user_input=state.user_input,
        revision_number=revision,
        chapter=state.current_chapter,
        world=state.world_setting,
        characters=state.characters,
        critique=state.critique,
        previous_draft=state.draft,
        memory_summary=state.memory_summary,
        knowledge_context=state.knowledge_context,
        knowledge_retrieved=state.knowledge_retrieved,
        on_token=ctx.emit_token,
    )
    return DraftUpdate(draft=result["draft"], revision_count=revision, agent_output=result["agent_output"])


async def editor(state: NovelState, ctx: StepContext) -> ReviewUpdate:
    logger.info("Entering node: editor")
    result = await ctx.resources.editor.review(
        draft=state.draft,
        chapter=state.current_chapter,
        characters=state.characters,
        memory_summary=state.memory_summary,
        knowledge_context=state.knowledge_context,
    )
    if not result["passed"] and state.revision_count >= state.max_revisions:
        logger.warning(
            "Revision budget exhausted after %d passes; escalating to human review",
            state.revision_count,
        )
    return ReviewUpdate(
        critique=result["critique"],
        review_score=result["score"],
        agent_output=result["agent_output"],
    )


# ---------------------------------------------------------------------------
# Persistence and terminal
# ---------------------------------------------------------------------------

def _advance_progress(ctx: StepContext, project_id: str, outline: OutlineTree, chapter_id: str):
    position = outline.locate(chapter_id)
    if position is None:
        return
    following = outline.next_position(*position)
    if following is None:
        progress = ProjectProgress(
            volume_index=position[0], chapter_index=position[1] + 1, chapter_id=None
        )
        logger.info("Last outlined chapter finished (%s)", chapter_id)
    else:
        nxt = outline.chapter_at(*following)
        progress = ProjectProgress(
            volume_index=following[0], chapter_index=following[1], chapter_id=nxt.id
        )
        logger.info("Progress advanced to %s", nxt.id)
    ctx.resources.db.update_progress(project_id, progress)


async def save_to_store(state: NovelState, ctx: StepContext) -> SaveUpdate | None:
    """Persist whatever artifacts the state holds; anonymous sessions skip entirely."""
    logger.info("Entering node: save_to_store")
    project_id = state.project_id
    if not project_id:
        return None

    db = ctx.resources.db
    saved = []
    if state.world_setting is not None:
        db.save_world_setting(project_id, state.world_setting)
        saved.append("world")
    if state.characters:
        db.save_characters(project_id, state.characters)
        saved.append("characters")

    outline = state.outline
    chapter = state.current_chapter
    # Chapter fields linger after a write cycle; only a write turn persists them
    if state.route_target == RouteTarget.WRITE and state.draft and chapter is not None:
        db.save_chapter_content(project_id, chapter.id, state.draft)
        status = ChapterStatus.REVIEWING if state.critique else ChapterStatus.DONE
        chapter = chapter.model_copy(update={"status": status})
        saved.append(f"draft:{chapter.id}({count_chinese_chars(state.draft)}字)")
        if outline is not None:
            outline = outline.with_chapter_status(chapter.id, status)
            if status == ChapterStatus.DONE:
                _advance_progress(ctx, project_id, outline, chapter.id)

    if outline is not None:
        db.save_outline(project_id, outline)
        saved.append("outline")
        try:
            ctx.resources.retriever.reindex(project_id, outline)
        except RetrievalError as e:
            logger.warning("Outline re-index failed (non-fatal): %s", e)

    logger.info("Saved project %s: %s", project_id, ", ".join(saved) or "nothing")
    fields = {"agent_output": state.agent_output + SAVED_SUFFIX}
    if outline is not None:
        fields["outline"] = outline
    if chapter is not None and chapter is not state.current_chapter:
        fields["current_chapter"] = chapter
    return SaveUpdate(**fields)


async def direct_response(state: NovelState, ctx: StepContext) -> None:
    """Terminal step: the reply already sits in agent_output."""
    logger.info("Entering node: direct_response")
    return None

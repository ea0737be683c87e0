"""CLI entry point: novel-director 写作工作流。

用法：
  novel-director project new -t 标题 -g 玄幻     创建项目
  novel-director chat "帮我设计世界观" -p <项目ID>  发送一条消息
  novel-director resume <thread_id> "确认"        恢复挂起的线程
  novel-director --help                           查看所有命令
"""

import asyncio
import logging
import os
import sys

# Ensure UTF-8 output on Windows to avoid GBK encoding errors with Rich
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from rich.panel import Panel
from rich.table import Table

from cli.theme import (
    CHAPTER_STATUS_COLORS,
    CHECKPOINT_STATUS_COLORS,
    app_header,
    character_cards,
    command_panel,
    get_console,
    outline_tree,
    project_summary_panel,
    success_panel,
)
from config.exceptions import DatabaseError
from config.logging_config import setup_logging
from config.settings import Settings
from models.database import Database
from models.project import ProjectMetadata
from workflow.callbacks import RichEventCallback, dispatch
from workflow.events import ErrorEvent, InterruptEvent
from workflow.graph import WorkflowResources, compile_workflow
from workflow.service import NovelWorkflowService

console = get_console()


def _init_logging(verbose: bool):
    """Configure logging based on verbosity. Console output stays quiet unless verbose."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _build_service(settings: Settings) -> NovelWorkflowService:
    resources = WorkflowResources(settings)
    engine = compile_workflow(resources)
    return NovelWorkflowService(engine, resources.db)


async def _consume(events, callback: RichEventCallback) -> tuple[bool, bool]:
    """Feed a stream to the callback. Returns (failed, suspended)."""
    failed = suspended = False
    async for event in events:
        dispatch(callback, event)
        if isinstance(event, ErrorEvent):
            failed = True
        elif isinstance(event, InterruptEvent):
            suspended = True
    return failed, suspended


def _print_retry_hint(service: NovelWorkflowService, thread_id: str | None):
    snapshot = service.get_snapshot(thread_id) if thread_id else None
    if snapshot is not None and snapshot.interrupted:
        console.print(
            f"[muted]可使用 [info]novel-director resume {thread_id}[/] 从 {snapshot.next_step} 重试。[/]"
        )


async def _converse(
    service: NovelWorkflowService,
    message: str,
    thread_id: str | None,
    project_id: str | None,
    interactive: bool,
    show_tokens: bool,
) -> bool:
    """Submit a message; in interactive mode keep answering checkpoints until the turn ends."""
    callback = RichEventCallback(console, show_tokens=show_tokens)
    failed, suspended = await _consume(service.submit(message, thread_id, project_id), callback)
    while suspended and interactive and not failed:
        feedback = click.prompt("反馈", default=service.settings.confirm_token)
        failed, suspended = await _consume(
            service.resume(callback.thread_id, feedback, project_id), callback
        )
    if suspended and not interactive:
        console.print(
            f"[muted]线程已挂起。使用 [info]novel-director resume {callback.thread_id}[/] 继续。[/]"
        )
    if failed:
        _print_retry_hint(service, callback.thread_id)
    return not failed


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose):
    """novel-director: 总导演驱动的人机协作小说创作工作流

    \b
    一条消息经过总导演分析后被路由到：
      世界观构建 / 角色塑造 / 大纲规划 / 正文写作 / 直接回复
    生成类操作会在关键节点挂起等待你的确认。

    \b
    示例：
      novel-director project new -t "星河遗民" -g 科幻
      novel-director chat -p proj_xxx "设计一个废土世界"
      novel-director resume <thread_id> 确认
    """
    _init_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print(app_header())
        console.print(ctx.get_help())


# ---------------------------------------------------------------------------
# project commands
# ---------------------------------------------------------------------------

@cli.group()
def project():
    """管理小说项目。"""


@project.command(name="new")
@click.option("--title", "-t", required=True, help="作品标题")
@click.option("--genre", "-g", default="", help="小说类型（如：玄幻、都市、科幻）")
@click.option("--logline", "-l", default="", help="一句话简介")
@click.option("--tag", "tags", multiple=True, help="标签，可重复")
@click.option("--audience", default="", help="目标读者")
def project_new(title, genre, logline, tags, audience):
    """创建新项目。

    示例：
      novel-director project new -t "星河遗民" -g 科幻 --tag 废土 --tag 群像
    """
    settings = Settings()
    db = Database(settings.sqlite_db_path)

    console.print(app_header())
    console.print(command_panel("新建项目", {
        "标题": title,
        "类型": genre or "-",
        "标签": ", ".join(tags) or "-",
    }))

    metadata = ProjectMetadata(
        title=title, genre=genre, logline=logline, tags=list(tags), target_audience=audience
    )
    created = db.create_project(metadata)
    console.print(success_panel("项目已创建", f"ID: [bold]{created.id}[/]"))


@project.command(name="list")
def project_list():
    """列出所有项目。"""
    settings = Settings()
    db = Database(settings.sqlite_db_path)

    projects = db.list_projects()
    console.print(app_header())
    if not projects:
        console.print("[warning]暂无项目。使用 [info]novel-director project new[/] 创建。[/]")
        return

    table = Table(title="项目列表", show_lines=True, border_style="dim")
    table.add_column("ID", style="chapter.num")
    table.add_column("标题", style="bold")
    table.add_column("类型", style="genre")
    table.add_column("进度")
    table.add_column("更新时间", style="muted")
    for p in projects:
        progress = p.current_progress
        position = progress.chapter_id or f"{progress.volume_index + 1}-{progress.chapter_index + 1}"
        table.add_row(p.id, p.metadata.title or "-", p.metadata.genre or "-", position, p.updated_at[:19])
    console.print(table)


@project.command(name="show")
@click.argument("project_id")
def project_show(project_id):
    """查看项目的世界观、角色与大纲。"""
    settings = Settings()
    db = Database(settings.sqlite_db_path)

    snapshot = db.get_project_snapshot(project_id)
    if snapshot is None:
        console.print(f"[error]未找到项目 {project_id}[/]")
        sys.exit(1)

    console.print(app_header())
    console.print(project_summary_panel(snapshot.project, snapshot.characters, snapshot.outline))
    console.print()

    if snapshot.world:
        world = snapshot.world
        console.print(Panel(
            f"  [stat.label]背景:[/] {world.one_liner(200) or '-'}\n"
            f"  [stat.label]核心冲突:[/] {world.core_conflict or '-'}\n"
            f"  [stat.label]地点:[/] [stat.value]{len(world.geography)}[/]  "
            f"[muted]|[/]  [stat.label]力量体系:[/] [stat.value]{len(world.power_systems)}[/]",
            title="[bold]世界观[/]",
            border_style="dim",
            padding=(0, 2),
        ))
        console.print()

    if snapshot.characters:
        console.print("[bold]角色[/]")
        console.print(character_cards(snapshot.characters))
        console.print()

    if snapshot.outline:
        console.print(outline_tree(snapshot.outline))


@project.command(name="chapter")
@click.argument("project_id")
@click.argument("chapter_id")
def project_chapter(project_id, chapter_id):
    """查看某一章已保存的正文。

    示例：
      novel-director project chapter proj_xxx ch_1
    """
    settings = Settings()
    db = Database(settings.sqlite_db_path)

    outline = db.get_outline(project_id)
    chapter = outline.find_chapter(chapter_id) if outline else None
    content = db.get_chapter_content(project_id, chapter_id)
    if chapter is None and content is None:
        console.print(f"[error]未找到章节 {chapter_id}[/]")
        sys.exit(1)

    if chapter is not None:
        color = CHAPTER_STATUS_COLORS.get(chapter.status, "white")
        console.print(Panel(
            f"  [stat.label]标题:[/] {chapter.title or '-'}  "
            f"[stat.label]状态:[/] [{color}]{chapter.status.value}[/]\n"
            f"  [stat.label]概要:[/] {chapter.summary or '-'}",
            title=f"[bold]{chapter_id}[/]",
            border_style="dim",
            padding=(0, 2),
        ))
        console.print()
    console.print(content or "[muted]（该章尚无正文内容）[/]")


@project.command(name="delete")
@click.argument("project_id")
@click.option("--force", "-f", is_flag=True, help="跳过确认直接删除")
def project_delete(project_id, force):
    """删除项目及其全部文档与正文。"""
    settings = Settings()
    db = Database(settings.sqlite_db_path)

    found = db.get_project(project_id)
    if found is None:
        console.print(f"[error]未找到项目 {project_id}[/]")
        sys.exit(1)
    if not force and not click.confirm(f"确定删除《{found.metadata.title}》({project_id})？"):
        console.print("[muted]已取消[/]")
        return
    db.delete_project(project_id)
    console.print(f"[success]项目 {project_id} 已删除[/]")


# ---------------------------------------------------------------------------
# workflow commands
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("message")
@click.option("--thread", "-t", "thread_id", default=None, help="继续已有线程（默认新建）")
@click.option("--project", "-p", "project_id", default=None, help="绑定项目ID")
@click.option("--interactive/--no-interactive", default=True, help="挂起时直接在终端回复")
@click.option("--no-stream", is_flag=True, help="不显示逐字生成的正文")
def chat(message, thread_id, project_id, interactive, no_stream):
    """向总导演发送一条消息。

    示例：
      novel-director chat "你好"
      novel-director chat -p proj_xxx "写下一章"
    """
    settings = Settings()
    service = _build_service(settings)
    try:
        ok = asyncio.run(_converse(service, message, thread_id, project_id, interactive, not no_stream))
    except DatabaseError as e:
        console.print(f"[error]存储错误: {e}[/]")
        sys.exit(1)
    if not ok:
        sys.exit(1)


@cli.command()
@click.argument("thread_id")
@click.argument("feedback", required=False, default="")
@click.option("--project", "-p", "project_id", default=None, help="项目ID（默认取自检查点）")
def resume(thread_id, feedback, project_id):
    """恢复挂起的线程，或重试上次失败的步骤。FEEDBACK 省略时视为确认。

    示例：
      novel-director resume 7f0c... 确认
      novel-director resume 7f0c... "主角改成女性"
    """
    settings = Settings()
    service = _build_service(settings)
    callback = RichEventCallback(console)
    failed, suspended = asyncio.run(_consume(service.resume(thread_id, feedback, project_id), callback))
    if suspended:
        console.print(f"[muted]线程再次挂起。使用 [info]novel-director resume {thread_id}[/] 继续。[/]")
    if failed:
        _print_retry_hint(service, thread_id)
        sys.exit(1)


@cli.command()
@click.option("--limit", "-n", default=20, help="最多显示条数")
def threads(limit):
    """列出已有检查点的线程。"""
    settings = Settings()
    service = _build_service(settings)

    checkpoints = service.engine.store.list_threads()[:limit]
    console.print(app_header())
    if not checkpoints:
        console.print("[warning]暂无线程记录[/]")
        return

    table = Table(title="线程列表", border_style="dim")
    table.add_column("线程", style="chapter.num")
    table.add_column("项目")
    table.add_column("状态")
    table.add_column("位置")
    table.add_column("步数", justify="right")
    for cp in checkpoints:
        color = CHECKPOINT_STATUS_COLORS.get(cp.status, "white")
        table.add_row(
            cp.thread_id,
            cp.state.project_id or "-",
            f"[{color}]{cp.status.value}[/]",
            cp.pending_step or cp.next_step or "-",
            str(cp.step_count),
        )
    console.print(table)


@cli.command()
@click.argument("thread_id")
def status(thread_id):
    """查看线程的检查点状态。"""
    settings = Settings()
    service = _build_service(settings)

    snapshot = service.get_snapshot(thread_id)
    if snapshot is None:
        console.print(f"[error]未找到线程 {thread_id}[/]")
        sys.exit(1)

    state = snapshot.state
    color = CHECKPOINT_STATUS_COLORS.get(snapshot.status, "white")
    chapter = state.current_chapter.id if state.current_chapter else "-"
    score = f"{state.review_score:.1f}" if state.review_score is not None else "-"
    console.print(app_header())
    console.print(Panel(
        f"  [stat.label]状态:[/] [{color}]{snapshot.status.value}[/]  "
        f"[muted]|[/]  [stat.label]路由:[/] {state.route_target.value}  "
        f"[muted]|[/]  [stat.label]项目:[/] {state.project_id or '-'}\n"
        f"  [stat.label]章节:[/] {chapter}  "
        f"[muted]|[/]  [stat.label]修订:[/] [stat.value]{state.revision_count}/{state.max_revisions}[/]  "
        f"[muted]|[/]  [stat.label]评分:[/] {score}\n"
        f"  [stat.label]消息:[/] [stat.value]{len(state.messages)}[/]  "
        f"[muted]|[/]  [stat.label]步数:[/] [stat.value]{snapshot.step_count}[/]",
        title=f"[bold]{thread_id}[/]",
        border_style="dim",
        padding=(0, 2),
    ))
    if snapshot.pending_step:
        console.print()
        console.print(Panel(snapshot.payload or "(空)", title=f"挂起于 {snapshot.suspended_at}", border_style="yellow"))
        console.print(f"[yellow]{snapshot.instruction}[/]")


@cli.command()
@click.argument("thread_id")
@click.option("--limit", "-n", default=20, help="最多显示条数")
def history(thread_id, limit):
    """查看线程的对话记录（仅绑定项目的线程会被记录）。"""
    settings = Settings()
    db = Database(settings.sqlite_db_path)

    messages = db.get_latest_messages(thread_id, limit)
    if not messages:
        console.print(f"[warning]线程 {thread_id} 暂无对话记录[/]")
        return

    role_styles = {"user": "accent", "assistant": "success", "system": "error"}
    for m in messages:
        style = role_styles.get(m.role.value, "muted")
        step = f" [muted]({m.step})[/]" if m.step else ""
        console.print(f"[{style}]{m.role.value}[/]{step}")
        console.print(m.content, markup=False)
        console.print()


def main():
    cli()


if __name__ == "__main__":
    main()

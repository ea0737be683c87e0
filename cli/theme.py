"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

from models.enums import ChapterStatus, CheckpointStatus
from models.outline import OutlineTree
from models.project import NovelProject

NOVEL_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "genre": "bold",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
    "character.name": "bold cyan",
})

CHAPTER_STATUS_COLORS = {
    ChapterStatus.PLANNED: "dim",
    ChapterStatus.DRAFTING: "yellow",
    ChapterStatus.REVIEWING: "blue",
    ChapterStatus.DONE: "green",
}

CHECKPOINT_STATUS_COLORS = {
    CheckpointStatus.RUNNING: "yellow",
    CheckpointStatus.SUSPENDED: "cyan",
    CheckpointStatus.COMPLETED: "green",
}


def get_console() -> Console:
    """Return a Console instance with the novel theme applied."""
    return Console(theme=NOVEL_THEME)


def app_header(title: str = "novel-director") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "新建项目").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def project_summary_panel(project: NovelProject, characters: list, outline: OutlineTree | None) -> Panel:
    """Return a Panel with project stats and the current writing position."""
    meta = project.metadata
    progress = project.current_progress
    logline = meta.logline or ""
    if len(logline) > 150:
        logline = logline[:150] + "..."
    chapters = outline.chapter_count() if outline else 0
    position = progress.chapter_id or f"卷{progress.volume_index + 1} 章{progress.chapter_index + 1}"

    body = (
        f"  [stat.label]类型:[/] [genre]{meta.genre or '-'}[/]  "
        f"[muted]|[/]  [stat.label]角色:[/] [stat.value]{len(characters)}[/]  "
        f"[muted]|[/]  [stat.label]章节:[/] [stat.value]{chapters}[/]  "
        f"[muted]|[/]  [stat.label]进度:[/] [stat.value]{position}[/]\n"
        f"  [stat.label]简介:[/] {logline}"
    )
    return Panel(
        body,
        title=f"[bold]{meta.title or '未命名'}[/] [muted](ID: {project.id})[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def outline_tree(outline: OutlineTree, per_volume: int = 5) -> Tree:
    """Build a Rich Tree showing the volume/chapter structure with statuses."""
    tree = Tree("[bold]卷章结构[/]")
    for vi, volume in enumerate(outline.volumes, start=1):
        branch = tree.add(f"[bold cyan]第{vi}卷[/] {volume.title}")
        for chapter in volume.chapters[:per_volume]:
            color = CHAPTER_STATUS_COLORS.get(chapter.status, "white")
            summary = chapter.summary
            short = (summary[:30] + "...") if len(summary) > 30 else summary
            branch.add(
                f"[chapter.num]{chapter.id}[/] {chapter.title} "
                f"[{color}]{chapter.status.value}[/] [muted]{short}[/]"
            )
        if len(volume.chapters) > per_volume:
            branch.add(f"[muted]... (共{len(volume.chapters)}章)[/]")
    return tree


def character_cards(characters: list) -> Table:
    """Build a Rich Table layout of character information."""
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("角色", style="character.name")
    table.add_column("类型", style="muted")
    table.add_column("背景")

    for c in characters[:8]:
        background = c.background
        if len(background) > 40:
            background = background[:40] + "..."
        table.add_row(c.name or c.id, c.role.value, background)

    if len(characters) > 8:
        table.add_row(f"[muted]+{len(characters) - 8} more[/]", "", "")

    return table

"""CLI entry point for seqedit."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from seqedit import __version__
from seqedit.config import ConfigManager
from seqedit.outline.inline import parse_block_content
from seqedit.outline.path import format_path, parse_path
from seqedit.services.collapse_state import CollapseState, JsonFileKeyValueStore
from seqedit.services.editor_session import EditorSession
from seqedit.services.page_store import InMemoryPageStore
from seqedit.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)
console = Console()


def load_config() -> ConfigManager:
    """
    Load configuration from ~/.config/seqedit/config.yaml (defaults if absent).

    Raises:
        click.ClickException: If the config file is invalid
    """
    try:
        return ConfigManager.load_default()
    except ValueError as e:
        raise click.ClickException(str(e))


def open_collapse_state(config: ConfigManager) -> CollapseState:
    """Collapse flags persisted in the configured JSON file."""
    path = config.session.collapse_state_file
    try:
        return CollapseState(JsonFileKeyValueStore(path))
    except ValueError as e:
        raise click.ClickException(str(e))


def open_page(path: Path, config: ConfigManager, collapse: Optional[CollapseState] = None):
    """Load a page file into an in-memory store and a session for it.

    The page id is the file name without extension. The page is opened by
    awaiting show_page() inside the command's event loop.

    Returns:
        (session, store, page_id)
    """
    page_id = path.stem
    store = InMemoryPageStore(indent_str=config.editor.indent)
    store.load_markdown(page_id, path.read_text(encoding="utf-8"))
    return EditorSession(store, collapse_state=collapse), store, page_id


async def show_page(session: EditorSession, page_id: str) -> None:
    """Navigate the session to page_id.

    Raises:
        click.ClickException: If the page could not be loaded
    """
    if not await session.jump_to(page_id):
        raise click.ClickException(f"Could not open page '{page_id}'")


def parse_block_path(text: str) -> list[int]:
    try:
        return parse_path(text)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PATH")


@click.group()
@click.version_option(version=__version__, prog_name="seqedit")
@click.pass_context
def cli(ctx: click.Context):
    """seqedit: structural editing for Logseq-style outline pages."""
    configure_logging()
    config = load_config()
    if config.logging.level != "INFO" or config.logging.log_file is not None:
        configure_logging(level=config.logging.level, log_file=config.logging.log_file)
    ctx.obj = config


@cli.command()
@click.argument("text")
@click.option("--json", "as_json", is_flag=True, help="Print segments and metadata as JSON")
def parse(text: str, as_json: bool):
    """
    Parse block content into inline segments.

    Examples:
        seqedit parse "TODO [#A] Call [[Mom]]"
        seqedit parse "[x] Buy **bread**" --json
    """
    parsed = parse_block_content(text)
    logger.info("parse_command", length=len(text), segments=len(parsed.segments))

    if as_json:
        click.echo(json.dumps(
            {
                "todoState": parsed.todo.todo_state,
                "checkboxState": parsed.todo.checkbox_state,
                "priority": parsed.todo.priority,
                "segments": [segment.model_dump(mode="json", exclude_none=True) for segment in parsed.segments],
            },
            indent=2,
        ))
        return

    if parsed.todo.has_marker:
        marker = parsed.todo.todo_state or parsed.todo.checkbox_state
        priority = f" priority {parsed.todo.priority}" if parsed.todo.priority else ""
        console.print(f"Marker: {escape(marker)}{priority}")

    table = Table(title="Segments")
    table.add_column("Type")
    table.add_column("Content")
    table.add_column("Target")
    for segment in parsed.segments:
        table.add_row(segment.type.value, escape(segment.content), escape(segment.target or ""))
    console.print(table)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def outline(config: ConfigManager, file: Path):
    """
    Show a page's block tree with block paths.

    Children of collapsed blocks are hidden.

    Examples:
        seqedit outline pages/Groceries.md
    """
    collapse = open_collapse_state(config)
    session, _, page_id = open_page(file, config, collapse)
    asyncio.run(show_page(session, page_id))

    tree = Tree(Text(session.page.title or page_id, style="bold"))
    branches = {(): tree}
    for path, block in session.visible_blocks():
        label = Text(f"{format_path(path)}  ", style="dim")
        label.append(block.content.split("\n")[0] or "(empty)")
        if block.has_children and session.is_collapsed(block.id):
            label.append(f"  [+{len(list(block.walk())) - 1} hidden]", style="yellow")
        branches[tuple(path)] = branches[tuple(path[:-1])].add(label)

    console.print(tree)


def _edit_command(config: ConfigManager, file: Path, operation: str, path_text: str,
                  in_place: bool, offset: Optional[int] = None) -> None:
    path = parse_block_path(path_text)
    session, store, page_id = open_page(file, config)
    logger.info("edit_command_started", operation=operation, file=str(file), path=path)

    async def run():
        await show_page(session, page_id)
        if operation == "split":
            return await session.split_block(path, offset)
        if operation == "merge":
            return await session.merge_block(path)
        if operation == "indent":
            return await session.indent_block(path)
        return await session.outdent_block(path)

    result = asyncio.run(run())
    if result is None:
        raise click.ClickException(f"Cannot {operation} block {path_text}")

    markdown = store.export_markdown(page_id)
    if in_place:
        file.write_text(markdown, encoding="utf-8")
        click.echo(f"{operation}: {path_text} -> {format_path(result.focus_path)} ({file})")
    else:
        click.echo(markdown, nl=False)
    logger.info("edit_command_completed", operation=operation, focus_path=result.focus_path)


_page_file = click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
_in_place = click.option("--in-place", "-i", is_flag=True, help="Write the result back to FILE")


@cli.command()
@_page_file
@click.argument("path")
@click.argument("offset", type=int)
@_in_place
@click.pass_obj
def split(config: ConfigManager, file: Path, path: str, offset: int, in_place: bool):
    """
    Split the block at PATH at character OFFSET.

    Examples:
        seqedit split page.md 0.1 5
    """
    _edit_command(config, file, "split", path, in_place, offset=offset)


@cli.command()
@_page_file
@click.argument("path")
@_in_place
@click.pass_obj
def merge(config: ConfigManager, file: Path, path: str, in_place: bool):
    """Merge the block at PATH into the block before it."""
    _edit_command(config, file, "merge", path, in_place)


@cli.command()
@_page_file
@click.argument("path")
@_in_place
@click.pass_obj
def indent(config: ConfigManager, file: Path, path: str, in_place: bool):
    """Indent the block at PATH under its previous sibling."""
    _edit_command(config, file, "indent", path, in_place)


@cli.command()
@_page_file
@click.argument("path")
@_in_place
@click.pass_obj
def outdent(config: ConfigManager, file: Path, path: str, in_place: bool):
    """Outdent the block at PATH to follow its parent."""
    _edit_command(config, file, "outdent", path, in_place)


@cli.command()
@_page_file
@click.argument("path")
@click.option("--recursive", "-r", is_flag=True, help="Apply to all descendants too")
@click.option("--expand", is_flag=True, help="Expand instead of toggling")
@click.pass_obj
def collapse(config: ConfigManager, file: Path, path: str, recursive: bool, expand: bool):
    """
    Toggle the collapse flag of the block at PATH.

    Flags are kept in the collapse state file, never in the page itself.

    Examples:
        seqedit collapse page.md 0
        seqedit collapse page.md 0 --recursive
        seqedit collapse page.md 0 --expand
    """
    block_path = parse_block_path(path)
    state = open_collapse_state(config)
    session, _, page_id = open_page(file, config, state)
    asyncio.run(show_page(session, page_id))

    block = session.tree.find(block_path)
    if block is None:
        raise click.ClickException(f"No block at {path}")

    if expand:
        targets = list(block.walk()) if recursive else [block]
        for target in targets:
            state.set_collapsed(page_id, target.id, False)
        collapsed = False
    else:
        collapsed = session.toggle_collapse(block.id, recursive=recursive)

    click.echo(f"{path}: {'collapsed' if collapsed else 'expanded'}")


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()

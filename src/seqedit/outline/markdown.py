"""Logseq markdown codec for a single page.

Parses one page's outline markdown (indented "- " bullets, continuation
lines, page-level frontmatter) into Blocks and renders Blocks back. Whole
vault/directory parsing is deliberately not handled here.

Block ids come from an ``id::`` continuation line when present. Otherwise a
hybrid id is derived from the block's full context (its parents' content plus
its own), so the same page text always yields the same ids, and collapse flags
keyed by block id survive a reload of an unchanged page.
"""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Collection, Optional

from seqedit.outline.block import Block


_ID_LINE = re.compile(r"^id::\s*(\S+)\s*$")
_PROPERTY_LINE = re.compile(r"^([a-zA-Z][a-zA-Z0-9\-_]*)::\s*(.*)$")


@dataclass
class ParsedPage:
    """Parsed representation of one page.

    Attributes:
        blocks: Root blocks in document order
        title: Page title from a "# Title" header or title:: property ("" if none)
        properties: Page-level key:: value properties from the frontmatter
        frontmatter: Raw lines before the first bullet
        explicit_ids: Ids that came from id:: lines (rendered back as id:: lines)
        indent_str: Indentation unit detected from the source
    """

    blocks: list[Block]
    title: str = ""
    properties: dict[str, str] = field(default_factory=dict)
    frontmatter: list[str] = field(default_factory=list)
    explicit_ids: set[str] = field(default_factory=set)
    indent_str: str = "  "


def parse_page(markdown: str, indent_str: Optional[str] = None, default_indent: str = "  ") -> ParsedPage:
    """Parse Logseq markdown into blocks.

    Args:
        markdown: Page markdown
        indent_str: Indentation unit (detected from the source when None)
        default_indent: Unit assumed when nothing is indented

    Returns:
        ParsedPage with blocks, title and page properties
    """
    if not markdown.strip():
        return ParsedPage(blocks=[], indent_str=indent_str or default_indent)

    lines = markdown.split("\n")
    indent_str = indent_str or _detect_indentation(lines, default_indent)
    frontmatter, raw_blocks = _collect_bullets(lines, indent_str)

    title = ""
    properties: dict[str, str] = {}
    for line in frontmatter:
        stripped = line.strip()
        if stripped.startswith("#") and not title:
            title = stripped.lstrip("#").strip()
            continue
        match = _PROPERTY_LINE.match(stripped)
        if match:
            properties[match.group(1)] = match.group(2).strip()
    if not title:
        title = properties.get("title", "")

    explicit_ids: set[str] = set()
    roots: list[Block] = []
    stack: list[Block] = []
    context: list[str] = []
    seen: dict[str, int] = {}

    for level, content_lines in raw_blocks:
        # Attach to the closest shallower block; malformed jumps clamp to one level deeper
        level = min(level, len(stack))
        del stack[level:]
        del context[level:]

        explicit_id = None
        kept = []
        in_code_fence = False
        for line in content_lines:
            stripped = line.strip()
            match = None if in_code_fence else _ID_LINE.match(stripped)
            if match and explicit_id is None and kept:
                explicit_id = match.group(1)
            else:
                kept.append(line)
            if stripped.startswith("```"):
                in_code_fence = not in_code_fence
        content = "\n".join(kept)

        context.append(content)
        if explicit_id:
            block_id = explicit_id
            explicit_ids.add(block_id)
        else:
            block_id = _hybrid_id(context, seen)

        block = Block(id=block_id, content=content, depth=level)
        if stack:
            stack[-1].children.append(block)
        else:
            roots.append(block)
        stack.append(block)

    return ParsedPage(
        blocks=roots,
        title=title,
        properties=properties,
        frontmatter=frontmatter,
        explicit_ids=explicit_ids,
        indent_str=indent_str,
    )


def render_page(
    blocks: list[Block],
    frontmatter: Optional[list[str]] = None,
    title: str = "",
    indent_str: str = "  ",
    explicit_ids: Collection[str] = (),
) -> str:
    """Render blocks back to Logseq markdown.

    Frontmatter lines are written verbatim; without frontmatter a non-empty
    title is written as a "# Title" header followed by a blank line. Blocks
    whose id is in explicit_ids get an id:: continuation line.
    """
    lines: list[str] = []
    if frontmatter:
        lines.extend(frontmatter)
    elif title:
        lines.extend([f"# {title}", ""])

    def render_block(block: Block) -> None:
        indent = indent_str * block.depth
        content_lines = block.content.split("\n")
        if block.id in explicit_ids:
            content_lines.append(f"id:: {block.id}")

        first = content_lines[0]
        lines.append(f"{indent}- {first}" if first else f"{indent}-")
        for line in content_lines[1:]:
            lines.append(f"{indent}  {line}")

        for child in block.children:
            render_block(child)

    for block in blocks:
        render_block(block)

    return "\n".join(lines) + "\n"


def _hybrid_id(context: list[str], seen: dict[str, int]) -> str:
    """Content hash of the block plus its parents, de-duplicated within the page."""
    digest = hashlib.md5("\n".join(context).encode("utf-8")).hexdigest()
    count = seen.get(digest, 0)
    seen[digest] = count + 1
    return digest if count == 0 else f"{digest}-{count}"


def _is_bullet_line(line: str) -> bool:
    stripped = line.lstrip()
    return stripped == "-" or stripped.startswith("- ")


def _collect_bullets(lines: list[str], indent_str: str) -> tuple[list[str], list[tuple[int, list[str]]]]:
    """Group lines into (indent level, content lines) per bullet.

    Lines before the first bullet are frontmatter. Continuation lines keep any
    indentation beyond the bullet's content column (e.g. inside code fences);
    bullet-looking lines inside a code fence are continuation content.
    """
    frontmatter: list[str] = []
    bullets: list[tuple[int, list[str]]] = []
    in_code_fence = False

    for line in lines:
        if not bullets and not _is_bullet_line(line):
            frontmatter.append(line)
            continue

        if not in_code_fence and _is_bullet_line(line):
            leading = line[: len(line) - len(line.lstrip())]
            stripped = line.lstrip()
            first = "" if stripped == "-" else stripped[2:]
            bullets.append((leading.count(indent_str), [first]))
            in_code_fence = first.lstrip().startswith("```")
            continue

        if line.lstrip().startswith("```"):
            in_code_fence = not in_code_fence

        level, content = bullets[-1]
        base = indent_str * level + "  "
        if not line.strip():
            if in_code_fence:
                content.append("")
            continue
        content.append(line[len(base):] if line.startswith(base) else line.lstrip())

    # Trailing blank frontmatter lines separate the header from the first bullet
    while frontmatter and not frontmatter[-1].strip():
        frontmatter.pop()
    if bullets and frontmatter:
        frontmatter.append("")

    return frontmatter, bullets


def _detect_indentation(lines: list[str], default: str = "  ") -> str:
    """Use the shortest leading whitespace of an indented bullet."""
    indents = [
        line[: len(line) - len(line.lstrip())]
        for line in lines
        if line.strip() and _is_bullet_line(line) and line != line.lstrip()
    ]
    if not indents:
        return default
    return min(indents, key=len)

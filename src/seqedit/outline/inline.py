"""Inline markup parser for block content.

Turns raw block text into an ordered, gap-free list of typed segments and
derives block-level TODO/priority/checkbox metadata. Parsing is total and
deterministic: malformed markup degrades to plain text, never to an error,
and identical input always yields identical output.
"""

import re
from dataclasses import dataclass, field

from seqedit.models.segment import LinkKind, Segment, SegmentType


TODO_STATES = ("TODO", "DOING", "DONE", "LATER", "NOW", "CANCELED")
PRIORITIES = ("A", "B", "C")

CHECKBOX_UNCHECKED = "[ ]"
CHECKBOX_CHECKED = "[x]"

# TODO marker with optional [#A]/[#B]/[#C] priority, anchored at the very start
_TODO_PATTERN = re.compile(
    r"^(?P<state>" + "|".join(TODO_STATES) + r")\s+"
    r"(?:\[#(?P<priority>[ABC])\](?:\s+|$))?"
)

_CHECKBOX_PATTERN = re.compile(r"^\[(?P<mark>[ xX])\]\s+")

# One alternation, scanned left to right. At a given position the first
# listed alternative that matches wins, so order matters.
_SEGMENT_PATTERN = re.compile(
    r"(?P<query>\{\{query.*?\}\})"
    r"|(?P<embed>\{\{embed.*?\}\})"
    r"|(?P<block_ref>\(\((?P<ref_id>[a-fA-F0-9\-]+)\)\))"
    r"|(?P<strike>~~(?P<strike_text>.*?)~~)"
    r"|(?P<highlight_eq>==(?P<eq_text>.*?)==)"
    r"|(?P<highlight_caret>\^\^(?P<caret_text>.*?)\^\^)"
    r"|(?P<tag>#(?P<tag_name>[a-zA-Z0-9\-_/]+))"
    r"|(?P<block_id>\bid::\s*(?P<uuid>[a-fA-F0-9\-]+))"
    r"|(?P<property>[a-zA-Z][a-zA-Z0-9\-_]*::\s*[^\n]+)"
    r"|(?P<bold>\*\*(?P<bold_text>.*?)\*\*)"
    r"|(?P<italic>\*(?P<italic_text>[^*]+?)\*)"
    r"|(?P<named_page_link>\[(?P<named_text>[^\]]+)\]\(\[\[(?P<named_page>[^\]]+)\]\]\))"
    r"|(?P<markdown_link>\[(?P<link_text>[^\]]+)\]\((?P<link_url>[^)]+)\))"
    r"|(?P<page_link>\[\[(?P<page_name>.*?)\]\])"
    r"|(?P<image>!\[(?P<image_alt>.*?)\]\((?P<image_target>.*?)\))"
)

_PAGE_REFERENCE_PATTERN = re.compile(r"\[\[(.*?)\]\]")


@dataclass(frozen=True)
class TodoInfo:
    """Block-level task metadata derived from the start of the content.

    Attributes:
        todo_state: One of TODO_STATES or "" (mutually exclusive with checkbox_state)
        checkbox_state: "[ ]", "[x]" or ""
        priority: "A", "B", "C" or "" (only alongside a todo_state)
        prefix_length: Number of leading characters the marker occupies
    """

    todo_state: str = ""
    checkbox_state: str = ""
    priority: str = ""
    prefix_length: int = 0

    @property
    def has_marker(self) -> bool:
        return bool(self.todo_state or self.checkbox_state)


@dataclass(frozen=True)
class ParsedContent:
    """Segments plus metadata for one block's content."""

    segments: list[Segment] = field(default_factory=list)
    todo: TodoInfo = field(default_factory=TodoInfo)


def parse_todo_info(content: str) -> TodoInfo:
    """Derive TODO state, priority and checkbox state from block content.

    The marker must sit at the very start of the content and be followed by
    whitespace, so "TODO" alone, "TODOs" or " TODO x" carry no state. A
    checkbox is only recognized when no TODO marker is present; in
    "TODO [ ] x" the TODO wins and "[ ] x" stays ordinary content.

    Examples:
        >>> parse_todo_info("TODO [#A] Call mom")
        TodoInfo(todo_state='TODO', checkbox_state='', priority='A', prefix_length=10)
        >>> parse_todo_info("[x] Buy bread").checkbox_state
        '[x]'
    """
    match = _TODO_PATTERN.match(content)
    if match:
        return TodoInfo(
            todo_state=match.group("state"),
            priority=match.group("priority") or "",
            prefix_length=match.end(),
        )

    match = _CHECKBOX_PATTERN.match(content)
    if match:
        checkbox = CHECKBOX_UNCHECKED if match.group("mark") == " " else CHECKBOX_CHECKED
        return TodoInfo(checkbox_state=checkbox, prefix_length=match.end())

    return TodoInfo()


def strip_todo_prefix(content: str, info: TodoInfo | None = None) -> str:
    """Remove the recognized TODO/checkbox marker (and its trailing whitespace)."""
    if info is None:
        info = parse_todo_info(content)
    return content[info.prefix_length:]


def _link_kind(target: str, default: LinkKind) -> LinkKind:
    if target.lower().endswith(".pdf"):
        return LinkKind.PDF
    return default


def _classify(match: re.Match) -> Segment:
    """Build the segment for one alternation match."""
    kind = match.lastgroup

    if kind == "query":
        return Segment(type=SegmentType.QUERY, content=match.group(0))
    if kind == "embed":
        return Segment(type=SegmentType.EMBED, content=match.group(0))
    if kind == "block_ref":
        ref = match.group("ref_id")
        return Segment(type=SegmentType.BLOCK_REF, content=ref, target=ref)
    if kind == "strike":
        return Segment(type=SegmentType.STRIKETHROUGH, content=match.group("strike_text"))
    if kind == "highlight_eq":
        return Segment(type=SegmentType.HIGHLIGHT, content=match.group("eq_text"))
    if kind == "highlight_caret":
        return Segment(type=SegmentType.HIGHLIGHT, content=match.group("caret_text"))
    if kind == "tag":
        name = match.group("tag_name")
        return Segment(type=SegmentType.TAG, content=name, target=name)
    if kind == "block_id":
        return Segment(type=SegmentType.BLOCK_ID, content=match.group(0), target=match.group("uuid"))
    if kind == "property":
        return Segment(type=SegmentType.PROPERTY, content=match.group(0))
    if kind == "bold":
        return Segment(type=SegmentType.BOLD, content=match.group("bold_text"))
    if kind == "italic":
        return Segment(type=SegmentType.ITALIC, content=match.group("italic_text"))
    if kind == "named_page_link":
        page = match.group("named_page")
        return Segment(
            type=SegmentType.LINK,
            content=match.group("named_text"),
            target=page,
            kind=_link_kind(page, LinkKind.PAGE),
        )
    if kind == "markdown_link":
        url = match.group("link_url")
        return Segment(
            type=SegmentType.LINK,
            content=match.group("link_text"),
            target=url,
            kind=_link_kind(url, LinkKind.URL),
        )
    if kind == "page_link":
        name = match.group("page_name")
        return Segment(
            type=SegmentType.LINK,
            content=name,
            target=name,
            kind=_link_kind(name, LinkKind.PAGE),
        )

    # image
    alt = match.group("image_alt")
    target = match.group("image_target")
    return Segment(
        type=SegmentType.IMAGE,
        content=alt,
        alt=alt,
        target=target,
        kind=_link_kind(target, LinkKind.IMAGE),
    )


def parse_segments(text: str) -> list[Segment]:
    """Split text into ordered typed segments.

    Unrecognized spans accumulate into "text" segments, so the result is
    gap-free. Re-parsing the content of any returned text segment yields that
    same single segment.

    Examples:
        >>> parse_segments("Buy milk [[Groceries]]")
        [Segment(type=<SegmentType.TEXT: 'text'>, content='Buy milk ', ...),
         Segment(type=<SegmentType.LINK: 'link'>, content='Groceries', target='Groceries', ...)]
    """
    segments: list[Segment] = []
    position = 0

    for match in _SEGMENT_PATTERN.finditer(text):
        # Zero-width matches are impossible: every alternative consumes delimiters
        if match.start() > position:
            segments.append(Segment(type=SegmentType.TEXT, content=text[position:match.start()]))
        segments.append(_classify(match))
        position = match.end()

    if position < len(text):
        segments.append(Segment(type=SegmentType.TEXT, content=text[position:]))

    return segments


def parse_block_content(content: str) -> ParsedContent:
    """Derive metadata from the whole content, then segment what follows the marker."""
    todo = parse_todo_info(content)
    return ParsedContent(
        segments=parse_segments(strip_todo_prefix(content, todo)),
        todo=todo,
    )


def extract_page_references(text: str) -> list[str]:
    """List every [[Page]] target in text, in order of appearance."""
    return _PAGE_REFERENCE_PATTERN.findall(text)

"""Segment model: one classified inline span of a block's parsed content."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SegmentType(str, Enum):
    """Inline segment types, valued by their wire names."""

    TEXT = "text"
    BOLD = "bold"
    ITALIC = "italic"
    LINK = "link"
    IMAGE = "image"
    TAG = "tag"
    BLOCK_REF = "blockRef"
    PROPERTY = "property"
    BLOCK_ID = "blockId"
    QUERY = "query"
    EMBED = "embed"
    STRIKETHROUGH = "strikethrough"
    HIGHLIGHT = "highlight"


class LinkKind(str, Enum):
    """What a link or image segment points at."""

    PAGE = "page"    # [[Page]] or [text]([[Page]])
    URL = "url"      # [text](https://...)
    PDF = "pdf"      # any link/image whose target ends in .pdf
    IMAGE = "image"  # ![alt](picture.png)


class Segment(BaseModel):
    """Parsed inline segment."""

    type: SegmentType = Field(..., description="Segment classification")

    content: str = Field(
        default="",
        description="Display content (delimiters stripped where the markup has them)"
    )

    target: Optional[str] = Field(
        default=None,
        description="Link target page/URL, image path, tag name or referenced block id"
    )

    alt: Optional[str] = Field(default=None, description="Image alt text")

    kind: Optional[LinkKind] = Field(
        default=None,
        description="Target kind for link and image segments"
    )

    model_config = {"frozen": True}

    @property
    def is_pdf(self) -> bool:
        """True for PDF-kind links and images."""
        return self.kind == LinkKind.PDF

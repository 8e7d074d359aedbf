"""Outline model: blocks, paths, inline parsing and the markdown codec."""

from seqedit.outline.block import Block, generate_block_id
from seqedit.outline.path import BlockPath, apply_shifts, format_path, parse_path
from seqedit.outline.tree import BlockTree

__all__ = [
    "Block",
    "BlockPath",
    "BlockTree",
    "apply_shifts",
    "format_path",
    "generate_block_id",
    "parse_path",
]

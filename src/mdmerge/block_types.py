"""Block node types shared by the parser adapter and the merge engine.

A ``BlockNode`` is produced once by ``mdmerge.markdown_parser`` and never
mutated afterwards. Line numbers are 1-indexed and inclusive. Node equality
is identity: two nodes with the same content in different documents are
different nodes, and the alignment layer relies on that to re-locate them.

Kind set (closed):
  heading, paragraph, code_block, list, list_item, block_quote,
  thematic_break, html_block, footnote_definition, table, table_row,
  table_cell, document, unknown
"""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import ClassVar, Literal


type BlockKind = Literal[
    "document",
    "heading",
    "paragraph",
    "code_block",
    "list",
    "list_item",
    "block_quote",
    "thematic_break",
    "html_block",
    "footnote_definition",
    "table",
    "table_row",
    "table_cell",
    "unknown",
]
type ListType = Literal["bullet", "ordered", ""]

TOP_LEVEL_KINDS: frozenset[str] = frozenset({
    "heading",
    "paragraph",
    "code_block",
    "list",
    "block_quote",
    "thematic_break",
    "html_block",
    "footnote_definition",
    "table",
})


@dataclass(frozen=True, slots=True)
class SourcePosition:
    """Inclusive 1-indexed line span of a node in its source."""

    start_line: int
    end_line: int

    def __post_init__(self) -> None:
        if self.start_line < 1:
            raise ValueError(f"start_line must be >= 1, got {self.start_line}")
        if self.end_line < self.start_line:
            raise ValueError(
                f"end_line ({self.end_line}) must be >= start_line ({self.start_line})"
            )

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True, slots=True, eq=False)
class BlockNode:
    """One block element of a parsed Markdown document."""

    is_protected: ClassVar[bool] = False

    kind: BlockKind
    children: tuple[BlockNode, ...] = ()
    position: SourcePosition | None = None
    inline_text: str = ""   # text + inline code of the node's own inline content
    raw_inline: str = ""    # inline source, markup included
    literal: str = ""       # body of code_block / html_block
    level: int = 0          # heading level
    info: str = ""          # fence info string
    markup: str = ""        # fence chars, bullet char, heading marker
    list_type: ListType = ""
    list_start: int = 1
    label: str = ""         # footnote label
    is_header: bool = False  # table header row / cell
    token_type: str = ""    # parser token name the node was built from

    @property
    def start_line(self) -> int | None:
        return self.position.start_line if self.position else None

    @property
    def end_line(self) -> int | None:
        return self.position.end_line if self.position else None

    @property
    def line_range(self) -> tuple[int, int] | None:
        if self.position is None:
            return None
        return (self.position.start_line, self.position.end_line)

    @property
    def language(self) -> str:
        """First word of the fence info, or ``""``."""
        parts = self.info.split()
        return parts[0] if parts else ""

    def text_content(self) -> str:
        """Concatenated inline text of this node and all descendants."""
        parts: list[str] = []
        for node in self.walk():
            if node.inline_text:
                parts.append(node.inline_text)
        return "".join(parts)

    def walk(self) -> Iterator[BlockNode]:
        """Yield this node and its descendants, depth-first, document order."""
        stack: list[BlockNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def __repr__(self) -> str:
        where = (
            f"{self.position.start_line}..{self.position.end_line}"
            if self.position
            else "?"
        )
        return f"BlockNode({self.kind}, lines={where}, children={len(self.children)})"

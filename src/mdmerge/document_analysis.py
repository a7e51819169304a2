"""Per-document analysis: parsed tree, protected regions, statement list.

``statements`` is the unit list the aligner works on: protected regions
interleaved with the unprotected top-level nodes, in document order. A
top-level node lying entirely inside a protected region is represented only
by that region. A region that only partly covers a top-level node is not
honored.

A ``DocumentAnalysis`` is built once per input text and is read-only
afterwards, so it can be shared between merges.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from mdmerge.block_types import BlockNode
from mdmerge.freeze_blocks import (
    DEFAULT_FREEZE_TOKEN,
    DEFAULT_PATTERN_TYPE,
    ProtectedRegion,
    scan_freeze_blocks,
)
from mdmerge.markdown_parser import ParserOptions, parse_document, render_markdown
from mdmerge.signatures import Signature, SignatureOverride, Statement, compute_signature

log = logging.getLogger("mdmerge.document_analysis")


def usable_regions(
    nodes: Sequence[BlockNode],
    regions: Sequence[ProtectedRegion],
    *,
    logger: logging.Logger | None = None,
) -> list[ProtectedRegion]:
    """Regions that do not cut through a top-level node.

    Markers are found on raw lines, so a marker inside a fenced code block or
    an indented list item still opens a region. Such a region overlaps a node
    it does not contain, and keeping both would emit the text twice; the
    region is dropped and the node kept.
    """
    logger = logger or log
    kept: list[ProtectedRegion] = []
    for region in regions:
        straddled = next(
            (
                node for node in nodes
                if node.position is not None
                and node.position.start_line <= region.end_line
                and region.start_line <= node.position.end_line
                and not (
                    region.start_line <= node.position.start_line
                    and node.position.end_line <= region.end_line
                )
            ),
            None,
        )
        if straddled is None:
            kept.append(region)
            continue
        logger.warning(
            "Freeze block at lines %d-%d overlaps %s at lines %d-%d; ignored",
            region.start_line,
            region.end_line,
            straddled.kind,
            straddled.position.start_line,  # type: ignore[union-attr]
            straddled.position.end_line,  # type: ignore[union-attr]
        )
    return kept


def integrate_statements(
    nodes: Sequence[BlockNode],
    regions: Sequence[ProtectedRegion],
) -> list[Statement]:
    """Merge-walk top-level nodes and protected regions by line number.

    Each region is emitted before the first node starting at or after the
    region's start line; nodes fully inside a region are dropped; regions
    left over after the last node are appended. Nodes without a source
    position are kept where they are.
    """
    result: list[Statement] = []
    pending = list(regions)
    for node in nodes:
        if node.position is None:
            result.append(node)
            continue
        start, end = node.position.start_line, node.position.end_line
        while pending and pending[0].start_line <= start:
            result.append(pending.pop(0))
        if any(r.start_line <= start and end <= r.end_line for r in regions):
            continue
        result.append(node)
    result.extend(pending)
    return result


class DocumentAnalysis:
    """Parsed view of one Markdown document.

    Raises:
        ParseError: the parser could not handle ``source``.
    """

    def __init__(
        self,
        source: str,
        *,
        freeze_token: str = DEFAULT_FREEZE_TOKEN,
        signature_override: SignatureOverride | None = None,
        parser_options: ParserOptions | None = None,
        marker_pattern: str = DEFAULT_PATTERN_TYPE,
        logger: logging.Logger | None = None,
    ) -> None:
        self._log = logger or log
        self.source = source
        self.freeze_token = freeze_token
        self.parser_options = parser_options
        self.document: BlockNode = parse_document(source, parser_options)
        self.lines: tuple[str, ...] = tuple(source.split("\n"))

        scanned = scan_freeze_blocks(
            self.lines,
            freeze_token,
            pattern_type=marker_pattern,
            parse=lambda text: parse_document(text, parser_options).children,
            logger=self._log,
        )
        self.freeze_blocks: tuple[ProtectedRegion, ...] = tuple(
            usable_regions(self.document.children, scanned, logger=self._log)
        )
        self.statements: tuple[Statement, ...] = tuple(
            integrate_statements(self.document.children, self.freeze_blocks)
        )
        self._signatures: tuple[Signature | None, ...] = tuple(
            compute_signature(stmt, override=signature_override)
            for stmt in self.statements
        )
        self._log.debug(
            "Analyzed document: %d top-level nodes, %d freeze blocks, %d statements "
            "(signatures: %s)",
            len(self.document.children),
            len(self.freeze_blocks),
            len(self.statements),
            "custom" if signature_override else "default",
        )

    def __len__(self) -> int:
        return len(self.statements)

    def signature_at(self, index: int) -> Signature | None:
        """Signature of statement ``index``; None if out of range or unsigned."""
        if not 0 <= index < len(self._signatures):
            return None
        return self._signatures[index]

    def signature_of(self, stmt: Statement) -> Signature | None:
        index = self.index_of(stmt)
        return None if index is None else self._signatures[index]

    def index_of(self, stmt: object) -> int | None:
        """Position of ``stmt`` in ``statements`` by identity."""
        for index, candidate in enumerate(self.statements):
            if candidate is stmt:
                return index
        return None

    def source_range(self, start_line: int, end_line: int) -> str:
        """Source text of lines ``start_line..end_line`` (1-indexed, inclusive)."""
        if start_line < 1 or end_line < start_line:
            return ""
        return "\n".join(self.lines[start_line - 1:end_line])

    def in_protected_region(self, line: int) -> bool:
        return any(region.contains_line(line) for region in self.freeze_blocks)

    def statement_text(self, stmt: Statement) -> str:
        """Full text of ``stmt`` as it should appear in merged output."""
        if isinstance(stmt, ProtectedRegion):
            return stmt.full_text
        if stmt.position is None:
            return render_markdown(stmt)
        return self.source_range(stmt.position.start_line, stmt.position.end_line)

"""Merge orchestration: analyze both documents, align, resolve, assemble.

Typical use::

    result = merge(template_text, dest_text, MergeOptions(preference="template"))
    if result.success:
        Path("README.md").write_text(result.content)

Output fragments are joined with one blank line. Destination order drives
the output; template-only statements follow at the end when
``add_template_only_nodes`` is set.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from mdmerge.aligner import DestOnly, FileAligner, Match, MatchRefiner, TemplateOnly
from mdmerge.block_types import BlockNode
from mdmerge.code_block_merger import CodeBlockMerger
from mdmerge.conflict_resolver import ConflictResolution, ConflictResolver, validate_preference
from mdmerge.document_analysis import DocumentAnalysis
from mdmerge.freeze_blocks import (
    DEFAULT_FREEZE_TOKEN,
    DEFAULT_PATTERN_TYPE,
    ProtectedRegion,
    marker_pattern,
)
from mdmerge.markdown_parser import ParseError, ParserOptions
from mdmerge.signatures import SignatureOverride, Statement

log = logging.getLogger("mdmerge.merger")

FRAGMENT_SEPARATOR = "\n\n"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MergeError(Exception):
    """Base class for merge failures."""


class TemplateParseError(MergeError, ParseError):
    """The template document could not be parsed."""


class DestinationParseError(MergeError, ParseError):
    """The destination document could not be parsed."""


# ---------------------------------------------------------------------------
# Options and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MergeOptions:
    preference: str = "destination"
    add_template_only_nodes: bool = False
    freeze_token: str = DEFAULT_FREEZE_TOKEN
    marker_pattern: str = DEFAULT_PATTERN_TYPE
    signature_override: SignatureOverride | None = None
    match_refiner: MatchRefiner | None = None
    parser_options: ParserOptions | None = None
    inner_merge_code_blocks: bool = True
    code_block_merger: CodeBlockMerger | None = None

    def __post_init__(self) -> None:
        validate_preference(self.preference)
        # Raises for an unknown family or an empty token.
        marker_pattern(self.marker_pattern, self.freeze_token)


@dataclass(frozen=True, slots=True)
class FrozenBlockInfo:
    start_line: int
    end_line: int
    reason: str | None = None


@dataclass(slots=True)
class MergeStats:
    nodes_added: int = 0
    # Never incremented: dropped template-only statements are not counted.
    nodes_removed: int = 0
    nodes_modified: int = 0
    merge_time_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class MergeResult:
    content: str
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    frozen_blocks: list[FrozenBlockInfo] = field(default_factory=list)
    stats: MergeStats = field(default_factory=MergeStats)

    @property
    def success(self) -> bool:
        return not self.conflicts

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_frozen_blocks(self) -> bool:
        return bool(self.frozen_blocks)

    @property
    def frozen_count(self) -> int:
        return len(self.frozen_blocks)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready summary, without the merged content."""
        return {
            "success": self.success,
            "conflicts": list(self.conflicts),
            "frozen_blocks": [
                {"start_line": b.start_line, "end_line": b.end_line, "reason": b.reason}
                for b in self.frozen_blocks
            ],
            "stats": {
                "nodes_added": self.stats.nodes_added,
                "nodes_removed": self.stats.nodes_removed,
                "nodes_modified": self.stats.nodes_modified,
                "merge_time_ms": self.stats.merge_time_ms,
            },
        }


def _frozen_info(region: ProtectedRegion) -> FrozenBlockInfo:
    return FrozenBlockInfo(region.start_line, region.end_line, region.reason)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SmartMerger:
    """Merges a template document into a destination document.

    Both documents are analyzed in the constructor, so parse failures surface
    here as ``TemplateParseError`` / ``DestinationParseError``.
    """

    def __init__(
        self,
        template: str,
        dest: str,
        options: MergeOptions | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options or MergeOptions()
        self._log = logger or log

        try:
            self.template_analysis = self._analyze(template)
        except ParseError as exc:
            raise TemplateParseError(
                f"Template parse error: {exc}", content=template, errors=exc.errors,
            ) from exc
        try:
            self.dest_analysis = self._analyze(dest)
        except ParseError as exc:
            raise DestinationParseError(
                f"Destination parse error: {exc}", content=dest, errors=exc.errors,
            ) from exc

        self.aligner = FileAligner(
            self.template_analysis,
            self.dest_analysis,
            self.options.match_refiner,
            logger=self._log,
        )
        self.resolver = ConflictResolver(
            self.options.preference, self.template_analysis, self.dest_analysis,
        )
        if self.options.code_block_merger is not None:
            self.code_block_merger = self.options.code_block_merger
        else:
            self.code_block_merger = CodeBlockMerger(
                enabled=self.options.inner_merge_code_blocks, logger=self._log,
            )

    def _analyze(self, source: str) -> DocumentAnalysis:
        return DocumentAnalysis(
            source,
            freeze_token=self.options.freeze_token,
            signature_override=self.options.signature_override,
            parser_options=self.options.parser_options,
            marker_pattern=self.options.marker_pattern,
            logger=self._log,
        )

    def merge(self) -> str:
        """Merged document text."""
        return self.merge_result().content

    def merge_result(self) -> MergeResult:
        t0 = time.perf_counter()
        entries = self.aligner.align()

        fragments: list[str] = []
        frozen: list[FrozenBlockInfo] = []
        stats = MergeStats()

        for entry in entries:
            match entry:
                case Match(template_stmt=t_stmt, dest_stmt=d_stmt):
                    resolution = self.resolver.resolve(t_stmt, d_stmt)
                    fragments.append(self._render_match(resolution))
                    if isinstance(resolution.chosen, ProtectedRegion):
                        frozen.append(_frozen_info(resolution.chosen))
                    if resolution.decision != "identical":
                        stats.nodes_modified += 1
                case TemplateOnly(stmt=stmt):
                    if self.options.add_template_only_nodes:
                        fragments.append(self.template_analysis.statement_text(stmt))
                        stats.nodes_added += 1
                case DestOnly(stmt=stmt):
                    fragments.append(self.dest_analysis.statement_text(stmt))
                    if isinstance(stmt, ProtectedRegion):
                        frozen.append(_frozen_info(stmt))

        content = FRAGMENT_SEPARATOR.join(fragments)
        stats.merge_time_ms = round((time.perf_counter() - t0) * 1000, 2)
        self._log.debug(
            "Merge complete: %d fragments, added=%d modified=%d frozen=%d in %.2fms",
            len(fragments), stats.nodes_added, stats.nodes_modified,
            len(frozen), stats.merge_time_ms,
        )
        return MergeResult(content=content, frozen_blocks=frozen, stats=stats)

    def _render_match(self, resolution: ConflictResolution) -> str:
        if resolution.decision in ("preference_template", "preference_destination"):
            inner = self._try_inner_merge(resolution.template_node, resolution.dest_node)
            if inner is not None:
                return inner
        if resolution.source == "template":
            return self.template_analysis.statement_text(resolution.template_node)
        return self.dest_analysis.statement_text(resolution.dest_node)

    def _try_inner_merge(self, template_stmt: Statement, dest_stmt: Statement) -> str | None:
        if not (
            isinstance(template_stmt, BlockNode)
            and isinstance(dest_stmt, BlockNode)
            and template_stmt.kind == "code_block"
            and dest_stmt.kind == "code_block"
        ):
            return None
        result = self.code_block_merger.merge_code_blocks(
            template_stmt,
            dest_stmt,
            self.options.preference,
            add_template_only_nodes=self.options.add_template_only_nodes,
        )
        if not result.merged:
            self._log.debug(
                "Inner merge skipped at dest line %s: %s", dest_stmt.start_line, result.reason,
            )
            return None
        return result.content


def merge(
    template_text: str,
    dest_text: str,
    options: MergeOptions | None = None,
    *,
    logger: logging.Logger | None = None,
) -> MergeResult:
    """Merge ``template_text`` into ``dest_text``.

    Raises:
        TemplateParseError: the template could not be parsed.
        DestinationParseError: the destination could not be parsed.
    """
    return SmartMerger(template_text, dest_text, options, logger=logger).merge_result()

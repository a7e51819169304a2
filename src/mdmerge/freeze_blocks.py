"""Freeze blocks: user-protected regions preserved verbatim across merges.

Default (HTML comment) marker syntax::

    <!-- mdmerge:freeze Manual TOC -->
    ## Table of Contents
    - [Introduction](#introduction)
    <!-- mdmerge:unfreeze -->

The text after ``freeze`` up to ``-->`` is the optional reason.

Scanning is a single pass with a stack of open markers. A close marker pops
the most recent open marker and emits one region spanning marker to marker.
A pair closed while another marker is still open is absorbed into the outer
region's raw content instead of producing a region of its own, so regions
never overlap. An unmatched close marker is ignored; open markers still on
the stack at end of input are discarded (pairs closed inside them survive).
Both anomalies are logged and never fatal.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import ClassVar

from mdmerge.block_types import BlockNode
from mdmerge.signatures import PROTECTED_SIGNATURE_KIND, Signature, digest

log = logging.getLogger("mdmerge.freeze_blocks")

DEFAULT_FREEZE_TOKEN = "mdmerge"
DEFAULT_PATTERN_TYPE = "html_comment"

# {token} is substituted with the escaped freeze token.
_MARKER_TEMPLATES: dict[str, str] = {
    "html_comment": r"^\s*<!--\s*{token}:(freeze|unfreeze)\b(.*?)-->\s*$",
    "hash_comment": r"^\s*#\s*{token}:(freeze|unfreeze)\b(.*?)\s*$",
}
MARKER_PATTERN_TYPES: frozenset[str] = frozenset(_MARKER_TEMPLATES)


def marker_pattern(pattern_type: str, token: str) -> re.Pattern[str]:
    """Compile the open/close marker regex for ``pattern_type``.

    Group 1 is ``freeze`` or ``unfreeze``; group 2 is the raw reason text.
    """
    template = _MARKER_TEMPLATES.get(pattern_type)
    if template is None:
        raise ValueError(
            f"Unknown freeze marker pattern {pattern_type!r}; "
            f"expected one of {sorted(MARKER_PATTERN_TYPES)}"
        )
    if not token:
        raise ValueError("freeze token cannot be empty")
    return re.compile(template.replace("{token}", re.escape(token)))


@dataclass(frozen=True, slots=True, eq=False)
class ProtectedRegion:
    """A frozen span of source lines, markers included."""

    is_protected: ClassVar[bool] = True

    start_line: int
    end_line: int
    content: str
    start_marker: str
    end_marker: str
    reason: str | None = None
    nodes: tuple[BlockNode, ...] = field(default=(), repr=False)
    pattern_type: str = DEFAULT_PATTERN_TYPE

    def __post_init__(self) -> None:
        if self.start_line < 1:
            raise ValueError(f"start_line must be >= 1, got {self.start_line}")
        if self.end_line <= self.start_line:
            raise ValueError(
                f"end_line ({self.end_line}) must be > start_line ({self.start_line})"
            )

    @property
    def signature(self) -> Signature:
        return (PROTECTED_SIGNATURE_KIND, digest(self.content.strip()))

    @property
    def line_range(self) -> tuple[int, int]:
        return (self.start_line, self.end_line)

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def full_text(self) -> str:
        """The region exactly as written, markers included."""
        if self.end_line == self.start_line + 1:
            return f"{self.start_marker}\n{self.end_marker}"
        return f"{self.start_marker}\n{self.content}\n{self.end_marker}"

    def contains_kind(self, kind: str) -> bool:
        return any(node.kind == kind for node in self.nodes)

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True, slots=True)
class _Marker:
    line: int
    is_open: bool
    text: str
    reason: str | None


def _find_markers(
    lines: Sequence[str],
    pattern: re.Pattern[str],
) -> list[_Marker]:
    markers: list[_Marker] = []
    for index, line in enumerate(lines):
        m = pattern.match(line)
        if not m:
            continue
        reason = m.group(2).strip() or None
        markers.append(_Marker(
            line=index + 1,
            is_open=m.group(1) == "freeze",
            text=line,
            reason=reason,
        ))
    return markers


def scan_freeze_blocks(
    lines: Sequence[str],
    token: str = DEFAULT_FREEZE_TOKEN,
    *,
    pattern_type: str = DEFAULT_PATTERN_TYPE,
    parse: Callable[[str], tuple[BlockNode, ...]] | None = None,
    logger: logging.Logger | None = None,
) -> list[ProtectedRegion]:
    """Find well-formed protected regions in ``lines``, sorted by start line.

    Args:
        lines: Source lines (no line terminators).
        token: Freeze token embedded in the markers.
        pattern_type: Marker family, see ``MARKER_PATTERN_TYPES``.
        parse: Re-parses region content into child nodes for introspection.
            Parse failures are logged and leave the region without nodes.
        logger: Diagnostics sink, defaults to the module logger.
    """
    logger = logger or log
    pattern = marker_pattern(pattern_type, token)
    markers = _find_markers(lines, pattern)
    logger.debug("Found %d freeze markers (token=%r)", len(markers), token)

    regions: list[ProtectedRegion] = []
    # Each open marker carries the regions closed inside it; they are
    # absorbed when the opener closes and kept only if it never does.
    stack: list[tuple[_Marker, list[ProtectedRegion]]] = []
    for marker in markers:
        if marker.is_open:
            stack.append((marker, []))
            continue
        if not stack:
            logger.warning("Unmatched unfreeze marker at line %d ignored", marker.line)
            continue
        opener, _inner = stack.pop()
        region = _build_region(lines, opener, marker, pattern_type, parse, logger)
        if stack:
            logger.debug(
                "Nested freeze block at lines %d-%d absorbed by outer marker at line %d",
                region.start_line, region.end_line, stack[-1][0].line,
            )
            stack[-1][1].append(region)
        else:
            regions.append(region)

    for unclosed, inner in stack:
        logger.warning("Unclosed freeze marker at line %d discarded", unclosed.line)
        regions.extend(inner)

    regions.sort(key=lambda r: r.start_line)
    return regions


def _build_region(
    lines: Sequence[str],
    opener: _Marker,
    closer: _Marker,
    pattern_type: str,
    parse: Callable[[str], tuple[BlockNode, ...]] | None,
    logger: logging.Logger,
) -> ProtectedRegion:
    # Content is strictly between the marker lines.
    content = "\n".join(lines[opener.line:closer.line - 1])
    nodes: tuple[BlockNode, ...] = ()
    if content and parse is not None:
        try:
            nodes = tuple(parse(content))
        except ValueError as exc:
            logger.warning(
                "Could not parse freeze block content at lines %d-%d: %s",
                opener.line, closer.line, exc,
            )
    return ProtectedRegion(
        start_line=opener.line,
        end_line=closer.line,
        content=content,
        start_marker=opener.text,
        end_marker=closer.text,
        reason=opener.reason,
        nodes=nodes,
        pattern_type=pattern_type,
    )

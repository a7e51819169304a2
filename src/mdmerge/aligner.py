"""Statement alignment between a template and a destination document.

Three passes:
1. Exact: statements bucketed by signature; for every signature present on
   both sides the i-th template occurrence pairs with the i-th destination
   occurrence. Surplus occurrences stay unmatched.
2. Fuzzy (optional): a match refiner proposes extra pairs among the
   statements still unmatched on both sides.
3. Remainder: unmatched template statements become ``TemplateOnly``,
   unmatched destination statements ``DestOnly``.

Entries are returned in destination order (``Match`` and ``DestOnly`` by
destination index) followed by ``TemplateOnly`` entries in template order.
Every statement of both documents appears in exactly one entry.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from mdmerge.document_analysis import DocumentAnalysis
from mdmerge.signatures import REFINED_MATCH_SIGNATURE_KIND, Signature, Statement

log = logging.getLogger("mdmerge.aligner")


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A fuzzy pairing proposed by a match refiner."""

    template_node: Statement
    dest_node: Statement
    score: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"score must be in [0.0, 1.0], got {self.score}")


class MatchRefiner(Protocol):
    """Proposes matches among statements left unmatched by signature."""

    def __call__(
        self,
        template_nodes: Sequence[Statement],
        dest_nodes: Sequence[Statement],
        context: dict[str, Any] | None = None,
    ) -> list[MatchResult]: ...


@dataclass(frozen=True, slots=True)
class Match:
    template_index: int
    dest_index: int
    signature: Signature
    template_stmt: Statement
    dest_stmt: Statement


@dataclass(frozen=True, slots=True)
class TemplateOnly:
    template_index: int
    stmt: Statement
    signature: Signature | None = None


@dataclass(frozen=True, slots=True)
class DestOnly:
    dest_index: int
    stmt: Statement
    signature: Signature | None = None


type AlignmentEntry = Match | TemplateOnly | DestOnly


def _signature_buckets(analysis: DocumentAnalysis) -> dict[Signature, list[int]]:
    buckets: dict[Signature, list[int]] = defaultdict(list)
    for index in range(len(analysis.statements)):
        signature = analysis.signature_at(index)
        if signature is not None:
            buckets[signature].append(index)
    return buckets


def _sort_key(entry: AlignmentEntry) -> tuple[int, int]:
    match entry:
        case Match(dest_index=d) | DestOnly(dest_index=d):
            return (0, d)
        case TemplateOnly(template_index=t):
            return (1, t)
    raise TypeError(f"Unknown alignment entry {entry!r}")


def align(
    template: DocumentAnalysis,
    dest: DocumentAnalysis,
    refiner: MatchRefiner | None = None,
    *,
    logger: logging.Logger | None = None,
) -> list[AlignmentEntry]:
    """Align the statements of ``template`` and ``dest``."""
    logger = logger or log
    t_stmts = template.statements
    d_stmts = dest.statements

    matched_t: set[int] = set()
    matched_d: set[int] = set()
    entries: list[AlignmentEntry] = []

    # Pass 1: exact signatures.
    d_buckets = _signature_buckets(dest)
    for signature, t_indices in _signature_buckets(template).items():
        d_indices = d_buckets.get(signature)
        if not d_indices:
            continue
        for t_idx, d_idx in zip(t_indices, d_indices):
            entries.append(Match(t_idx, d_idx, signature, t_stmts[t_idx], d_stmts[d_idx]))
            matched_t.add(t_idx)
            matched_d.add(d_idx)

    # Pass 2: refiner over the leftovers.
    if refiner is not None:
        unmatched_t = [s for i, s in enumerate(t_stmts) if i not in matched_t]
        unmatched_d = [s for i, s in enumerate(d_stmts) if i not in matched_d]
        if unmatched_t and unmatched_d:
            proposals = refiner(
                unmatched_t,
                unmatched_d,
                {"template_analysis": template, "dest_analysis": dest},
            )
            for proposal in proposals:
                t_idx = template.index_of(proposal.template_node)
                d_idx = dest.index_of(proposal.dest_node)
                if t_idx is None or d_idx is None:
                    logger.debug("Dropping refiner match for a statement not in the document")
                    continue
                if t_idx in matched_t or d_idx in matched_d:
                    logger.debug("Dropping refiner match for already matched statement")
                    continue
                entries.append(Match(
                    t_idx,
                    d_idx,
                    (REFINED_MATCH_SIGNATURE_KIND, proposal.score),
                    t_stmts[t_idx],
                    d_stmts[d_idx],
                ))
                matched_t.add(t_idx)
                matched_d.add(d_idx)

    # Pass 3: remainder.
    for t_idx, stmt in enumerate(t_stmts):
        if t_idx not in matched_t:
            entries.append(TemplateOnly(t_idx, stmt, template.signature_at(t_idx)))
    for d_idx, stmt in enumerate(d_stmts):
        if d_idx not in matched_d:
            entries.append(DestOnly(d_idx, stmt, dest.signature_at(d_idx)))

    entries.sort(key=_sort_key)
    summary = alignment_summary(entries)
    logger.debug(
        "Alignment complete: %d entries (%d matches, %d template-only, %d dest-only)",
        len(entries), summary["match"], summary["template_only"], summary["dest_only"],
    )
    return entries


def alignment_summary(entries: Sequence[AlignmentEntry]) -> dict[str, int]:
    """Count entries per type."""
    counts = {"match": 0, "template_only": 0, "dest_only": 0}
    for entry in entries:
        match entry:
            case Match():
                counts["match"] += 1
            case TemplateOnly():
                counts["template_only"] += 1
            case DestOnly():
                counts["dest_only"] += 1
    return counts


class FileAligner:
    """Alignment bound to a pair of analyses and an optional refiner."""

    def __init__(
        self,
        template_analysis: DocumentAnalysis,
        dest_analysis: DocumentAnalysis,
        match_refiner: MatchRefiner | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.template_analysis = template_analysis
        self.dest_analysis = dest_analysis
        self.match_refiner = match_refiner
        self._log = logger or log

    def align(self) -> list[AlignmentEntry]:
        return align(
            self.template_analysis,
            self.dest_analysis,
            self.match_refiner,
            logger=self._log,
        )

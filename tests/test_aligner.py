"""Tests for mdmerge.aligner."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from mdmerge.aligner import (
    DestOnly,
    FileAligner,
    Match,
    MatchResult,
    TemplateOnly,
    align,
    alignment_summary,
)
from mdmerge.block_types import BlockNode
from mdmerge.document_analysis import DocumentAnalysis
from mdmerge.signatures import NO_SIGNATURE, Statement


def _pair(template: str, dest: str) -> tuple[DocumentAnalysis, DocumentAnalysis]:
    return DocumentAnalysis(template), DocumentAnalysis(dest)


def _assert_total(
    entries: Sequence[Any], template: DocumentAnalysis, dest: DocumentAnalysis,
) -> None:
    t_seen: list[int] = []
    d_seen: list[int] = []
    for entry in entries:
        if isinstance(entry, Match):
            t_seen.append(entry.template_index)
            d_seen.append(entry.dest_index)
        elif isinstance(entry, TemplateOnly):
            t_seen.append(entry.template_index)
        else:
            d_seen.append(entry.dest_index)
    assert sorted(t_seen) == list(range(len(template)))
    assert sorted(d_seen) == list(range(len(dest)))


class RecordingRefiner:
    def __init__(self, pick: Any) -> None:
        self.pick = pick
        self.calls: list[tuple[list[Statement], list[Statement], dict[str, Any] | None]] = []

    def __call__(
        self,
        template_nodes: Sequence[Statement],
        dest_nodes: Sequence[Statement],
        context: dict[str, Any] | None = None,
    ) -> list[MatchResult]:
        self.calls.append((list(template_nodes), list(dest_nodes), context))
        return self.pick(template_nodes, dest_nodes)


class TestMatchResult:
    def test_score_bounds(self) -> None:
        node = BlockNode(kind="paragraph")
        with pytest.raises(ValueError):
            MatchResult(node, node, 1.5)
        with pytest.raises(ValueError):
            MatchResult(node, node, -0.1)


class TestAlign:
    def test_identical_documents_fully_match(self) -> None:
        text = "# T\n\nPara\n\n- a\n- b\n\n```\ncode\n```"
        template, dest = _pair(text, text)
        entries = align(template, dest)
        assert all(isinstance(e, Match) for e in entries)
        assert [(e.template_index, e.dest_index) for e in entries] == [(i, i) for i in range(4)]

    def test_changed_paragraph(self) -> None:
        template, dest = _pair("# T\n\nA", "# T\n\nB")
        entries = align(template, dest)
        assert [type(e) for e in entries] == [Match, DestOnly, TemplateOnly]
        assert entries[0].signature == ("heading", 1, "T")

    def test_duplicate_signatures_pair_in_order(self) -> None:
        template, dest = _pair("A\n\nA\n\nA", "A\n\nA")
        entries = align(template, dest)
        matches = [e for e in entries if isinstance(e, Match)]
        assert [(m.template_index, m.dest_index) for m in matches] == [(0, 0), (1, 1)]
        assert isinstance(entries[-1], TemplateOnly)
        assert entries[-1].template_index == 2

    def test_ordering_dest_first_then_template_only(self) -> None:
        template, dest = _pair("# New\n\n# Shared", "Intro\n\n# Shared\n\nOutro")
        entries = align(template, dest)
        assert [type(e) for e in entries] == [DestOnly, Match, DestOnly, TemplateOnly]
        assert [getattr(e, "dest_index", None) for e in entries[:3]] == [0, 1, 2]

    def test_totality(self) -> None:
        template, dest = _pair(
            "# A\n\nx\n\n# B\n\n- 1\n- 2\n\n***\n\ny",
            "# B\n\nz\n\n- 3\n- 4\n\n# A\n\n***\n\n***",
        )
        _assert_total(align(template, dest), template, dest)

    def test_empty_documents(self) -> None:
        template, dest = _pair("", "")
        assert align(template, dest) == []

    def test_unsigned_statements_never_match(self) -> None:
        template = DocumentAnalysis("# T", signature_override=lambda s: NO_SIGNATURE)
        dest = DocumentAnalysis("# T", signature_override=lambda s: NO_SIGNATURE)
        entries = align(template, dest)
        assert [type(e) for e in entries] == [DestOnly, TemplateOnly]


class TestRefinerPass:
    def test_refined_match_signature(self) -> None:
        template, dest = _pair("# T\n\nA", "# T\n\nB")
        refiner = RecordingRefiner(lambda t, d: [MatchResult(t[0], d[0], 0.8)])
        entries = align(template, dest, refiner)
        assert [type(e) for e in entries] == [Match, Match]
        assert entries[1].signature == ("refined_match", 0.8)
        assert (entries[1].template_index, entries[1].dest_index) == (1, 1)

    def test_refiner_sees_only_unmatched(self) -> None:
        template, dest = _pair("# T\n\nA", "# T\n\nB")
        refiner = RecordingRefiner(lambda t, d: [])
        align(template, dest, refiner)
        (t_nodes, d_nodes, context), = refiner.calls
        assert t_nodes == [template.statements[1]]
        assert d_nodes == [dest.statements[1]]
        assert context == {"template_analysis": template, "dest_analysis": dest}

    def test_refiner_skipped_when_one_side_fully_matched(self) -> None:
        template, dest = _pair("# T", "# T\n\nExtra")
        refiner = RecordingRefiner(lambda t, d: [])
        align(template, dest, refiner)
        assert refiner.calls == []

    def test_foreign_statement_dropped(self) -> None:
        template, dest = _pair("A", "B")
        stranger = DocumentAnalysis("A").statements[0]
        refiner = RecordingRefiner(lambda t, d: [MatchResult(stranger, d[0], 0.9)])
        entries = align(template, dest, refiner)
        assert [type(e) for e in entries] == [DestOnly, TemplateOnly]

    def test_conflicting_proposals_first_wins(self) -> None:
        template, dest = _pair("A\n\nC", "B")
        refiner = RecordingRefiner(lambda t, d: [
            MatchResult(t[1], d[0], 0.9),
            MatchResult(t[0], d[0], 0.7),
        ])
        entries = align(template, dest, refiner)
        matches = [e for e in entries if isinstance(e, Match)]
        assert [(m.template_index, m.dest_index) for m in matches] == [(1, 0)]
        _assert_total(entries, template, dest)


class TestSummaryAndWrapper:
    def test_alignment_summary(self) -> None:
        template, dest = _pair("# T\n\nA\n\nC", "# T\n\nB")
        assert alignment_summary(align(template, dest)) == {
            "match": 1, "template_only": 2, "dest_only": 1,
        }

    def test_file_aligner(self) -> None:
        template, dest = _pair("# T\n\nA", "# T\n\nB")
        aligner = FileAligner(template, dest)
        assert aligner.align() == align(template, dest)

"""Tests for mdmerge.table_match."""
from __future__ import annotations

import pytest

from mdmerge.block_types import BlockNode
from mdmerge.markdown_parser import parse_blocks
from mdmerge.table_match import (
    DEFAULT_WEIGHTS,
    extract_rows,
    first_column_score,
    header_match_score,
    levenshtein_distance,
    position_score,
    resolve_weights,
    row_content_score,
    score_breakdown,
    score_tables,
    string_similarity,
    total_cells_score,
    weighted_average,
)

NAME_VALUE = "| Name | Value |\n|---|---|\n| a | 1 |"
NAME_AGE = "| Name | Age |\n|---|---|\n| a | 30 |"
PRODUCT_PRICE = "| Product | Price |\n|---|---|\n| x | 9 |"


def _table(source: str) -> BlockNode:
    return parse_blocks(source)[0]


# ───────────────────── String similarity ──────────────────────────────


class TestLevenshtein:
    def test_empty(self) -> None:
        assert levenshtein_distance("", "") == 0
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abcd", "") == 4

    def test_single_substitution(self) -> None:
        assert levenshtein_distance("hello", "hallo") == 1

    def test_classic(self) -> None:
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_symmetric(self) -> None:
        for a, b in [("value", "age"), ("flaw", "lawn"), ("abc", "")]:
            assert levenshtein_distance(a, b) == levenshtein_distance(b, a)

    def test_identical(self) -> None:
        assert levenshtein_distance("same", "same") == 0


class TestStringSimilarity:
    def test_normalizes_case_and_whitespace(self) -> None:
        assert string_similarity("  Name ", "name") == 1.0

    def test_one_side_empty(self) -> None:
        assert string_similarity("", "x") == 0.0
        assert string_similarity(None, "x") == 0.0

    def test_both_empty(self) -> None:
        assert string_similarity("", "  ") == 1.0

    def test_near_match(self) -> None:
        assert string_similarity("Value", "Values") == pytest.approx(1 - 1 / 6)


# ───────────────────── Factors ────────────────────────────────────────


class TestFactors:
    rows_a = [["Name", "Value"], ["a", "1"]]
    rows_b = [["Name", "Age"], ["a", "30"]]

    def test_header_match(self) -> None:
        assert header_match_score(self.rows_a, self.rows_b) == pytest.approx(0.7)

    def test_header_width_mismatch_penalized(self) -> None:
        assert header_match_score([["A", "B"]], [["A"]]) == pytest.approx(0.5)

    def test_first_column(self) -> None:
        assert first_column_score(self.rows_a, self.rows_b) == 1.0
        assert first_column_score([["x"]], []) == 0.0

    def test_row_content(self) -> None:
        assert row_content_score(self.rows_a, self.rows_b) == pytest.approx(0.6)

    def test_row_content_no_linked_rows(self) -> None:
        assert row_content_score([["alpha", "1"]], [["omega", "1"]]) == 0.0

    def test_total_cells(self) -> None:
        assert total_cells_score(self.rows_a, self.rows_b) == pytest.approx(0.5)

    def test_total_cells_one_to_one(self) -> None:
        # The single "x" on the right can be used only once.
        assert total_cells_score([["x", "x"]], [["x"]]) == pytest.approx(0.5)

    def test_position(self) -> None:
        assert position_score(None, 3) == 1.0
        assert position_score(0, 0, 2, 1) == 1.0
        assert position_score(1, 0, 2, 1) == pytest.approx(0.5)
        assert position_score(5, 0, 0, 0) == 0.0


# ───────────────────── Combined score ─────────────────────────────────


class TestScoreTables:
    def test_extract_rows(self) -> None:
        assert extract_rows(_table(NAME_VALUE)) == [["Name", "Value"], ["a", "1"]]

    def test_identical_tables_score_one(self) -> None:
        a, b = _table(NAME_VALUE), _table(NAME_VALUE)
        assert score_tables(a, b) == pytest.approx(1.0)
        assert score_tables(a, b, position_a=2, position_b=2, total_a=3, total_b=3) == (
            pytest.approx(1.0)
        )

    def test_identical_tables_position_excluded(self) -> None:
        a, b = _table(NAME_VALUE), _table(NAME_VALUE)
        score = score_tables(
            a, b, position_a=0, position_b=4, total_a=5, total_b=5,
            weights={"position": 0.0},
        )
        assert score == pytest.approx(1.0)

    def test_similar_tables(self) -> None:
        score = score_tables(
            _table(NAME_VALUE), _table(NAME_AGE),
            position_a=0, position_b=0, total_a=2, total_b=1,
        )
        assert score == pytest.approx(0.75)

    def test_dissimilar_tables_below_default_threshold(self) -> None:
        score = score_tables(
            _table(PRODUCT_PRICE), _table(NAME_AGE),
            position_a=1, position_b=0, total_a=2, total_b=1,
        )
        assert score < 0.5

    def test_empty_table_scores_zero(self) -> None:
        empty = BlockNode(kind="table")
        assert score_tables(empty, _table(NAME_VALUE)) == 0.0
        assert score_tables(_table(NAME_VALUE), empty) == 0.0

    def test_bounds(self) -> None:
        tables = [_table(NAME_VALUE), _table(NAME_AGE), _table(PRODUCT_PRICE)]
        for i, a in enumerate(tables):
            for j, b in enumerate(tables):
                score = score_tables(a, b, position_a=i, position_b=j, total_a=3, total_b=3)
                assert 0.0 <= score <= 1.0

    def test_breakdown(self) -> None:
        breakdown = score_breakdown(_table(NAME_VALUE), _table(NAME_AGE))
        assert set(breakdown.factors) == set(DEFAULT_WEIGHTS)
        assert breakdown.weights == DEFAULT_WEIGHTS
        assert breakdown.factors["position"] == 1.0


class TestWeights:
    def test_resolve_merges_over_defaults(self) -> None:
        weights = resolve_weights({"header_match": 0.5})
        assert weights["header_match"] == 0.5
        assert weights["position"] == DEFAULT_WEIGHTS["position"]

    def test_unknown_weight(self) -> None:
        with pytest.raises(ValueError, match="Unknown table weight"):
            resolve_weights({"colour": 1.0})

    def test_negative_weight(self) -> None:
        with pytest.raises(ValueError):
            resolve_weights({"position": -1.0})

    def test_zero_total_weight(self) -> None:
        factors = {name: 1.0 for name in DEFAULT_WEIGHTS}
        zero = {name: 0.0 for name in DEFAULT_WEIGHTS}
        assert weighted_average(factors, zero) == 0.0

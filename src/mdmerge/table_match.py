"""Multi-factor similarity score between two Markdown tables.

Factors, each in [0, 1]:

  (A) header_match   positional similarity of header cells
  (B) first_column   symmetric best-match similarity of first-column cells
  (C) row_content    cell similarity of rows linked by their first cell
  (D) total_cells    greedy one-to-one matching of all cells
  (E) position       closeness of the tables' normalized positions

The score is the weighted average of the factors. Cell comparisons use a
normalized Levenshtein similarity, so "Value" vs "Values" still scores high.

Levenshtein is O(len(a) * len(b)) per pair; callers scoring untrusted input
should bound cell length first.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from mdmerge.block_types import BlockNode


DEFAULT_WEIGHTS: dict[str, float] = {
    "header_match": 0.25,
    "first_column": 0.20,
    "row_content": 0.25,
    "total_cells": 0.15,
    "position": 0.15,
}
FACTOR_NAMES: tuple[str, ...] = tuple(DEFAULT_WEIGHTS)

# Minimum first-cell similarity for two rows to be linked in factor (C).
FIRST_COLUMN_SIMILARITY_THRESHOLD = 0.7
# Minimum similarity for a cell pairing to count in factor (D).
TOTAL_CELLS_SIMILARITY_THRESHOLD = 0.5

type Rows = list[list[str]]


# ---------------------------------------------------------------------------
# String similarity
# ---------------------------------------------------------------------------

def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit insert/delete/substitute costs.

    Two rolling rows sized by the shorter string.
    """
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) > len(b):
        a, b = b, a

    prev = list(range(len(a) + 1))
    curr = [0] * (len(a) + 1)
    for j, cb in enumerate(b, start=1):
        curr[0] = j
        for i, ca in enumerate(a, start=1):
            cost = 0 if ca == cb else 1
            curr[i] = min(
                curr[i - 1] + 1,      # insertion
                prev[i] + 1,          # deletion
                prev[i - 1] + cost,   # substitution
            )
        prev, curr = curr, prev
    return prev[len(a)]


def normalize_cell(value: str | None) -> str:
    return (value or "").strip().lower()


def string_similarity(a: str | None, b: str | None) -> float:
    """1 - distance / max_len over trimmed, lowercased strings."""
    na = normalize_cell(a)
    nb = normalize_cell(b)
    if na == nb:
        return 1.0
    if not na or not nb:
        return 0.0
    return 1.0 - levenshtein_distance(na, nb) / max(len(na), len(nb))


# ---------------------------------------------------------------------------
# Table extraction
# ---------------------------------------------------------------------------

def extract_rows(table: BlockNode) -> Rows:
    """Rows of ``table`` as lists of stripped cell text; header row first."""
    rows: Rows = []
    for row in table.children:
        if row.kind != "table_row":
            continue
        rows.append([
            cell.text_content().strip()
            for cell in row.children
            if cell.kind == "table_cell"
        ])
    return rows


def _positional_similarity(row_a: list[str], row_b: list[str]) -> float:
    width = max(len(row_a), len(row_b))
    if width == 0:
        return 1.0
    total = sum(string_similarity(a, b) for a, b in zip(row_a, row_b))
    # Cells missing on the shorter side contribute 0.
    return total / width


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------

def header_match_score(rows_a: Rows, rows_b: Rows) -> float:
    """(A) Positional similarity of the header rows."""
    header_a = rows_a[0] if rows_a else []
    header_b = rows_b[0] if rows_b else []
    if not header_a and not header_b:
        return 1.0
    if not header_a or not header_b:
        return 0.0
    return _positional_similarity(header_a, header_b)


def first_column_score(rows_a: Rows, rows_b: Rows) -> float:
    """(B) Symmetric best-match similarity of first-column cells."""
    col_a = [row[0] for row in rows_a if row]
    col_b = [row[0] for row in rows_b if row]
    if not col_a and not col_b:
        return 1.0
    if not col_a or not col_b:
        return 0.0
    total = sum(max(string_similarity(a, b) for b in col_b) for a in col_a)
    total += sum(max(string_similarity(a, b) for a in col_a) for b in col_b)
    return total / (len(col_a) + len(col_b))


def row_content_score(rows_a: Rows, rows_b: Rows) -> float:
    """(C) Average cell similarity of rows linked by their first cell.

    Each row of A links to the row of B whose first cell is most similar,
    provided the similarity reaches ``FIRST_COLUMN_SIMILARITY_THRESHOLD``.
    Ties keep the first row encountered.
    """
    scores: list[float] = []
    for row_a in rows_a:
        if not row_a:
            continue
        best_row: list[str] | None = None
        best = 0.0
        for row_b in rows_b:
            if not row_b:
                continue
            similarity = string_similarity(row_a[0], row_b[0])
            if similarity > best and similarity >= FIRST_COLUMN_SIMILARITY_THRESHOLD:
                best = similarity
                best_row = row_b
        if best_row is not None:
            scores.append(_positional_similarity(row_a, best_row))
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def total_cells_score(rows_a: Rows, rows_b: Rows) -> float:
    """(D) Greedy one-to-one cell matching over all cells."""
    cells_a = [cell for row in rows_a for cell in row]
    cells_b = [cell for row in rows_b for cell in row]
    if not cells_a and not cells_b:
        return 1.0
    if not cells_a or not cells_b:
        return 0.0

    used: set[int] = set()
    total = 0.0
    for cell_a in cells_a:
        best = 0.0
        best_index: int | None = None
        for index, cell_b in enumerate(cells_b):
            if index in used:
                continue
            similarity = string_similarity(cell_a, cell_b)
            if similarity > best:
                best = similarity
                best_index = index
        if best_index is not None and best > TOTAL_CELLS_SIMILARITY_THRESHOLD:
            used.add(best_index)
            total += best
    return total / max(len(cells_a), len(cells_b))


def position_score(
    position_a: int | None,
    position_b: int | None,
    total_a: int = 1,
    total_b: int = 1,
) -> float:
    """(E) 1 - distance between normalized 0-based positions.

    1.0 when either position is unknown.
    """
    if position_a is None or position_b is None:
        return 1.0
    norm_a = position_a / max(total_a, 1)
    norm_b = position_b / max(total_b, 1)
    return max(0.0, 1.0 - abs(norm_a - norm_b))


# ---------------------------------------------------------------------------
# Combined score
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TableScoreBreakdown:
    """Per-factor scores, the weights applied, and the combined score."""

    factors: dict[str, float]
    weights: dict[str, float]
    score: float


def resolve_weights(weights: Mapping[str, float] | None = None) -> dict[str, float]:
    """Merge ``weights`` over ``DEFAULT_WEIGHTS``."""
    merged = dict(DEFAULT_WEIGHTS)
    if weights:
        unknown = sorted(set(weights) - set(DEFAULT_WEIGHTS))
        if unknown:
            raise ValueError(
                f"Unknown table weight(s) {unknown}; expected names from {list(FACTOR_NAMES)}"
            )
        for name, value in weights.items():
            if value < 0:
                raise ValueError(f"Table weight {name!r} must be >= 0, got {value}")
            merged[name] = float(value)
    return merged


def weighted_average(factors: Mapping[str, float], weights: Mapping[str, float]) -> float:
    total_weight = sum(weights.values())
    if total_weight <= 0:
        return 0.0
    score = sum(weights[name] * factors[name] for name in weights) / total_weight
    return min(1.0, max(0.0, score))


def score_breakdown(
    table_a: BlockNode,
    table_b: BlockNode,
    *,
    position_a: int | None = None,
    position_b: int | None = None,
    total_a: int = 1,
    total_b: int = 1,
    weights: Mapping[str, float] | None = None,
) -> TableScoreBreakdown:
    """Score two tables and keep every factor for inspection."""
    resolved = resolve_weights(weights)
    rows_a = extract_rows(table_a)
    rows_b = extract_rows(table_b)
    if not rows_a or not rows_b:
        return TableScoreBreakdown(
            factors={name: 0.0 for name in FACTOR_NAMES},
            weights=resolved,
            score=0.0,
        )
    factors = {
        "header_match": header_match_score(rows_a, rows_b),
        "first_column": first_column_score(rows_a, rows_b),
        "row_content": row_content_score(rows_a, rows_b),
        "total_cells": total_cells_score(rows_a, rows_b),
        "position": position_score(position_a, position_b, total_a, total_b),
    }
    return TableScoreBreakdown(
        factors=factors,
        weights=resolved,
        score=weighted_average(factors, resolved),
    )


def score_tables(
    table_a: BlockNode,
    table_b: BlockNode,
    *,
    position_a: int | None = None,
    position_b: int | None = None,
    total_a: int = 1,
    total_b: int = 1,
    weights: Mapping[str, float] | None = None,
) -> float:
    """Combined match score of two tables, in [0.0, 1.0]."""
    return score_breakdown(
        table_a,
        table_b,
        position_a=position_a,
        position_b=position_b,
        total_a=total_a,
        total_b=total_b,
        weights=weights,
    ).score

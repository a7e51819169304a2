"""Fuzzy match refiners for statements left unmatched by signature."""
from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from mdmerge.aligner import MatchResult
from mdmerge.block_types import BlockNode
from mdmerge.signatures import Statement
from mdmerge.table_match import resolve_weights, score_tables

DEFAULT_THRESHOLD = 0.5


def greedy_match[T, D](
    template_items: Sequence[T],
    dest_items: Sequence[D],
    score_fn: Callable[[T, D], float],
    *,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[tuple[T, D, float]]:
    """Greedy bipartite matching on a full score matrix.

    Repeatedly takes the highest remaining score that reaches ``threshold``
    and retires both items. Equal scores resolve in template-then-destination
    order.
    """
    candidates: list[tuple[float, int, int]] = []
    for t_idx, t_item in enumerate(template_items):
        for d_idx, d_item in enumerate(dest_items):
            score = score_fn(t_item, d_item)
            if score >= threshold:
                candidates.append((score, t_idx, d_idx))
    # Stable sort keeps first-encountered order among ties.
    candidates.sort(key=lambda c: -c[0])

    used_t: set[int] = set()
    used_d: set[int] = set()
    pairs: list[tuple[T, D, float]] = []
    for score, t_idx, d_idx in candidates:
        if t_idx in used_t or d_idx in used_d:
            continue
        used_t.add(t_idx)
        used_d.add(d_idx)
        pairs.append((template_items[t_idx], dest_items[d_idx], score))
    return pairs


def _is_table(stmt: Statement) -> bool:
    return isinstance(stmt, BlockNode) and stmt.kind == "table"


class TableMatchRefiner:
    """Pairs unmatched tables whose combined table score reaches a threshold.

    A table's position is its index among the unmatched tables of its own
    document, normalized by that list's length.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        weights: Mapping[str, float] | None = None,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be in [0.0, 1.0], got {threshold}")
        self.threshold = threshold
        self.weights = resolve_weights(weights)

    def __call__(
        self,
        template_nodes: Sequence[Statement],
        dest_nodes: Sequence[Statement],
        context: dict[str, Any] | None = None,
    ) -> list[MatchResult]:
        template_tables = [n for n in template_nodes if _is_table(n)]
        dest_tables = [n for n in dest_nodes if _is_table(n)]
        if not template_tables or not dest_tables:
            return []

        t_positions = {id(t): i for i, t in enumerate(template_tables)}
        d_positions = {id(d): i for i, d in enumerate(dest_tables)}

        def score(t_table: BlockNode, d_table: BlockNode) -> float:
            return score_tables(
                t_table,
                d_table,
                position_a=t_positions[id(t_table)],
                position_b=d_positions[id(d_table)],
                total_a=len(template_tables),
                total_b=len(dest_tables),
                weights=self.weights,
            )

        return [
            MatchResult(template_node=t, dest_node=d, score=s)
            for t, d, s in greedy_match(
                template_tables, dest_tables, score, threshold=self.threshold,  # type: ignore[arg-type]
            )
        ]

#!/usr/bin/env python3
"""Report how the tables of two Markdown files score against each other.

Prints, for every template x destination table pair, the five factor scores,
the weighted total, and which pairs the greedy matcher would accept at the
given threshold. Useful for tuning ``--threshold`` and weights before running
a fuzzy merge.

Examples:
  python3 scripts/table_match_report.py template.md README.md

  python3 scripts/table_match_report.py template.md README.md \
    --threshold 0.6 --weight header_match=0.4 --weight position=0
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import orjson

from mdmerge.block_types import BlockNode
from mdmerge.document_analysis import DocumentAnalysis
from mdmerge.markdown_parser import ParseError
from mdmerge.match_refiner import DEFAULT_THRESHOLD, greedy_match
from mdmerge.table_match import extract_rows, resolve_weights, score_breakdown


def dump_json(obj: object) -> None:
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


def parse_weight(value: str) -> tuple[str, float]:
    name, sep, raw = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {value!r}")
    try:
        return name.strip(), float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid weight value in {value!r}") from exc


def top_level_tables(analysis: DocumentAnalysis) -> list[BlockNode]:
    return [
        stmt for stmt in analysis.statements
        if isinstance(stmt, BlockNode) and stmt.kind == "table"
    ]


def _table_summary(table: BlockNode, index: int) -> dict[str, Any]:
    rows = extract_rows(table)
    return {
        "index": index,
        "start_line": table.start_line,
        "header": rows[0] if rows else [],
        "rows": len(rows),
    }


def build_report(
    template_text: str,
    dest_text: str,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    weights: dict[str, float] | None = None,
) -> dict[str, Any]:
    """Score every table pair of the two documents."""
    resolved = resolve_weights(weights)
    t_tables = top_level_tables(DocumentAnalysis(template_text))
    d_tables = top_level_tables(DocumentAnalysis(dest_text))

    pairs: list[dict[str, Any]] = []
    scores: dict[tuple[int, int], float] = {}
    for t_idx, t_table in enumerate(t_tables):
        for d_idx, d_table in enumerate(d_tables):
            breakdown = score_breakdown(
                t_table,
                d_table,
                position_a=t_idx,
                position_b=d_idx,
                total_a=len(t_tables),
                total_b=len(d_tables),
                weights=resolved,
            )
            scores[(t_idx, d_idx)] = breakdown.score
            pairs.append({
                "template_index": t_idx,
                "dest_index": d_idx,
                "factors": {k: round(v, 4) for k, v in breakdown.factors.items()},
                "score": round(breakdown.score, 4),
            })

    accepted = greedy_match(
        range(len(t_tables)),
        range(len(d_tables)),
        lambda t, d: scores[(t, d)],
        threshold=threshold,
    )
    return {
        "threshold": threshold,
        "weights": resolved,
        "template_tables": [_table_summary(t, i) for i, t in enumerate(t_tables)],
        "dest_tables": [_table_summary(d, i) for i, d in enumerate(d_tables)],
        "pairs": pairs,
        "matches": [
            {"template_index": t, "dest_index": d, "score": round(s, 4)}
            for t, d, s in accepted
        ],
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("template", type=Path, help="Template Markdown file")
    parser.add_argument("destination", type=Path, help="Destination Markdown file")
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help=f"Minimum score for a pair to be accepted (default: {DEFAULT_THRESHOLD})",
    )
    parser.add_argument(
        "--weight",
        type=parse_weight,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Override a factor weight (repeatable)",
    )
    args = parser.parse_args(argv)

    try:
        report = build_report(
            args.template.read_text(encoding="utf-8"),
            args.destination.read_text(encoding="utf-8"),
            threshold=args.threshold,
            weights=dict(args.weight) or None,
        )
    except ParseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    dump_json(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())

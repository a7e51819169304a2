#!/usr/bin/env python3
"""Merge a template Markdown file into a destination Markdown file.

Matched blocks keep the destination text unless ``--preference template``;
freeze blocks in either file are carried through verbatim.

Examples:
  python3 scripts/merge_markdown.py template/README.md README.md --output README.md

  python3 scripts/merge_markdown.py template.md dest.md \
    --preference template --add-template-only --fuzzy-tables --threshold 0.6 \
    --stats

  python3 scripts/merge_markdown.py template.md dest.md --config mdmerge.json

Exit codes: 0 on success, 1 on a bad configuration or an unreadable file,
2 when either file cannot be parsed.
"""
from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

import orjson

from mdmerge.config import load_merge_options
from mdmerge.markdown_parser import ParserOptions
from mdmerge.match_refiner import DEFAULT_THRESHOLD, TableMatchRefiner
from mdmerge.merger import MergeError, MergeOptions, merge

log = logging.getLogger("merge_markdown")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Structurally merge a template Markdown file into a destination file."
    )
    parser.add_argument("template", type=Path, help="Template Markdown file")
    parser.add_argument("destination", type=Path, help="Destination Markdown file")
    parser.add_argument(
        "--output", type=Path, default=None,
        help="Write merged Markdown here (default: stdout)",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="JSON configuration file; flags below override it",
    )
    parser.add_argument(
        "--preference",
        choices=("template", "destination"),
        default=None,
        help="Side that wins when matched blocks differ (default: destination)",
    )
    parser.add_argument(
        "--add-template-only",
        action="store_true",
        help="Append blocks that exist only in the template",
    )
    parser.add_argument("--freeze-token", default=None, help="Freeze marker token")
    parser.add_argument(
        "--fuzzy-tables",
        action="store_true",
        help="Pair unmatched tables by content similarity",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help=(
            "Minimum table score for fuzzy table matching; implies --fuzzy-tables "
            f"(default: configured value, else {DEFAULT_THRESHOLD})"
        ),
    )
    parser.add_argument("--footnotes", action="store_true", help="Parse footnote definitions")
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print the merge summary as JSON (stdout with --output, else stderr)",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging to stderr")
    return parser


def _table_refiner(configured: object, threshold: float | None) -> TableMatchRefiner:
    """Table refiner for the flags, keeping configured weights and threshold."""
    if isinstance(configured, TableMatchRefiner):
        if threshold is None:
            return configured
        return TableMatchRefiner(threshold=threshold, weights=configured.weights)
    return TableMatchRefiner(threshold=DEFAULT_THRESHOLD if threshold is None else threshold)


def options_from_args(args: argparse.Namespace) -> MergeOptions:
    options = load_merge_options(args.config) if args.config else MergeOptions()
    changes: dict[str, object] = {}
    if args.preference is not None:
        changes["preference"] = args.preference
    if args.add_template_only:
        changes["add_template_only_nodes"] = True
    if args.freeze_token is not None:
        changes["freeze_token"] = args.freeze_token
    if args.fuzzy_tables or args.threshold is not None:
        changes["match_refiner"] = _table_refiner(options.match_refiner, args.threshold)
    if args.footnotes:
        base = options.parser_options or ParserOptions()
        changes["parser_options"] = dataclasses.replace(base, footnotes=True)
    return dataclasses.replace(options, **changes) if changes else options


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )

    try:
        options = options_from_args(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    try:
        template_text = args.template.read_text(encoding="utf-8")
        dest_text = args.destination.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"error: cannot read input: {exc}", file=sys.stderr)
        return 1

    try:
        result = merge(template_text, dest_text, options)
    except MergeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    content = result.content if result.content.endswith("\n") else result.content + "\n"
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(content, encoding="utf-8")
        log.info("Wrote %s", args.output)
    else:
        sys.stdout.write(content)

    if args.stats:
        payload = orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8")
        stream = sys.stdout if args.output is not None else sys.stderr
        stream.write(payload + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())

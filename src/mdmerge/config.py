"""JSON configuration for merges.

Example ``mdmerge.json``::

    {
      "preference": "template",
      "add_template_only_nodes": true,
      "freeze_token": "mdmerge",
      "marker_pattern": "html_comment",
      "inner_merge_code_blocks": true,
      "parser": {"extensions": ["table", "strikethrough"], "footnotes": true},
      "table_matching": {"enabled": true, "threshold": 0.6,
                         "weights": {"header_match": 0.4}}
    }

Every key is optional. Unknown keys raise ``ValueError`` naming the key.
"""
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import orjson

from mdmerge.markdown_parser import ParserOptions
from mdmerge.match_refiner import DEFAULT_THRESHOLD, TableMatchRefiner
from mdmerge.merger import MergeOptions

TOP_LEVEL_KEYS: frozenset[str] = frozenset({
    "preference",
    "add_template_only_nodes",
    "freeze_token",
    "marker_pattern",
    "inner_merge_code_blocks",
    "parser",
    "table_matching",
})
PARSER_KEYS: frozenset[str] = frozenset({"extensions", "footnotes"})
TABLE_MATCHING_KEYS: frozenset[str] = frozenset({"enabled", "threshold", "weights"})


def _check_keys(section: str, data: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        where = f" in {section!r}" if section else ""
        raise ValueError(
            f"Unknown configuration key(s){where}: {unknown}; expected {sorted(allowed)}"
        )


def _section(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Configuration key {key!r} must be an object")
    return value


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"Configuration key {key!r} must be a boolean, got {value!r}")
    return value


def _str(data: Mapping[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"Configuration key {key!r} must be a string, got {value!r}")
    return value


def parser_options_from_dict(data: Mapping[str, Any]) -> ParserOptions:
    _check_keys("parser", data, PARSER_KEYS)
    extensions = data.get("extensions", ["table"])
    if not isinstance(extensions, list) or not all(isinstance(e, str) for e in extensions):
        raise ValueError("Configuration key 'extensions' must be a list of strings")
    return ParserOptions(
        extensions=tuple(extensions),
        footnotes=_bool(data, "footnotes", False),
    )


def table_refiner_from_dict(data: Mapping[str, Any]) -> TableMatchRefiner | None:
    """``TableMatchRefiner`` for the ``table_matching`` section, or None if disabled.

    A present section is enabled unless it says ``"enabled": false``.
    """
    _check_keys("table_matching", data, TABLE_MATCHING_KEYS)
    if not _bool(data, "enabled", bool(data)):
        return None
    threshold = data.get("threshold", DEFAULT_THRESHOLD)
    if isinstance(threshold, bool) or not isinstance(threshold, int | float):
        raise ValueError(f"Configuration key 'threshold' must be a number, got {threshold!r}")
    weights = data.get("weights") or None
    if weights is not None and not isinstance(weights, dict):
        raise ValueError("Configuration key 'weights' must be an object")
    return TableMatchRefiner(threshold=float(threshold), weights=weights)


def merge_options_from_dict(data: Mapping[str, Any]) -> MergeOptions:
    """Validate a decoded configuration object and build ``MergeOptions``."""
    if not isinstance(data, Mapping):
        raise ValueError("Configuration must be a JSON object")
    _check_keys("", data, TOP_LEVEL_KEYS)
    defaults = MergeOptions()
    return MergeOptions(
        preference=_str(data, "preference", defaults.preference),
        add_template_only_nodes=_bool(
            data, "add_template_only_nodes", defaults.add_template_only_nodes,
        ),
        freeze_token=_str(data, "freeze_token", defaults.freeze_token),
        marker_pattern=_str(data, "marker_pattern", defaults.marker_pattern),
        inner_merge_code_blocks=_bool(
            data, "inner_merge_code_blocks", defaults.inner_merge_code_blocks,
        ),
        parser_options=parser_options_from_dict(_section(data, "parser")),
        match_refiner=table_refiner_from_dict(_section(data, "table_matching")),
    )


def load_merge_options(path: Path) -> MergeOptions:
    """Read a JSON configuration file into ``MergeOptions``."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ValueError(f"Cannot read configuration file {path}: {exc}") from exc
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file {path}: {exc}") from exc
    return merge_options_from_dict(data)

"""Inner merge of matched fenced code blocks through per-language sub-mergers.

A sub-merger is any callable ``(template_body, dest_body, preference) ->
SubMergeResult``; ``add_template_only_nodes`` is passed as a keyword to
sub-mergers whose signature accepts it. Languages are looked up
case-insensitively by the first word of the fence info. A sub-merger that
declines or raises never fails the overall merge: the caller falls back to
ordinary conflict resolution for the whole block.

Built-in sub-mergers:
  json   recursive object merge (orjson)
"""
from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import orjson

from mdmerge.block_types import BlockNode

log = logging.getLogger("mdmerge.code_block_merger")


@dataclass(frozen=True, slots=True)
class SubMergeResult:
    merged: bool
    content: str = ""
    stats: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None


def not_merged(reason: str) -> SubMergeResult:
    return SubMergeResult(merged=False, reason=reason)


type SubMerger = Callable[..., SubMergeResult]


def _accepts_keyword(func: Callable[..., Any], name: str) -> bool:
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(
        p.kind is inspect.Parameter.VAR_KEYWORD
        or (p.name == name and p.kind is not inspect.Parameter.POSITIONAL_ONLY)
        for p in params
    )


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def _merge_values(
    template: Any,
    dest: Any,
    preference: str,
    add_template_only: bool,
    stats: dict[str, int],
) -> Any:
    if isinstance(template, dict) and isinstance(dest, dict):
        merged: dict[str, Any] = {}
        for key, dest_value in dest.items():
            if key in template:
                merged[key] = _merge_values(
                    template[key], dest_value, preference, add_template_only, stats,
                )
            else:
                merged[key] = dest_value
        if add_template_only:
            for key, template_value in template.items():
                if key not in dest:
                    merged[key] = template_value
                    stats["keys_added"] += 1
        return merged
    if template == dest:
        return dest
    stats["values_changed" if preference == "template" else "values_kept"] += 1
    return template if preference == "template" else dest


def merge_json(
    template: str,
    dest: str,
    preference: str,
    *,
    add_template_only_nodes: bool = False,
) -> SubMergeResult:
    """Merge two JSON documents key by key.

    Keys present on both sides merge recursively, destination-only keys are
    kept, template-only keys are added only with ``add_template_only_nodes``.
    Conflicting scalars and arrays are decided by ``preference``.
    """
    try:
        template_value = orjson.loads(template)
        dest_value = orjson.loads(dest)
    except orjson.JSONDecodeError as exc:
        return not_merged(f"JSON parse error: {exc}")
    stats = {"keys_added": 0, "values_changed": 0, "values_kept": 0}
    merged = _merge_values(
        template_value, dest_value, preference, add_template_only_nodes, stats,
    )
    content = orjson.dumps(merged, option=orjson.OPT_INDENT_2).decode("utf-8")
    return SubMergeResult(merged=True, content=content + "\n", stats=stats)


DEFAULT_MERGERS: dict[str, SubMerger] = {
    "json": merge_json,
}


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

def rebuild_code_block(body: str, reference: BlockNode) -> str:
    """Fence ``body`` the way ``reference`` was fenced."""
    fence = reference.markup or "```"
    if not body.endswith("\n"):
        body += "\n"
    return f"{fence}{reference.info}\n{body}{fence}"


class CodeBlockMerger:
    """Registry of per-language sub-mergers for fenced code blocks."""

    def __init__(
        self,
        mergers: Mapping[str, SubMerger] | None = None,
        *,
        enabled: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        registry = dict(DEFAULT_MERGERS)
        for language, merger in (mergers or {}).items():
            registry[language.lower()] = merger
        self.mergers = registry
        self.enabled = enabled
        self._log = logger or log

    def supports_language(self, language: str | None) -> bool:
        if not self.enabled or not language:
            return False
        return language.lower() in self.mergers

    def merge_code_blocks(
        self,
        template_node: BlockNode,
        dest_node: BlockNode,
        preference: str,
        *,
        add_template_only_nodes: bool = False,
    ) -> SubMergeResult:
        """Merge two fenced code blocks; the result content is a full fence."""
        if not self.enabled:
            return not_merged("inner-merge disabled")
        language = template_node.language or dest_node.language
        if not language:
            return not_merged("no language specified")
        merger = self.mergers.get(language.lower())
        if merger is None:
            return not_merged(f"no merger for language: {language}")

        if template_node.literal == dest_node.literal:
            return SubMergeResult(
                merged=True,
                content=rebuild_code_block(dest_node.literal, dest_node),
                stats={"decision": "identical"},
            )

        kwargs: dict[str, Any] = {}
        if _accepts_keyword(merger, "add_template_only_nodes"):
            kwargs["add_template_only_nodes"] = add_template_only_nodes
        try:
            result = merger(template_node.literal, dest_node.literal, preference, **kwargs)
        except Exception as exc:
            self._log.warning("Sub-merger for %r failed: %s", language, exc)
            return not_merged(f"merge failed: {type(exc).__name__}: {exc}")

        if not result.merged:
            return not_merged(result.reason or "merger declined")
        return SubMergeResult(
            merged=True,
            content=rebuild_code_block(result.content, dest_node),
            stats=dict(result.stats),
        )

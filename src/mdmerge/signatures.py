"""Signature model: canonical matching identity for statements.

A signature is a tuple ``(kind, *discriminators)``. Two statements with equal
signatures occupy "the same slot" in their documents and are aligned.

Discriminators per kind:

  heading             level, full text          exact match required
  paragraph           digest32(text)            any text change breaks it
  code_block          fence info, digest(body)  body change breaks it
  list                list type, item count     items may differ
  block_quote         digest(text)
  thematic_break      (none)                    all breaks interchangeable
  html_block          digest(raw html)
  table               row count, digest(header) structure + header identity
  footnote_definition label
  protected           digest(content.strip())
  unknown             token type, start line    effectively never matches

Signatures depend only on content and shape, never on sibling position
(except the ``unknown`` fallback).
"""
from __future__ import annotations

import hashlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mdmerge.block_types import BlockNode

if TYPE_CHECKING:
    from mdmerge.freeze_blocks import ProtectedRegion

type Signature = tuple[object, ...]
type Statement = BlockNode | ProtectedRegion

PROTECTED_SIGNATURE_KIND = "protected"
REFINED_MATCH_SIGNATURE_KIND = "refined_match"


def digest(text: str, width: int = 16) -> str:
    """SHA-256 hex digest of ``text`` truncated to ``width`` characters."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:width]


# ---------------------------------------------------------------------------
# Override hook decisions
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class UseSignature:
    """Override result: use this signature instead of the default."""

    signature: Signature


@dataclass(frozen=True, slots=True)
class NoSignature:
    """Override result: the statement must never match anything."""


@dataclass(frozen=True, slots=True)
class Fallthrough:
    """Override result: compute the default signature."""


type SignatureDecision = UseSignature | NoSignature | Fallthrough
type SignatureOverride = Callable[[Statement], SignatureDecision]

NO_SIGNATURE = NoSignature()
FALLTHROUGH = Fallthrough()


# ---------------------------------------------------------------------------
# Default computation
# ---------------------------------------------------------------------------

def table_header_text(node: BlockNode) -> str:
    """Text of a table's first row, ``""`` when the table has no rows."""
    if not node.children:
        return ""
    return node.children[0].text_content()


def default_signature(node: BlockNode) -> Signature:
    """Default signature of a parsed block node."""
    match node.kind:
        case "heading":
            return ("heading", node.level, node.text_content())
        case "paragraph":
            return ("paragraph", digest(node.text_content(), 32))
        case "code_block":
            return ("code_block", node.info, digest(node.literal))
        case "list":
            return ("list", node.list_type, len(node.children))
        case "block_quote":
            return ("block_quote", digest(node.text_content()))
        case "thematic_break":
            return ("thematic_break",)
        case "html_block":
            return ("html_block", digest(node.literal))
        case "table":
            return ("table", len(node.children), digest(table_header_text(node)))
        case "footnote_definition":
            return ("footnote_definition", node.label)
        case _:
            return ("unknown", node.token_type or node.kind, node.start_line)


def compute_signature(
    stmt: Statement,
    *,
    override: SignatureOverride | None = None,
) -> Signature | None:
    """Signature of ``stmt``, honoring an optional override hook.

    Returns None when the override says the statement has no signature.
    """
    if override is not None:
        decision = override(stmt)
        match decision:
            case UseSignature(signature=signature):
                result = tuple(signature)
                try:
                    hash(result)
                except TypeError as exc:
                    name = getattr(override, "__qualname__", repr(override))
                    raise TypeError(
                        f"signature override {name} returned an unhashable signature "
                        f"{result!r}: {exc}"
                    ) from exc
                return result
            case NoSignature():
                return None
            case Fallthrough():
                pass
            case _:
                raise TypeError(
                    "signature override must return UseSignature, NoSignature "
                    f"or Fallthrough, got {type(decision).__name__}"
                )
    if stmt.is_protected:
        return stmt.signature  # type: ignore[union-attr]
    return default_signature(stmt)  # type: ignore[arg-type]

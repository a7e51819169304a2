"""Markdown parser adapter: markdown-it-py token stream -> BlockNode tree.

markdown-it-py produces a flat token stream with ``nesting`` (+1 open,
-1 close, 0 self-contained) and 0-based, end-exclusive line maps. This
module folds that stream into the immutable ``BlockNode`` tree used by the
merge engine and converts maps to 1-indexed inclusive positions.

Folding rules:
  - ``thead`` / ``tbody`` / ``footnote_block`` wrappers are transparent:
    their children are lifted into the enclosing node
  - ``inline`` tokens attach to the enclosing container
  - trailing blank lines are trimmed from every position
  - top-level nodes are ordered by start line (footnote definitions are
    moved to the end of the stream by the footnote plugin)
"""
from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.footnote import footnote_plugin

from mdmerge.block_types import BlockKind, BlockNode, SourcePosition


SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({"table", "strikethrough"})

_CONTAINER_KINDS: dict[str, BlockKind] = {
    "heading_open": "heading",
    "paragraph_open": "paragraph",
    "bullet_list_open": "list",
    "ordered_list_open": "list",
    "list_item_open": "list_item",
    "blockquote_open": "block_quote",
    "table_open": "table",
    "tr_open": "table_row",
    "th_open": "table_cell",
    "td_open": "table_cell",
    "footnote_open": "footnote_definition",
    "footnote_reference_open": "footnote_definition",
}
_LEAF_KINDS: dict[str, BlockKind] = {
    "fence": "code_block",
    "code_block": "code_block",
    "hr": "thematic_break",
    "html_block": "html_block",
}
_TRANSPARENT: frozenset[str] = frozenset({"thead_open", "tbody_open", "footnote_block_open"})
_IGNORED: frozenset[str] = frozenset({"footnote_anchor"})


class ParseError(ValueError):
    """The Markdown source could not be parsed."""

    def __init__(
        self,
        message: str,
        *,
        content: object = None,
        errors: list[Exception] | None = None,
    ) -> None:
        super().__init__(message)
        self.content = content
        self.errors: list[Exception] = list(errors or [])


@dataclass(frozen=True, slots=True)
class ParserOptions:
    """Parse-option bundle handed to markdown-it-py.

    ``extensions`` are markdown-it rule names enabled on top of the
    CommonMark preset. ``footnotes`` turns on the footnote plugin.
    """

    extensions: tuple[str, ...] = ("table",)
    footnotes: bool = False

    def __post_init__(self) -> None:
        unknown = sorted(set(self.extensions) - SUPPORTED_EXTENSIONS)
        if unknown:
            raise ValueError(
                f"Unsupported Markdown extensions: {unknown}; "
                f"expected a subset of {sorted(SUPPORTED_EXTENSIONS)}"
            )


DEFAULT_PARSER_OPTIONS = ParserOptions()


@dataclass(slots=True)
class _Frame:
    token: Token | None
    children: list[BlockNode] = field(default_factory=list)
    inline: Token | None = None


def build_markdown(options: ParserOptions | None = None) -> MarkdownIt:
    """Create a configured markdown-it instance."""
    options = options or DEFAULT_PARSER_OPTIONS
    md = MarkdownIt("commonmark")
    if options.extensions:
        md.enable(list(options.extensions))
    if options.footnotes:
        md.use(footnote_plugin)
    return md


def parse_document(source: str, options: ParserOptions | None = None) -> BlockNode:
    """Parse Markdown ``source`` into a ``document`` node.

    Raises:
        ParseError: ``source`` is not a string or markdown-it failed.
    """
    if not isinstance(source, str):
        raise ParseError(
            f"Markdown source must be str, got {type(source).__name__}",
            content=source,
        )
    try:
        tokens = build_markdown(options).parse(source)
    except Exception as exc:
        raise ParseError(f"markdown-it failed: {exc}", content=source, errors=[exc]) from exc
    return fold_tokens(tokens, source.split("\n"))


def parse_blocks(source: str, options: ParserOptions | None = None) -> tuple[BlockNode, ...]:
    """Parse ``source`` and return its top-level block nodes."""
    return parse_document(source, options).children


def fold_tokens(tokens: list[Token], lines: list[str]) -> BlockNode:
    """Fold a markdown-it block token stream into a ``document`` node."""
    stack: list[_Frame] = [_Frame(token=None)]
    for token in tokens:
        if token.type in _IGNORED:
            continue
        if token.nesting == 1:
            stack.append(_Frame(token=token))
        elif token.nesting == -1:
            if len(stack) < 2:
                raise ParseError(f"Unbalanced token stream at {token.type!r}")
            frame = stack.pop()
            parent = stack[-1]
            assert frame.token is not None
            if frame.token.type in _TRANSPARENT:
                parent.children.extend(frame.children)
            else:
                parent.children.append(_container_node(frame, lines))
        elif token.type == "inline":
            stack[-1].inline = token
        else:
            stack[-1].children.append(_leaf_node(token, lines))

    if len(stack) != 1:
        raise ParseError(f"Unclosed token {stack[-1].token.type!r}")  # type: ignore[union-attr]

    top_level = sorted(
        stack[0].children,
        key=lambda n: n.position.start_line if n.position else float("inf"),
    )
    return BlockNode(kind="document", children=tuple(top_level), token_type="root")


# ---------------------------------------------------------------------------
# Node construction
# ---------------------------------------------------------------------------

def _position(token_map: list[int] | None, lines: list[str]) -> SourcePosition | None:
    if not token_map:
        return None
    start = token_map[0] + 1
    end = max(token_map[1], start)
    while end > start and end <= len(lines) and not lines[end - 1].strip():
        end -= 1
    return SourcePosition(start, end)


def _span_of(children: tuple[BlockNode, ...]) -> SourcePosition | None:
    positioned = [c.position for c in children if c.position is not None]
    if not positioned:
        return None
    return SourcePosition(
        min(p.start_line for p in positioned),
        max(p.end_line for p in positioned),
    )


def _inline_text(token: Token) -> str:
    parts: list[str] = []
    for child in token.children or []:
        if child.type in ("text", "code_inline"):
            parts.append(child.content)
        elif child.type in ("softbreak", "hardbreak"):
            parts.append("\n")
        elif child.children:
            parts.append(_inline_text(child))
    return "".join(parts)


def _container_node(frame: _Frame, lines: list[str]) -> BlockNode:
    token = frame.token
    assert token is not None
    kind = _CONTAINER_KINDS.get(token.type, "unknown")
    children = tuple(frame.children)
    position = _position(token.map, lines)
    if position is None:
        position = _span_of(children)

    inline = frame.inline
    inline_text = _inline_text(inline) if inline is not None else ""
    raw_inline = inline.content if inline is not None else ""

    level = 0
    list_type = ""
    list_start = 1
    label = ""
    is_header = False
    match kind:
        case "heading":
            level = int(token.tag[1:]) if token.tag[1:].isdigit() else 0
        case "list":
            list_type = "ordered" if token.type == "ordered_list_open" else "bullet"
            start = token.attrGet("start")
            list_start = int(start) if start is not None else 1
        case "table_cell":
            is_header = token.type == "th_open"
            inline_text = inline_text.strip()
        case "table_row":
            is_header = any(cell.is_header for cell in children)
        case "footnote_definition":
            label = str((token.meta or {}).get("label") or "")
        case _:
            pass

    return BlockNode(
        kind=kind,
        children=children,
        position=position,
        inline_text=inline_text,
        raw_inline=raw_inline,
        level=level,
        markup=token.markup,
        list_type=list_type,  # type: ignore[arg-type]
        list_start=list_start,
        label=label,
        is_header=is_header,
        token_type=token.type.removesuffix("_open"),
    )


def _leaf_node(token: Token, lines: list[str]) -> BlockNode:
    kind = _LEAF_KINDS.get(token.type, "unknown")
    return BlockNode(
        kind=kind,
        position=_position(token.map, lines),
        literal=token.content if kind in ("code_block", "html_block") else "",
        info=token.info.strip() if token.type == "fence" else "",
        markup=token.markup,
        token_type=token.type,
    )


# ---------------------------------------------------------------------------
# Re-serialization (used only for nodes without a source position)
# ---------------------------------------------------------------------------

def _indent_continuation(text: str, width: int) -> str:
    pad = " " * width
    first, *rest = text.split("\n")
    return "\n".join([first, *[(pad + line) if line else line for line in rest]])


def render_markdown(node: BlockNode) -> str:
    """Re-serialize ``node`` to Markdown from its parsed fields.

    Inline markup is reproduced from the raw inline source, so the output
    is faithful for inline content; block layout is normalized (ATX
    headings, ``-`` bullets, backtick fences, pipe tables).
    """
    match node.kind:
        case "document" | "list_item":
            return "\n\n".join(render_markdown(c) for c in node.children)
        case "heading":
            return f"{'#' * max(node.level, 1)} {node.raw_inline}".rstrip()
        case "paragraph":
            return node.raw_inline
        case "code_block":
            if node.markup:
                body = node.literal if node.literal.endswith("\n") else node.literal + "\n"
                return f"{node.markup}{node.info}\n{body}{node.markup}"
            return "\n".join(
                f"    {line}" if line else line
                for line in node.literal.rstrip("\n").split("\n")
            )
        case "list":
            items: list[str] = []
            for offset, item in enumerate(node.children):
                if node.list_type == "ordered":
                    marker = f"{node.list_start + offset}{node.markup or '.'}"
                else:
                    marker = node.markup or "-"
                body = render_markdown(item)
                items.append(f"{marker} {_indent_continuation(body, len(marker) + 1)}")
            return "\n".join(items)
        case "block_quote":
            inner = "\n\n".join(render_markdown(c) for c in node.children)
            return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))
        case "thematic_break":
            return node.markup or "---"
        case "html_block":
            return node.literal.rstrip("\n")
        case "table":
            rendered: list[str] = []
            for index, row in enumerate(node.children):
                rendered.append(render_markdown(row))
                if index == 0:
                    rendered.append("| " + " | ".join("---" for _ in row.children) + " |")
            return "\n".join(rendered)
        case "table_row":
            return "| " + " | ".join(render_markdown(c) for c in node.children) + " |"
        case "table_cell":
            return node.raw_inline.strip()
        case "footnote_definition":
            body = "\n\n".join(render_markdown(c) for c in node.children)
            return f"[^{node.label}]: {_indent_continuation(body, 4)}"
        case _:
            return node.text_content()

"""Discard duplicate rules and declarations from a stylesheet.

Mirrors the behavior of postcss-discard-duplicates: when two sibling nodes
are identical (ignoring insignificant whitespace and comments) the earlier
one is dropped and the last occurrence survives. Rules sharing a selector
but carrying different declarations are both kept. Nodes that survive are
emitted with their original text.
"""

from __future__ import annotations

from typing import Any, Hashable, Iterable

import tinycss2

from css_bundle.errors import RuleMergeError

GROUPING_AT_RULES = frozenset(
    {
        "media",
        "supports",
        "layer",
        "container",
        "document",
        "-moz-document",
        "scope",
        "keyframes",
        "-webkit-keyframes",
        "-moz-keyframes",
        "-o-keyframes",
    }
)

# Whitespace next to these literals carries no meaning in the given context.
# Whitespace before ":" in a selector is a descendant combinator, so it is
# never listed for selectors.
SELECTOR_SEPARATORS = frozenset({">", "+", "~", ","})
AT_PRELUDE_SEPARATORS = frozenset({":", ","})
DECLARATION_SEPARATORS = frozenset({":", ",", "!"})

_BLOCK_BRACKETS = {"() block": ("(", ")"), "[] block": ("[", "]"), "{} block": ("{", "}")}


def _token_parts(tokens: Iterable[Any], separators: frozenset[str]) -> list[str | None]:
    """Serialize tokens one by one; ``None`` marks a whitespace run."""

    parts: list[str | None] = []
    for token in tokens:
        if token.type == "comment":
            continue
        if token.type == "whitespace":
            if parts and parts[-1] is None:
                continue
            parts.append(None)
        elif token.type == "function":
            parts.append(f"{token.name}({_normalize(token.arguments, separators)})")
        elif token.type in _BLOCK_BRACKETS:
            opening, closing = _BLOCK_BRACKETS[token.type]
            parts.append(f"{opening}{_normalize(token.content, separators)}{closing}")
        else:
            # strings and urls keep their exact value
            parts.append(token.serialize())
    return parts


def _normalize(tokens: Iterable[Any], separators: frozenset[str] = DECLARATION_SEPARATORS) -> str:
    """Comparison key for a token run: comments dropped, insignificant whitespace removed."""

    parts = _token_parts(tokens, separators)
    kept: list[str] = []
    for index, part in enumerate(parts):
        if part is not None:
            kept.append(part)
            continue
        following = parts[index + 1] if index + 1 < len(parts) else None
        if not kept or following is None:
            continue
        if kept[-1] in separators or following in separators:
            continue
        kept.append(" ")
    return "".join(kept)


def _split_declarations(tokens: Iterable[Any]) -> list[list[Any]]:
    segments: list[list[Any]] = [[]]
    for token in tokens:
        if token.type == "literal" and token.value == ";":
            segments.append([])
        else:
            segments[-1].append(token)
    return segments


def _dedupe_declarations(tokens: Iterable[Any]) -> tuple[str, tuple[str, ...]]:
    """Drop repeated declarations inside one block, keeping the last."""

    segments = _split_declarations(tokens)
    keys = [_normalize(segment) for segment in segments]
    last_seen = {key: index for index, key in enumerate(keys) if key}

    kept_text: list[str] = []
    kept_keys: list[str] = []
    for index, (segment, key) in enumerate(zip(segments, keys)):
        if key and last_seen[key] != index:
            continue
        kept_text.append(tinycss2.serialize(segment))
        if key:
            kept_keys.append(key)
    return ";".join(kept_text), tuple(kept_keys)


def _raise_parse_error(node: Any) -> None:
    raise RuleMergeError(
        f"Malformed stylesheet at line {node.source_line}, column {node.source_column}: {node.message}"
    )


def _dedupe_nodes(nodes: Iterable[Any]) -> tuple[str, tuple[Hashable, ...]]:
    """Deduplicate sibling nodes and return the merged text plus node keys."""

    entries: list[tuple[Hashable | None, str]] = []
    for node in nodes:
        if node.type == "error":
            _raise_parse_error(node)
        elif node.type == "qualified-rule":
            body, declaration_keys = _dedupe_declarations(node.content)
            key = ("rule", _normalize(node.prelude, SELECTOR_SEPARATORS), declaration_keys)
            entries.append((key, f"{tinycss2.serialize(node.prelude)}{{{body}}}"))
        elif node.type == "at-rule":
            entries.append(_dedupe_at_rule(node))
        else:
            entries.append((None, node.serialize()))

    last_seen = {key: index for index, (key, _) in enumerate(entries) if key is not None}
    parts: list[str] = []
    kept_keys: list[Hashable] = []
    dropped_previous = False
    for index, (key, text) in enumerate(entries):
        if key is not None and last_seen[key] != index:
            dropped_previous = True
            continue
        if dropped_previous and key is None and not text.strip():
            # whitespace that separated the discarded node
            dropped_previous = False
            continue
        dropped_previous = False
        parts.append(text)
        if key is not None:
            kept_keys.append(key)
    return "".join(parts), tuple(kept_keys)


def _dedupe_at_rule(node: Any) -> tuple[Hashable, str]:
    prelude_key = _normalize(node.prelude, AT_PRELUDE_SEPARATORS)
    if node.content is None:
        return ("at", node.lower_at_keyword, prelude_key), node.serialize()

    if node.lower_at_keyword in GROUPING_AT_RULES:
        children = tinycss2.parse_rule_list(node.content, skip_comments=False, skip_whitespace=False)
        body, child_keys = _dedupe_nodes(children)
    else:
        body, child_keys = _dedupe_declarations(node.content)
    key = ("at", node.lower_at_keyword, prelude_key, child_keys)
    return key, f"@{node.at_keyword}{tinycss2.serialize(node.prelude)}{{{body}}}"


def discard_duplicates(css: str) -> str:
    """Return ``css`` with duplicate rules and declarations removed."""

    nodes = tinycss2.parse_stylesheet(css, skip_comments=False, skip_whitespace=False)
    text, _ = _dedupe_nodes(nodes)
    return text

"""
Helpers for working with PyYAML node trees.

Parsers read image lines from composed nodes instead of plain objects because
the nodes carry source marks; the rewriters use those marks to splice new
values into the original text without reformatting the rest of the file.
"""

import json
import re
from typing import Dict, Iterator, List, Optional, Tuple

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

STR_TAG = 'tag:yaml.org,2002:str'

# Anchor or tag ahead of a scalar value, e.g. "&img " or "!!str "
PROPERTY_RE = re.compile(r'[&!][^\s,\[\]{}]*\s+')


def compose_documents(content: str) -> List[Optional[Node]]:
    """
    Compose every document in a YAML stream.

    Raises:
        yaml.YAMLError: If the stream is not valid YAML
    """
    return list(yaml.compose_all(content, Loader=yaml.SafeLoader))


def string_value(node: Optional[Node]) -> Optional[str]:
    """Return the value of a string scalar node, else None."""
    if isinstance(node, ScalarNode) and node.tag == STR_TAG:
        return node.value
    return None


def mapping_items(node: Optional[Node]) -> Iterator[Tuple[str, Node]]:
    """Yield (key, value node) pairs of a mapping node that have string keys."""
    if not isinstance(node, MappingNode):
        return
    for key_node, value_node in node.value:
        key = string_value(key_node)
        if key is not None:
            yield key, value_node


def mapping_get(node: Optional[Node], key: str) -> Optional[Node]:
    for item_key, value_node in mapping_items(node):
        if item_key == key:
            return value_node
    return None


def child_nodes(node: Optional[Node]) -> List[Node]:
    """Children of a mapping (values only) or sequence node, in source order."""
    if isinstance(node, MappingNode):
        return [value_node for _, value_node in node.value]
    if isinstance(node, SequenceNode):
        return list(node.value)
    return []


def render_scalar(node: ScalarNode, value: str) -> str:
    """
    Render value as YAML text in the same quoting style as node.

    Plain scalars stay plain, quoted scalars keep their quote character.
    Block scalars are rewritten as double quoted scalars.
    """
    if node.style == "'":
        return "'" + value.replace("'", "''") + "'"
    if node.style is None:
        return value
    return json.dumps(value)


def scalar_replacement(content: str, node: ScalarNode, value: str) -> Tuple[int, int, str]:
    """Span and text that replace node's value in content."""
    start, end = node.start_mark.index, node.end_mark.index
    # Marks of an anchored or tagged scalar start at the property
    match = PROPERTY_RE.match(content, start)
    while match and match.end() <= end:
        start = match.end()
        match = PROPERTY_RE.match(content, start)
    text = render_scalar(node, value)
    if node.style in ('|', '>'):
        # Block scalars own their trailing line breaks
        original = content[start:end]
        text += original[len(original.rstrip('\r\n')):]
    return start, end, text


def add_replacement(
    replacements: Dict[Tuple[int, int], Tuple[str, str]],
    replacement: Tuple[int, int, str],
    owner: str,
) -> Optional[str]:
    """
    Record a replacement made on behalf of owner.

    Nodes reached through an alias share one span. A second replacement with
    the same text over that span is dropped.

    Returns:
        The owner of an earlier replacement with different text over the same
        span, or None if the replacement was recorded
    """
    start, end, text = replacement
    existing = replacements.get((start, end))
    if existing is None:
        replacements[(start, end)] = (text, owner)
        return None
    if existing[0] != text:
        return existing[1]
    return None


def span_list(replacements: Dict[Tuple[int, int], Tuple[str, str]]) -> List[Tuple[int, int, str]]:
    return [(start, end, text) for (start, end), (text, _) in replacements.items()]


def replace_spans(content: str, replacements: List[Tuple[int, int, str]]) -> str:
    """
    Replace [start, end) character spans of content.

    Args:
        content: Original text
        replacements: (start, end, text) tuples; spans must not overlap

    Returns:
        New text with every span replaced
    """
    parts = []
    cursor = 0
    for start, end, text in sorted(replacements):
        if start < cursor:
            raise ValueError(f"overlapping replacement at offset {start}")
        parts.append(content[cursor:start])
        parts.append(text)
        cursor = end
    parts.append(content[cursor:])
    return ''.join(parts)

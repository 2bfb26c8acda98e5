"""JSON Pointer utilities for ``$ref`` fragments.

References use the URI-fragment flavour of JSON Pointer (RFC 6901):

- ``#`` denotes the document root
- ``#/a/b/0`` walks key ``a``, key ``b``, then array index ``0``

Tokens are unescaped with ``~1`` -> ``/`` first, then ``~0`` -> ``~``, so
``#/a~01`` addresses the literal key ``a~1``.

Resolution never raises: a malformed pointer and a pointer that does not
lead anywhere both come back as ``None``.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from reflinks.tools.nodes import ArrayNode, JSONDocument, Node, ObjectNode

_ARRAY_INDEX = re.compile(r"^(0|[1-9][0-9]*)$")


def unescape_segment(seg: str) -> str:
    return seg.replace("~1", "/").replace("~0", "~")


def parse_pointer(path: str) -> Optional[List[str]]:
    """Split a ``#``-prefixed pointer into unescaped tokens.

    Returns ``None`` when ``path`` is not a pointer at all.
    """
    if path == "#":
        return []
    if not path.startswith("#/"):
        return None
    return [unescape_segment(p) for p in path[2:].split("/")]


def split_reference(ref: str) -> Tuple[str, str]:
    """Split a ``$ref`` value into (file part, fragment).

    The fragment keeps its leading ``#``; a reference without one gets ``#``.
    """
    file_part, sep, rest = ref.partition("#")
    return file_part, "#" + rest if sep else "#"


def find_node(tokens: Sequence[str], node: Optional[Node]) -> Optional[Node]:
    """Walk ``tokens`` from ``node``; ``None`` if any step fails."""
    cur = node
    for token in tokens:
        if cur is None:
            return None
        if isinstance(cur, ObjectNode):
            prop = next((p for p in cur.properties if p.key_node is not None and p.key_node.value == token), None)
            if prop is None:
                return None
            cur = prop.value_node
        elif isinstance(cur, ArrayNode):
            if not _ARRAY_INDEX.match(token):
                return None
            index = int(token)
            if index >= len(cur.items):
                return None
            cur = cur.items[index]
        else:
            return None
    return cur


def find_target_node(doc: JSONDocument, path: str) -> Optional[Node]:
    tokens = parse_pointer(path)
    if tokens is None:
        return None
    return find_node(tokens, doc.root)

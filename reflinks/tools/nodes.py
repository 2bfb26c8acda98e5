"""Syntax tree for parsed JSON documents.

Every node records where it came from in the source text:

- ``offset``: absolute character index of the first character
- ``length``: number of characters covered (strings include their quotes)

Object nodes own ``PropertyNode`` children, property nodes own a key node and
(normally) a value node, array nodes own their items. Trees are built once by
``jsonpos.parse_tree`` and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union


@dataclass(eq=False)
class BaseNode:
    offset: int
    length: int
    parent: Optional["Node"] = field(default=None, repr=False)

    type = "base"

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def children(self) -> List["Node"]:
        return []


@dataclass(eq=False)
class StringNode(BaseNode):
    value: str = ""

    type = "string"


@dataclass(eq=False)
class NumberNode(BaseNode):
    value: Union[int, float] = 0

    type = "number"


@dataclass(eq=False)
class BooleanNode(BaseNode):
    value: bool = False

    type = "boolean"


@dataclass(eq=False)
class NullNode(BaseNode):
    value: None = None

    type = "null"


@dataclass(eq=False)
class PropertyNode(BaseNode):
    key_node: Optional[StringNode] = None
    value_node: Optional["Node"] = None

    type = "property"

    @property
    def key(self) -> str:
        return self.key_node.value if self.key_node is not None else ""

    @property
    def children(self) -> List["Node"]:
        out: List[Node] = []
        if self.key_node is not None:
            out.append(self.key_node)
        if self.value_node is not None:
            out.append(self.value_node)
        return out


@dataclass(eq=False)
class ObjectNode(BaseNode):
    properties: List[PropertyNode] = field(default_factory=list)

    type = "object"

    @property
    def children(self) -> List["Node"]:
        return list(self.properties)


@dataclass(eq=False)
class ArrayNode(BaseNode):
    items: List["Node"] = field(default_factory=list)

    type = "array"

    @property
    def children(self) -> List["Node"]:
        return list(self.items)


Node = Union[ObjectNode, ArrayNode, PropertyNode, StringNode, NumberNode, BooleanNode, NullNode]

# Return False to skip the children of the visited node.
Visitor = Callable[[Node], bool]


def visit(root: Optional[Node], visitor: Visitor) -> None:
    """Depth-first, pre-order walk over ``root`` and its descendants.

    Iterative so that deeply nested documents cannot hit the recursion limit.
    """
    if root is None:
        return
    stack: List[Node] = [root]
    while stack:
        node = stack.pop()
        if visitor(node):
            stack.extend(reversed(node.children))


def is_ref_property(node: Node) -> bool:
    """True for a ``"$ref": "<string>"`` property."""
    return (
        isinstance(node, PropertyNode)
        and node.key_node is not None
        and node.key_node.value == "$ref"
        and isinstance(node.value_node, StringNode)
    )


@dataclass
class JSONDocument:
    root: Optional[Node] = None

    def visit(self, visitor: Visitor) -> None:
        visit(self.root, visitor)

    def ref_properties(self) -> List[PropertyNode]:
        """All ``$ref`` string properties, in document order."""
        found: List[PropertyNode] = []

        def _collect(node: Node) -> bool:
            if is_ref_property(node):
                found.append(node)  # type: ignore[arg-type]
            return True

        self.visit(_collect)
        return found

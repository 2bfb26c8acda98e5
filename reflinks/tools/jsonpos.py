"""Position-aware JSON parser.

Links point at exact source locations, so we need a syntax tree where every
node knows its character offset and length. Python's built-in ``json``
module does not expose token positions, so this module implements a small
recursive-descent parser that builds a ``nodes`` tree instead of plain
Python values.

Limitations / notes:
- Strict JSON only (no comments, trailing commas, etc.).
- Containers may nest at most ``MAX_DEPTH`` levels deep.
- Offsets are Python string indices (codepoints). LSP positions measure
  ``character`` in UTF-16 code units; ``TextIndex`` converts between the two.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from reflinks.tools.nodes import (
    ArrayNode,
    BooleanNode,
    JSONDocument,
    Node,
    NullNode,
    NumberNode,
    ObjectNode,
    PropertyNode,
    StringNode,
)


# Containers nested deeper than this are rejected; the parser recurses once
# per level and must stay well inside the interpreter's recursion limit.
MAX_DEPTH = 256


@dataclass
class JsonPosError(Exception):
    """Parse error with a stable character offset."""

    message: str
    index: int

    def __str__(self) -> str:
        return f"{self.message} at index {self.index}"


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.n = len(text)
        self.i = 0
        self.depth = 0

    def _peek(self) -> str:
        return self.text[self.i] if self.i < self.n else ""

    def _consume(self, ch: str) -> None:
        if self._peek() != ch:
            raise JsonPosError(f"Expected {ch!r}", self.i)
        self.i += 1

    def _skip_ws(self) -> None:
        while self.i < self.n and self.text[self.i] in " \t\r\n":
            self.i += 1

    def _at_digit(self) -> bool:
        # ASCII only; str.isdigit() also accepts other scripts' digits.
        return self.i < self.n and self.text[self.i] in "0123456789"

    def parse(self) -> Node:
        self._skip_ws()
        node = self._parse_value(None)
        self._skip_ws()
        if self.i != self.n:
            raise JsonPosError("Trailing characters", self.i)
        return node

    def _parse_value(self, parent: Optional[Node]) -> Node:
        self._skip_ws()
        start = self.i
        ch = self._peek()
        if ch == "{" or ch == "[":
            self.depth += 1
            if self.depth > MAX_DEPTH:
                raise JsonPosError("Nesting too deep", self.i)
            node: Node = self._parse_object(parent) if ch == "{" else self._parse_array(parent)
            self.depth -= 1
            return node
        if ch == '"':
            return self._parse_string_node(parent)
        if ch and ch in "-0123456789":
            num = self._parse_number()
            return NumberNode(start, self.i - start, parent, value=num)
        # literals
        if self.text.startswith("true", self.i):
            self.i += 4
            return BooleanNode(start, 4, parent, value=True)
        if self.text.startswith("false", self.i):
            self.i += 5
            return BooleanNode(start, 5, parent, value=False)
        if self.text.startswith("null", self.i):
            self.i += 4
            return NullNode(start, 4, parent)
        raise JsonPosError("Invalid value", self.i)

    def _parse_string_node(self, parent: Optional[Node]) -> StringNode:
        start = self.i
        s = self._parse_string()
        return StringNode(start, self.i - start, parent, value=s)

    def _parse_object(self, parent: Optional[Node]) -> ObjectNode:
        obj = ObjectNode(self.i, 0, parent)
        self._consume("{")
        self._skip_ws()
        if self._peek() == "}":
            self.i += 1
            obj.length = self.i - obj.offset
            return obj

        while True:
            self._skip_ws()
            if self._peek() != '"':
                raise JsonPosError("Expected string key", self.i)
            prop = PropertyNode(self.i, 0, obj)
            prop.key_node = self._parse_string_node(prop)
            self._skip_ws()
            self._consume(":")
            prop.value_node = self._parse_value(prop)
            prop.length = self.i - prop.offset
            obj.properties.append(prop)
            self._skip_ws()
            if self._peek() == "}":
                self.i += 1
                break
            self._consume(",")

        obj.length = self.i - obj.offset
        return obj

    def _parse_array(self, parent: Optional[Node]) -> ArrayNode:
        arr = ArrayNode(self.i, 0, parent)
        self._consume("[")
        self._skip_ws()
        if self._peek() == "]":
            self.i += 1
            arr.length = self.i - arr.offset
            return arr

        while True:
            arr.items.append(self._parse_value(arr))
            self._skip_ws()
            if self._peek() == "]":
                self.i += 1
                break
            self._consume(",")
            self._skip_ws()

        arr.length = self.i - arr.offset
        return arr

    def _parse_string(self) -> str:
        self._consume('"')
        out_chars: List[str] = []
        while True:
            if self.i >= self.n:
                raise JsonPosError("Unterminated string", self.i)
            ch = self.text[self.i]
            self.i += 1
            if ch == '"':
                break
            if ch == "\\":
                if self.i >= self.n:
                    raise JsonPosError("Unterminated escape", self.i)
                esc = self.text[self.i]
                self.i += 1
                if esc in '"\\/':
                    out_chars.append(esc)
                elif esc == "b":
                    out_chars.append("\b")
                elif esc == "f":
                    out_chars.append("\f")
                elif esc == "n":
                    out_chars.append("\n")
                elif esc == "r":
                    out_chars.append("\r")
                elif esc == "t":
                    out_chars.append("\t")
                elif esc == "u":
                    hexs = self.text[self.i : self.i + 4]
                    if len(hexs) != 4:
                        raise JsonPosError("Invalid unicode escape", self.i)
                    try:
                        out_chars.append(chr(int(hexs, 16)))
                    except ValueError:
                        raise JsonPosError("Invalid unicode escape", self.i) from None
                    self.i += 4
                else:
                    raise JsonPosError("Invalid escape", self.i)
            else:
                out_chars.append(ch)
        return "".join(out_chars)

    def _parse_number(self) -> Any:
        start = self.i
        if self._peek() == "-":
            self.i += 1
        if self._peek() == "0":
            self.i += 1
        else:
            if not self._at_digit():
                raise JsonPosError("Invalid number", self.i)
            while self.i < self.n and self._at_digit():
                self.i += 1
        # fractional
        if self._peek() == ".":
            self.i += 1
            if not self._at_digit():
                raise JsonPosError("Invalid number", self.i)
            while self.i < self.n and self._at_digit():
                self.i += 1
        # exponent
        if self._peek() and self._peek() in "eE":
            self.i += 1
            if self._peek() and self._peek() in "+-":
                self.i += 1
            if not self._at_digit():
                raise JsonPosError("Invalid number", self.i)
            while self.i < self.n and self._at_digit():
                self.i += 1
        raw = self.text[start : self.i]
        if any(c in raw for c in ".eE"):
            return float(raw)
        return int(raw)


def parse_tree(text: str) -> JSONDocument:
    """Parse JSON text into a ``JSONDocument`` whose nodes carry offsets."""
    return JSONDocument(root=_Parser(text).parse())


def to_python(node: Optional[Node]) -> Any:
    """Convert a subtree back to plain Python values (dict/list/scalars)."""
    if node is None:
        return None
    if isinstance(node, ObjectNode):
        out: Dict[str, Any] = {}
        for prop in node.properties:
            out.setdefault(prop.key, to_python(prop.value_node))
        return out
    if isinstance(node, ArrayNode):
        return [to_python(item) for item in node.items]
    if isinstance(node, PropertyNode):
        return to_python(node.value_node)
    return node.value


class TextIndex:
    """Helper to convert absolute string offsets to LSP (line, utf16-char).

    - ``line`` is 0-based
    - ``character`` is measured in UTF-16 code units (as LSP expects)

    We precompute line starts to keep conversions cheap.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.starts: List[int] = [0]
        for i, ch in enumerate(text):
            if ch == "\n":
                self.starts.append(i + 1)

        self.ends: List[int] = []
        for s in self.starts:
            nl = text.find("\n", s)
            self.ends.append(nl if nl != -1 else len(text))

    def _find_line(self, index: int) -> int:
        # Binary search over starts
        lo, hi = 0, len(self.starts)
        while lo + 1 < hi:
            mid = (lo + hi) // 2
            if self.starts[mid] <= index:
                lo = mid
            else:
                hi = mid
        return lo

    def position(self, index: int) -> Dict[str, int]:
        index = min(max(index, 0), len(self.text))
        line = self._find_line(index)
        prefix = self.text[self.starts[line] : index]
        char_utf16 = len(prefix.encode("utf-16-le")) // 2
        return {"line": line, "character": char_utf16}

    def offset(self, line: int, character_utf16: int) -> int:
        """Convert an LSP (line, utf16-character) position to an absolute index.

        Best-effort clamping is applied if the position is out of bounds.
        """
        line = min(max(line, 0), len(self.starts) - 1)
        character_utf16 = max(character_utf16, 0)

        line_start = self.starts[line]
        line_text = self.text[line_start : self.ends[line]]

        units = 0
        cp = 0
        for ch in line_text:
            u = len(ch.encode("utf-16-le")) // 2
            if units + u > character_utf16:
                break
            units += u
            cp += 1

        return line_start + cp


@dataclass(frozen=True)
class Position:
    line: int
    character: int

    def to_dict(self) -> Dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


class TextDocument:
    """Source text paired with its uri.

    The line index is built lazily on the first position lookup.
    """

    def __init__(self, uri: str, text: str, version: int = 0) -> None:
        self.uri = uri
        self.text = text
        self.version = version
        self._index: Optional[TextIndex] = None

    @property
    def index(self) -> TextIndex:
        if self._index is None:
            self._index = TextIndex(self.text)
        return self._index

    def position_at(self, offset: int) -> Position:
        pos = self.index.position(offset)
        return Position(pos["line"], pos["character"])

    def offset_at(self, position: Position) -> int:
        return self.index.offset(position.line, position.character)

    def range_of(self, start: int, end: int) -> Range:
        return Range(self.position_at(start), self.position_at(end))

    def __repr__(self) -> str:
        return f"TextDocument(uri={self.uri!r}, version={self.version})"

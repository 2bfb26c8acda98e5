"""Unit tests for the position-aware parser and offset/position mapping."""

import pytest

from reflinks.tools.jsonpos import MAX_DEPTH, JsonPosError, Position, TextDocument, TextIndex, parse_tree, to_python
from reflinks.tools.nodes import ArrayNode, ObjectNode, PropertyNode, StringNode, visit


def test_node_offsets_cover_source_text() -> None:
    text = '{"name": "sum", "args": [1, true, null]}'
    doc = parse_tree(text)
    root = doc.root
    assert isinstance(root, ObjectNode)
    assert (root.offset, root.length) == (0, len(text))

    name, args = root.properties
    assert text[name.offset : name.end] == '"name": "sum"'
    assert isinstance(name.value_node, StringNode)
    assert text[name.value_node.offset : name.value_node.end] == '"sum"'

    assert isinstance(args.value_node, ArrayNode)
    assert [text[i.offset : i.end] for i in args.value_node.items] == ["1", "true", "null"]


def test_parent_links() -> None:
    doc = parse_tree('{"a": [1]}')
    root = doc.root
    prop = root.properties[0]  # type: ignore[union-attr]
    arr = prop.value_node
    assert prop.parent is root
    assert prop.key_node.parent is prop  # type: ignore[union-attr]
    assert arr.parent is prop  # type: ignore[union-attr]
    assert arr.items[0].parent is arr  # type: ignore[union-attr]


def test_string_escapes_are_decoded() -> None:
    doc = parse_tree(r'"a\"b\u0041\n"')
    assert doc.root.value == 'a"bA\n'  # type: ignore[union-attr]
    assert doc.root.length == 14


@pytest.mark.parametrize(
    "text,index",
    [
        ("{", 1),
        ('{"a" 1}', 5),
        ("[1,]", 3),
        ("{} x", 3),
        ('"abc', 4),
        ("-", 1),
        ("1.", 2),
    ],
)
def test_parse_errors_carry_index(text: str, index: int) -> None:
    with pytest.raises(JsonPosError) as exc:
        parse_tree(text)
    assert exc.value.index == index


def test_to_python() -> None:
    doc = parse_tree('{"a": [1, 2.5, "x"], "b": {"c": false}}')
    assert to_python(doc.root) == {"a": [1, 2.5, "x"], "b": {"c": False}}


def test_visit_is_preorder_and_can_skip_children() -> None:
    doc = parse_tree('{"a": {"b": 1}, "c": 2}')
    seen = []

    def _visitor(node) -> bool:
        seen.append(node.type)
        return not (isinstance(node, PropertyNode) and node.key == "a")

    visit(doc.root, _visitor)
    assert seen == ["object", "property", "property", "string", "number"]


def test_text_index_utf16_characters() -> None:
    idx = TextIndex("ab\U0001F600c\nxy")
    assert idx.position(3) == {"line": 0, "character": 4}
    assert idx.position(6) == {"line": 1, "character": 1}
    assert idx.offset(0, 4) == 3
    assert idx.offset(1, 1) == 6


def test_text_document_positions() -> None:
    doc = TextDocument("file:///a.json", '{\n  "a": 1\n}')
    assert doc.position_at(9) == Position(1, 7)
    assert doc.offset_at(Position(1, 7)) == 9
    rng = doc.range_of(0, len(doc.text))
    assert rng.to_dict() == {"start": {"line": 0, "character": 0}, "end": {"line": 2, "character": 1}}


def test_deep_nesting_is_a_parse_error() -> None:
    with pytest.raises(JsonPosError) as exc:
        parse_tree("[" * 5000 + "]" * 5000)
    assert exc.value.message == "Nesting too deep"
    assert exc.value.index == MAX_DEPTH


def test_nesting_up_to_the_limit_parses() -> None:
    doc = parse_tree('{"a": ' * (MAX_DEPTH - 1) + "[]" + "}" * (MAX_DEPTH - 1))
    assert isinstance(doc.root, ObjectNode)


@pytest.mark.parametrize("text", ["1٣", "١", "1.٣", "1e٣"])
def test_numbers_accept_ascii_digits_only(text: str) -> None:
    with pytest.raises(JsonPosError):
        parse_tree(text)

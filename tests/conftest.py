"""Shared fixtures for tests."""

from typing import Callable, Tuple

import pytest

from reflinks.tools.jsonpos import TextDocument, parse_tree
from reflinks.tools.nodes import JSONDocument

Parsed = Tuple[TextDocument, JSONDocument]


@pytest.fixture
def parse() -> Callable[..., Parsed]:
    """Return a factory that parses text into (TextDocument, JSONDocument)."""

    def _parse(text: str, uri: str = "file:///schemas/main.json") -> Parsed:
        return TextDocument(uri, text), parse_tree(text)

    return _parse

"""Unit tests for the default reference context and resource service."""

import http.client
from pathlib import Path

import pytest

from reflinks.tools.jsonpos import parse_tree
from reflinks.tools.schema_service import SchemaService, UriDocumentContext, check_schema, path_to_uri, uri_to_path


def test_resolve_reference_relative_to_file_uri() -> None:
    ctx = UriDocumentContext()
    assert ctx.resolve_reference("defs.json", "file:///a/b/main.json") == "file:///a/b/defs.json"
    assert ctx.resolve_reference("../c.json", "file:///a/b/main.json") == "file:///a/c.json"
    assert ctx.resolve_reference("x.json", "https://example.com/s/root.json") == "https://example.com/s/x.json"


def test_resolve_reference_absolute_and_empty() -> None:
    ctx = UriDocumentContext()
    assert ctx.resolve_reference("https://example.com/x.json", "file:///a/main.json") == "https://example.com/x.json"
    assert ctx.resolve_reference("", "file:///a/main.json") is None
    assert ctx.resolve_reference("x.json", "") is None


def test_path_uri_round_trip(tmp_path: Path) -> None:
    target = tmp_path / "schema.json"
    assert uri_to_path(path_to_uri(target)) == target.resolve()


def test_check_schema() -> None:
    assert check_schema(parse_tree('{"type": "object"}')) == []
    assert check_schema(parse_tree("[1, 2]")) == []
    errors = check_schema(parse_tree('{"type": 12}'))
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_fetch_valid_schema(tmp_path: Path) -> None:
    path = tmp_path / "defs.json"
    path.write_text('{"definitions": {"id": {"type": "integer"}}}', encoding="utf-8")
    service = SchemaService()

    result = await service.fetch(path_to_uri(path))

    assert result.ok
    assert result.json_document is not None
    assert result.text_document is not None
    assert result.text_document.uri == path_to_uri(path)


@pytest.mark.asyncio
async def test_fetch_is_cached(tmp_path: Path) -> None:
    path = tmp_path / "defs.json"
    path.write_text("{}", encoding="utf-8")
    service = SchemaService()
    uri = path_to_uri(path)

    first = await service.fetch(uri)
    path.unlink()
    second = await service.fetch(uri)

    assert first is second
    service.clear_cache()
    assert not (await service.fetch(uri)).ok


@pytest.mark.asyncio
async def test_fetch_missing_file(tmp_path: Path) -> None:
    result = await SchemaService().fetch(path_to_uri(tmp_path / "nope.json"))
    assert len(result.errors) == 1
    assert result.json_document is None


@pytest.mark.asyncio
async def test_fetch_invalid_json_reports_position(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text('{\n  "a": }', encoding="utf-8")

    result = await SchemaService().fetch(path_to_uri(path))

    assert result.errors == ["Invalid value at 2:8"]


@pytest.mark.asyncio
async def test_fetch_invalid_schema(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text('{"type": 12}', encoding="utf-8")

    assert not (await SchemaService().fetch(path_to_uri(path))).ok
    assert (await SchemaService(check_schema=False).fetch(path_to_uri(path))).ok


@pytest.mark.asyncio
async def test_fetch_unsupported_scheme() -> None:
    result = await SchemaService().fetch("ftp://example.com/x.json")
    assert result.errors == ["Unsupported uri scheme: ftp"]


@pytest.mark.asyncio
async def test_failed_load_is_retried(tmp_path: Path) -> None:
    path = tmp_path / "later.json"
    service = SchemaService()
    uri = path_to_uri(path)

    assert not (await service.fetch(uri)).ok
    path.write_text("{}", encoding="utf-8")

    assert (await service.fetch(uri)).ok


@pytest.mark.asyncio
async def test_fetch_deeply_nested_file(tmp_path: Path) -> None:
    path = tmp_path / "deep.json"
    path.write_text("[" * 5000 + "]" * 5000, encoding="utf-8")

    result = await SchemaService().fetch(path_to_uri(path))

    assert result.errors == ["Nesting too deep at 1:257"]


@pytest.mark.asyncio
async def test_fetch_http_protocol_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken_read(self: SchemaService, uri: str, scheme: str) -> str:
        raise http.client.IncompleteRead(b"{")

    monkeypatch.setattr(SchemaService, "_read", _broken_read)

    result = await SchemaService().fetch("https://example.com/schema.json")

    assert len(result.errors) == 1
    assert result.errors[0].startswith("Unable to load https://example.com/schema.json")

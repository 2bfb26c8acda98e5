"""Default collaborators for cross-document links.

- ``UriDocumentContext`` resolves the file part of a ``$ref`` against the
  uri of the document that contains it.
- ``SchemaService`` fetches a referenced document (``file:`` or
  ``http(s):``), parses it with positions, and checks JSON objects against
  their meta-schema with ``jsonschema``. Problems never raise; they end up
  in ``FetchResult.errors``.

Both are plain objects; callers can substitute anything that satisfies the
``DocumentContext`` / ``ResourceService`` protocols in ``links``.
"""

from __future__ import annotations

import asyncio
import http.client
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

import jsonschema
from jsonschema.exceptions import SchemaError

from reflinks.tools.jsonpos import JsonPosError, TextDocument, parse_tree, to_python
from reflinks.tools.links import FetchResult
from reflinks.tools.nodes import JSONDocument, ObjectNode

logger = logging.getLogger(__name__)


def _has_scheme(ref: str) -> bool:
    # A single letter is a Windows drive ("C:\..."), not a scheme.
    return len(urlparse(ref).scheme) > 1


def path_to_uri(path: str | Path) -> str:
    return Path(path).resolve().as_uri()


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    return Path(urllib.request.url2pathname(parsed.path))


class UriDocumentContext:
    """Resolve relative references the way a browser resolves links."""

    def resolve_reference(self, ref: str, base_uri: str) -> Optional[str]:
        if not ref:
            return None
        if _has_scheme(ref):
            return ref
        if ref.startswith("/") and not base_uri:
            return Path(ref).as_uri()
        if not base_uri:
            return None
        resolved = urljoin(base_uri, ref)
        return resolved if _has_scheme(resolved) else None


class SchemaService:
    """Fetch, parse and check referenced documents, caching per uri.

    Concurrent fetches of the same uri share a single load.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30,
        check_schema: bool = True,
        allowed_schemes: Sequence[str] = ("file", "http", "https"),
    ) -> None:
        self.timeout_s = timeout_s
        self.check_schema = check_schema
        self.allowed_schemes = tuple(allowed_schemes)
        self._cache: Dict[str, "asyncio.Future[FetchResult]"] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    async def fetch(self, uri: str) -> FetchResult:
        fut = self._cache.get(uri)
        if fut is None:
            fut = asyncio.ensure_future(self._load(uri))
            self._cache[uri] = fut
        else:
            logger.debug("cache hit for %s", uri)
        result = await fut
        if result.json_document is None and self._cache.get(uri) is fut:
            # Load failures may be transient; only parsed documents stay cached.
            del self._cache[uri]
        return result

    async def _load(self, uri: str) -> FetchResult:
        scheme = urlparse(uri).scheme
        if scheme not in self.allowed_schemes:
            return FetchResult(uri, [f"Unsupported uri scheme: {scheme or '(none)'}"])
        try:
            text = await asyncio.to_thread(self._read, uri, scheme)
        except (OSError, ValueError, urllib.error.URLError, http.client.HTTPException) as e:
            logger.warning("could not load %s: %s", uri, e)
            return FetchResult(uri, [f"Unable to load {uri}: {e}"])
        return self.parse(uri, text)

    def _read(self, uri: str, scheme: str) -> str:
        if scheme == "file":
            return uri_to_path(uri).read_text(encoding="utf-8")
        with urllib.request.urlopen(uri, timeout=self.timeout_s) as resp:
            return resp.read().decode("utf-8")

    def parse(self, uri: str, text: str) -> FetchResult:
        """Parse already-loaded text into a ``FetchResult``."""
        text_document = TextDocument(uri, text)
        try:
            json_document = parse_tree(text)
        except JsonPosError as e:
            pos = text_document.position_at(e.index)
            return FetchResult(uri, [f"{e.message} at {pos.line + 1}:{pos.character + 1}"], text_document=text_document)

        errors: List[str] = []
        if self.check_schema:
            errors.extend(check_schema(json_document))
        return FetchResult(uri, errors, json_document=json_document, text_document=text_document)


def check_schema(doc: JSONDocument) -> List[str]:
    """Meta-schema errors for a schema document (empty when it is fine).

    Only objects are checked; anything else is treated as plain JSON data.
    """
    if not isinstance(doc.root, ObjectNode):
        return []
    schema = to_python(doc.root)
    validator_cls = jsonschema.validators.validator_for(schema, default=jsonschema.Draft202012Validator)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as e:
        path = "/".join(str(p) for p in e.path)
        return [f"{path or '(root)'}: {e.message}"]
    except RecursionError:
        return ["(root): schema nests too deeply to check"]
    return []

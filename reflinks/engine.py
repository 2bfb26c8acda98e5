"""A small "drop-in" integration layer for reflinks.

Wires the parser, the link finders and the default collaborators into a
single API for Python hosts that just have JSON text.

Typical usage:

    from reflinks.engine import LinkEngine

    eng = LinkEngine()
    doc = eng.load_path("schemas/order.json")
    links = asyncio.run(eng.links(doc))
    refs = eng.external_references(doc)

"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from reflinks.tools import links as link_finder
from reflinks.tools.jsonpos import TextDocument, parse_tree
from reflinks.tools.links import DocumentContext, DocumentLink, JsonNodeUri, ResourceService
from reflinks.tools.nodes import JSONDocument
from reflinks.tools.schema_service import SchemaService, UriDocumentContext, path_to_uri


@dataclass
class ParsedDocument:
    text_document: TextDocument
    json_document: JSONDocument

    @property
    def uri(self) -> str:
        return self.text_document.uri


class LinkEngine:
    def __init__(
        self,
        *,
        context: Optional[DocumentContext] = None,
        service: Optional[ResourceService] = None,
    ) -> None:
        self.context = context or UriDocumentContext()
        self.service = service or SchemaService()

    def parse(self, uri: str, text: str) -> ParsedDocument:
        return ParsedDocument(TextDocument(uri, text), parse_tree(text))

    def load_path(self, path: str | Path) -> ParsedDocument:
        p = Path(path)
        return self.parse(path_to_uri(p), p.read_text(encoding="utf-8"))

    async def links(self, doc: ParsedDocument, *, on_demand: bool = False, resolve_fragments: bool = False) -> List[DocumentLink]:
        if not on_demand:
            return await link_finder.find_links(doc.text_document, doc.json_document)
        return await link_finder.find_links_on_demand(
            doc.text_document,
            doc.json_document,
            self.context,
            self.service,
            resolve_fragments=resolve_fragments,
        )

    async def links_with(self, doc: ParsedDocument, externals: List[ParsedDocument]) -> List[DocumentLink]:
        """Links into ``externals``, matched to ``doc``'s references by uri."""
        by_uri = {ext.uri: ext for ext in externals}
        bundles: List[link_finder.JsonExternalReference] = []
        for ref in self.external_references(doc):
            ext = by_uri.get(ref.uri)
            if ext is None:
                continue
            bundles.append(link_finder.JsonExternalReference(ref.source_node, ext.text_document, ext.json_document))
        return await link_finder.find_links_with_references(doc.text_document, doc.json_document, bundles)

    def external_references(self, doc: ParsedDocument) -> List[JsonNodeUri]:
        return link_finder.find_external_references(doc.text_document, doc.json_document, self.context)

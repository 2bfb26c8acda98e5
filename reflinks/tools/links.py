"""Turn ``$ref`` properties into document links.

A link pairs the text range of a ``$ref`` value (without its quotes) with a
target of the form ``<uri>#<line>,<character>`` (both 1-based), or with no
target at all when the reference is only known to be valid.

Entry points:

- ``find_links``: same-document pointers only
- ``find_links_with_references``: same-document pointers plus references
  into documents the caller already loaded
- ``find_links_on_demand``: same-document pointers plus references fetched
  through a ``ResourceService``
- ``find_external_references``: list the external files a document points
  at, without resolving anything

Nothing in here raises for a bad reference. References that do not resolve
are simply absent from the result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, cast

from reflinks.tools.jsonpos import Range, TextDocument
from reflinks.tools.nodes import JSONDocument, Node, PropertyNode, StringNode, is_ref_property
from reflinks.tools.pointer import find_target_node, split_reference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentLink:
    range: Range
    target: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"target": self.target, "range": self.range.to_dict()}


@dataclass(frozen=True)
class JsonNodeUri:
    """A ``$ref`` property and the absolute uri of the file it points into."""

    source_node: PropertyNode
    uri: str


@dataclass(frozen=True)
class JsonExternalReference:
    """A ``$ref`` property together with the already-parsed document it targets."""

    source_node: Node
    text_document: TextDocument
    json_document: JSONDocument


@dataclass
class FetchResult:
    uri: str
    errors: List[str]
    json_document: Optional[JSONDocument] = None
    text_document: Optional[TextDocument] = None

    @property
    def ok(self) -> bool:
        return not self.errors


class DocumentContext(Protocol):
    def resolve_reference(self, ref: str, base_uri: str) -> Optional[str]:
        ...


class ResourceService(Protocol):
    async def fetch(self, uri: str) -> FetchResult:
        ...


def create_range(document: TextDocument, node: Node) -> Range:
    """Range of a string node's contents, quotes excluded."""
    return document.range_of(node.offset + 1, node.offset + node.length - 1)


def format_target(document: TextDocument, node: Node) -> str:
    pos = document.position_at(node.offset)
    return f"{document.uri}#{pos.line + 1},{pos.character + 1}"


def _ref_value(prop: PropertyNode) -> StringNode:
    # Callers only pass properties that passed is_ref_property().
    return cast(StringNode, prop.value_node)


def _local_link(document: TextDocument, doc: JSONDocument, prop: PropertyNode) -> Optional[DocumentLink]:
    value = _ref_value(prop)
    target = find_target_node(doc, value.value)
    if target is None:
        logger.debug("%s: $ref %r does not resolve locally", document.uri, value.value)
        return None
    return DocumentLink(range=create_range(document, value), target=format_target(document, target))


def _collect_local_links(document: TextDocument, doc: JSONDocument) -> List[DocumentLink]:
    links: List[DocumentLink] = []

    def _on_node(node: Node) -> bool:
        if is_ref_property(node):
            link = _local_link(document, doc, node)  # type: ignore[arg-type]
            if link is not None:
                links.append(link)
        return True

    doc.visit(_on_node)
    return links


async def find_links(document: TextDocument, doc: JSONDocument) -> List[DocumentLink]:
    """Links for every ``$ref`` that resolves inside ``doc`` itself."""
    return _collect_local_links(document, doc)


async def find_links_with_references(
    document: TextDocument,
    doc: JSONDocument,
    external_references: Iterable[JsonExternalReference],
) -> List[DocumentLink]:
    """Local links followed by links into caller-supplied external documents.

    Each external reference's fragment is resolved against its own tree; the
    link range stays in ``document``.
    """
    links = _collect_local_links(document, doc)
    for ref in external_references:
        if not is_ref_property(ref.source_node):
            continue
        value = _ref_value(ref.source_node)  # type: ignore[arg-type]
        _, fragment = split_reference(value.value)
        target = find_target_node(ref.json_document, fragment)
        if target is None:
            logger.debug("%s: fragment %r not found in %s", document.uri, fragment, ref.text_document.uri)
            continue
        links.append(DocumentLink(range=create_range(document, value), target=format_target(ref.text_document, target)))
    return links


async def find_links_on_demand(
    document: TextDocument,
    doc: JSONDocument,
    context: DocumentContext,
    service: ResourceService,
    *,
    resolve_fragments: bool = False,
) -> List[DocumentLink]:
    """Local links plus links for external references that load cleanly.

    Every external reference triggers one ``service.fetch`` call; the fetches
    run concurrently and the result is returned once all of them settle, so
    link order is not document order.

    By default a successful fetch yields a link without a target: it marks the
    reference as recognized. With ``resolve_fragments`` the fetched tree is
    searched for the fragment too and, when found, the link gets a target in
    the external document.
    """
    links: List[DocumentLink] = []
    pending: List[Any] = []

    async def _check_external(value: StringNode, uri: str, fragment: str) -> None:
        try:
            result = await service.fetch(uri)
        except Exception as e:
            logger.warning("%s: fetching %s failed: %s", document.uri, uri, e)
            return
        if not result.ok:
            logger.warning("%s: %s loaded with %d error(s)", document.uri, uri, len(result.errors))
            return
        target: Optional[str] = None
        if resolve_fragments and result.json_document is not None and result.text_document is not None:
            node = find_target_node(result.json_document, fragment)
            if node is not None:
                target = format_target(result.text_document, node)
        links.append(DocumentLink(range=create_range(document, value), target=target))

    for prop in doc.ref_properties():
        value = _ref_value(prop)
        file_part, fragment = split_reference(value.value)
        if not file_part:
            link = _local_link(document, doc, prop)
            if link is not None:
                links.append(link)
            continue
        uri = context.resolve_reference(file_part, document.uri)
        if not uri:
            logger.debug("%s: cannot resolve %r", document.uri, file_part)
            continue
        pending.append(_check_external(value, uri, fragment))

    await asyncio.gather(*pending)
    return links


def find_external_references(
    document: TextDocument,
    doc: JSONDocument,
    context: DocumentContext,
) -> List[JsonNodeUri]:
    """Every ``$ref`` with a file part, paired with its absolute uri."""
    refs: List[JsonNodeUri] = []
    for prop in doc.ref_properties():
        file_part, _ = split_reference(_ref_value(prop).value)
        if not file_part:
            continue
        uri = context.resolve_reference(file_part, document.uri)
        if uri:
            refs.append(JsonNodeUri(source_node=prop, uri=uri))
    return refs

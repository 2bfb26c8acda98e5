#!/usr/bin/env python3
"""reflinks CLI.

Each command parses its own arguments, same as the dispatcher in ``main``
expects:

- links      Print the links for every resolvable ``$ref`` in a file
- refs       Print the external files a document references
- pointer    Resolve a ``#/...`` pointer in a file and print its location

Example:
  reflinks links schemas/order.json --on-demand --resolve-fragments

Exit codes:
  0 OK
  2 usage error / pointer not found
  3 IO/JSON parse error
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from reflinks.engine import LinkEngine, ParsedDocument
from reflinks.tools.jsonpos import JsonPosError
from reflinks.tools.pointer import find_target_node
from reflinks.tools.schema_service import SchemaService


def _help() -> str:
    return (
        "reflinks CLI\n\n"
        "Usage:\n"
        "  reflinks <command> [args...]\n\n"
        "Commands:\n"
        "  links      Links for $ref properties\n"
        "  refs       External files referenced by $ref\n"
        "  pointer    Resolve a JSON pointer\n"
        "  version    Show current version\n"
    )


def _print_version() -> int:
    try:
        from importlib.metadata import version

        v = version("reflinks")
    except Exception:
        v = "unknown"
    print(v)
    return 0


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load(engine: LinkEngine, path: str, base_uri: Optional[str]) -> Optional[ParsedDocument]:
    try:
        if base_uri:
            with open(path, encoding="utf-8") as f:
                return engine.parse(base_uri, f.read())
        return engine.load_path(path)
    except (OSError, JsonPosError) as e:
        print(f"Failed to read/parse JSON: {e}", file=sys.stderr)
        return None


def _common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("path", help="Path to a JSON document")
    ap.add_argument("--base-uri", help="Uri to use for the document (default: file uri of path)")
    ap.add_argument("--json", action="store_true", help="Emit results as JSON")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")


def links_main(argv: List[str]) -> int:
    ap = argparse.ArgumentParser(prog="reflinks links")
    _common_args(ap)
    ap.add_argument("--on-demand", action="store_true", help="Fetch referenced files and mark the valid ones")
    ap.add_argument("--resolve-fragments", action="store_true", help="With --on-demand, also locate the fragment")
    ap.add_argument("--timeout", type=float, default=30, help="HTTP timeout in seconds")
    ap.add_argument("--no-schema-check", action="store_true", help="Do not meta-schema check fetched files")
    args = ap.parse_args(argv)
    _setup_logging(args.verbose)

    engine = LinkEngine(service=SchemaService(timeout_s=args.timeout, check_schema=not args.no_schema_check))
    doc = _load(engine, args.path, args.base_uri)
    if doc is None:
        return 3

    links = asyncio.run(engine.links(doc, on_demand=args.on_demand, resolve_fragments=args.resolve_fragments))
    if args.json:
        print(json.dumps([link.to_dict() for link in links], indent=2, ensure_ascii=False))
    else:
        for link in links:
            start, end = link.range.start, link.range.end
            print(f"{start.line + 1}:{start.character + 1}-{end.line + 1}:{end.character + 1} -> {link.target or '(valid)'}")
    return 0


def refs_main(argv: List[str]) -> int:
    ap = argparse.ArgumentParser(prog="reflinks refs")
    _common_args(ap)
    args = ap.parse_args(argv)
    _setup_logging(args.verbose)

    engine = LinkEngine()
    doc = _load(engine, args.path, args.base_uri)
    if doc is None:
        return 3

    refs = engine.external_references(doc)
    if args.json:
        out = [{"ref": ref.source_node.value_node.value, "uri": ref.uri} for ref in refs]  # type: ignore[union-attr]
        print(json.dumps(out, indent=2, ensure_ascii=False))
    else:
        for ref in refs:
            pos = doc.text_document.position_at(ref.source_node.offset)
            print(f"{pos.line + 1}:{pos.character + 1} {ref.uri}")
    return 0


def pointer_main(argv: List[str]) -> int:
    ap = argparse.ArgumentParser(prog="reflinks pointer")
    _common_args(ap)
    ap.add_argument("pointer", help="JSON pointer, e.g. '#/definitions/item'")
    args = ap.parse_args(argv)
    _setup_logging(args.verbose)

    engine = LinkEngine()
    doc = _load(engine, args.path, args.base_uri)
    if doc is None:
        return 3

    node = find_target_node(doc.json_document, args.pointer)
    if node is None:
        print(f"pointer not found: {args.pointer}", file=sys.stderr)
        return 2
    rng = doc.text_document.range_of(node.offset, node.end)
    if args.json:
        print(json.dumps({"type": node.type, "range": rng.to_dict()}, indent=2))
    else:
        print(f"{node.type} {rng.start.line + 1}:{rng.start.character + 1}-{rng.end.line + 1}:{rng.end.character + 1}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in {"-h", "--help", "help"}:
        sys.stdout.write(_help())
        return 0

    cmd, rest = argv[0], argv[1:]
    if cmd in {"version", "--version", "-V"}:
        return _print_version()
    if cmd == "links":
        return links_main(rest)
    if cmd == "refs":
        return refs_main(rest)
    if cmd == "pointer":
        return pointer_main(rest)

    sys.stderr.write(f"Unknown command: {cmd}\n\n")
    sys.stderr.write(_help())
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

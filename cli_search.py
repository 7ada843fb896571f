"""Terminal client that reuses the in-process catalog engine."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable

from catalog.engine import CatalogEngine
from catalog.errors import CatalogError
from catalog.es_store import ElasticsearchStore, get_client
from catalog.importer import import_records
from catalog.models import EntityKind, Page, SearchFilters
from catalog.ranking import SortPolicy

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


def build_engine() -> CatalogEngine:
    return CatalogEngine.from_store(ElasticsearchStore(get_client()))


def perform_query(engine: CatalogEngine, query: str, args: argparse.Namespace) -> Page:
    filters = SearchFilters(query=query or None, brand=args.brand, perfumer=args.perfumer, note=args.note)
    return engine.catalog.search(filters, SortPolicy(args.sort), args.page, args.limit)


def pretty_print_page(query: str, page: Page) -> None:
    print(f"Query: {query!r} | page {page.page}/{page.totalPages} | results: {page.totalItems}")
    for idx, item in enumerate(page.items, start=1):
        print(
            f"  {idx:02d}. {item.brand} | {item.name} | {item.releaseYear or '-'} | "
            f"rating={item.ratingValue:.2f} ({item.ratingCount})"
        )


def run_query(engine: CatalogEngine, query: str, args: argparse.Namespace) -> None:
    try:
        page = perform_query(engine, query, args)
    except CatalogError as exc:
        print(f"{RED}{exc.kind}{RESET}: {exc.message}")
        return
    pretty_print_page(query, page)


def interactive_shell(engine: CatalogEngine, args: argparse.Namespace) -> None:
    print("Interactive perfume search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            return
        run_query(engine, query, args)


def batch_mode(engine: CatalogEngine, file_path: Path, args: argparse.Namespace) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            run_query(engine, query, args)


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the perfume catalog")
    parser.add_argument("query", nargs="?", help="Query string. If omitted, starts REPL mode.")
    parser.add_argument("--batch", type=Path, help="File with queries to execute line by line")
    parser.add_argument("--brand", help="Brand slug filter")
    parser.add_argument("--perfumer", help="Perfumer slug filter")
    parser.add_argument("--note", help="Note id filter")
    parser.add_argument("--sort", default=SortPolicy.RELEVANCE.value, choices=[p.value for p in SortPolicy])
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int, default=20)
    parser.add_argument("--discover", choices=[k.value for k in EntityKind], help="Rebuild a registry kind")
    parser.add_argument("--import", dest="import_path", type=Path, help="Load a legacy perfumes JSON export")
    args = parser.parse_args(list(argv) if argv is not None else None)

    engine = build_engine()
    if args.import_path:
        report = import_records(engine.store, args.import_path)
        print(f"{GREEN}imported {report.imported}{RESET} flagged={len(report.flagged)} rejected={len(report.rejected)}")
        return 0
    if args.discover:
        entities = engine.registry.discover_all(EntityKind(args.discover))
        print(f"{GREEN}{len(entities)} {args.discover} entities{RESET}")
        return 0
    if args.batch:
        batch_mode(engine, args.batch, args)
        return 0
    if args.query or args.brand or args.perfumer or args.note:
        run_query(engine, args.query or "", args)
        return 0
    interactive_shell(engine, args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

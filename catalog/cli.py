"""
Command-line entry point for the asset catalog.

Usage:
    python -m catalog.cli watch ~/assets
    python -m catalog.cli scan ~/assets
    python -m catalog.cli search "red dragon" --type image --status approved
    python -m catalog.cli similar <asset_id> --limit 5
    python -m catalog.cli lineage <asset_id>
    python -m catalog.cli stats --root ~/assets
    python -m catalog.cli server --port 8000

Results are printed as JSON on stdout; logs go to stderr.
"""

import argparse
import json
import logging
import os
import sys
import time

logger = logging.getLogger(__name__)


def _open_db(args):
    from catalog.db.sqlite_client import CatalogDB
    db_path = args.db
    # relative to the working directory, not the project root
    if db_path and db_path != ":memory:":
        db_path = os.path.abspath(db_path)
    return CatalogDB(db_path)


def _root(args):
    return os.path.realpath(args.root) if getattr(args, "root", None) else None


def _print_assets(assets):
    from catalog.server.routers.search import format_asset
    print(json.dumps([format_asset(a) for a in assets], ensure_ascii=False, indent=2))


# ── Subcommand handlers ──────────────────────────────────────────────

def cmd_watch(args):
    """Watch a folder until interrupted."""
    from catalog.pipeline.indexer import IndexerService

    db = _open_db(args)
    indexer = IndexerService(db)
    indexer.set_root(args.root)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("[WATCH] Interrupted")
    finally:
        indexer.stop()
        db.close()


def cmd_scan(args):
    """Initial discovery of a folder, then exit."""
    from catalog.pipeline.indexer import IndexerService

    db = _open_db(args)
    indexer = IndexerService(db)
    indexer.set_root(args.root)
    indexer.wait_idle(timeout=args.timeout)
    if args.embeddings:
        indexer.process_embeddings()
    stats = indexer.get_stats()
    indexer.stop()
    db.close()
    print(json.dumps(stats.model_dump(), indent=2))


def cmd_search(args):
    from catalog.parser.schema import SearchFilters
    from catalog.search.sqlite_search import SearchService

    db = _open_db(args)
    search = SearchService(db, root_path=_root(args))
    filters = SearchFilters(
        type=args.type,
        status=args.status,
        tag_ids=args.tag or None,
        related_to_asset_id=args.related,
        semantic=args.semantic,
    )
    results = search.search(args.query, filters)
    _print_assets(results[:args.limit])
    db.close()


def cmd_similar(args):
    from catalog.search.sqlite_search import SearchService

    db = _open_db(args)
    _print_assets(SearchService(db, root_path=_root(args)).find_similar(args.asset_id, args.limit))
    db.close()


def cmd_lineage(args):
    from catalog.search.sqlite_search import SearchService

    db = _open_db(args)
    _print_assets(SearchService(db, root_path=_root(args)).lineage(args.asset_id))
    db.close()


def cmd_stats(args):
    db = _open_db(args)
    print(json.dumps(db.get_stats(_root(args)), indent=2))
    db.close()


def cmd_server(args):
    import uvicorn
    uvicorn.run("catalog.server.app:app", host=args.host, port=args.port, workers=1)


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        prog='catalog',
        description='Local media-asset catalog: indexing and hybrid search'
    )
    parser.add_argument('--db', help='SQLite database path (default: database.path)')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('watch', help='Watch a folder for changes (includes initial scan)')
    p.add_argument('root', help='Folder to watch')

    p = sub.add_parser('scan', help='Index a folder once and exit')
    p.add_argument('root', help='Folder to scan')
    p.add_argument('--timeout', type=float, default=None, help='Seconds to wait for the scan')
    p.add_argument('--embeddings', action='store_true', help='Run the embedding pass afterwards')

    p = sub.add_parser('search', help='Hybrid search')
    p.add_argument('query', nargs='?', default='')
    p.add_argument('--root', help='Restrict to assets of this root')
    p.add_argument('--type', choices=['image', 'video', 'other'])
    p.add_argument('--status')
    p.add_argument('--tag', action='append', help='Tag id (repeatable, any-of)')
    p.add_argument('--related', help='Asset id for lineage / similarity mode')
    p.add_argument('--semantic', action='store_true', help='Related mode uses vector neighbours')
    p.add_argument('--limit', type=int, default=20)

    p = sub.add_parser('similar', help='Nearest neighbours of an asset')
    p.add_argument('asset_id')
    p.add_argument('--root')
    p.add_argument('--limit', type=int, default=10)

    p = sub.add_parser('lineage', help='Ancestors and descendants of an asset')
    p.add_argument('asset_id')
    p.add_argument('--root')

    p = sub.add_parser('stats', help='Catalog statistics')
    p.add_argument('--root')

    p = sub.add_parser('server', help='Run the HTTP API')
    p.add_argument('--port', type=int, default=8000)
    p.add_argument('--host', default='127.0.0.1')

    args = parser.parse_args(argv)

    handlers = {
        'watch': cmd_watch,
        'scan': cmd_scan,
        'search': cmd_search,
        'similar': cmd_similar,
        'lineage': cmd_lineage,
        'stats': cmd_stats,
        'server': cmd_server,
    }
    handlers[args.command](args)


if __name__ == '__main__':
    main()

import argparse
import json
import sys
from typing import Any, List, Optional

from engine.errors import AccountError, AuthenticationRequired
from engine.logger import get_logger
from engine.models import Product
from engine.search import available_stores, filter_by_store
from engine.session import Session, build_session
from engine.storage import SqliteStore

logger = get_logger(__name__)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _products(products: List[Product]) -> List[dict]:
    return [p.to_dict() for p in products]


def cmd_search(session: Session, args: argparse.Namespace) -> int:
    result = session.search(args.query)
    products = filter_by_store(result.products, args.store)
    _emit({
        "query": args.query,
        "provider": result.provider,
        "error": result.error,
        "stores": available_stores(result.products),
        "products": _products(products),
    })
    return 0


def cmd_detail(session: Session, args: argparse.Namespace) -> int:
    if len(args.ids) == 1:
        _emit(session.fetcher.fetch_detail(args.ids[0]).to_dict())
    else:
        _emit(_products(session.fetcher.fetch_many(args.ids)))
    return 0


def cmd_featured(session: Session, args: argparse.Namespace) -> int:
    _emit(_products(session.featured()))
    return 0


def cmd_recommend(session: Session, args: argparse.Namespace) -> int:
    _emit(_products(session.recommend()))
    return 0


def cmd_saved(session: Session, args: argparse.Namespace) -> int:
    saved = session.saved
    if args.action == "list":
        items = saved.local_items() if args.local else saved.list()
        _emit([it.to_dict() for it in items])
    elif args.action == "toggle":
        product = session.fetcher.fetch_detail(args.id)
        state = saved.toggle_save(product)
        _emit(vars(state))
    elif args.action == "clear":
        try:
            synced = saved.clear_all()
        except AuthenticationRequired as e:
            logger.error("%s", e)
            return 3
        _emit({"cleared": True, "synced": synced})
    elif args.action == "pending":
        _emit([c.to_dict() for c in saved.pending()])
    elif args.action == "sync":
        remaining = saved.retry_pending()
        _emit({"remaining": [c.to_dict() for c in remaining]})
    return 0


def cmd_history(session: Session, args: argparse.Namespace) -> int:
    try:
        if args.action == "list":
            _emit([vars(t) for t in session.history.terms()])
        elif args.action == "delete":
            session.history.delete(args.id)
            _emit({"deleted": args.id})
        elif args.action == "clear":
            session.history.clear()
            _emit({"cleared": True})
    except AuthenticationRequired as e:
        logger.error("%s", e)
        return 3
    except AccountError as e:
        logger.error("History request failed: %s", e)
        return 1
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Search shopping providers and manage saved products",
    )
    parser.add_argument("--db", help="Path to the local SQLite store (default: $DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="Search products across providers")
    p.add_argument("query")
    p.add_argument("--store", help="Only show results from this store")
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("detail", help="Fetch product details by item id")
    p.add_argument("ids", nargs="+")
    p.set_defaults(func=cmd_detail)

    p = sub.add_parser("featured", help="Fetch the featured products")
    p.set_defaults(func=cmd_featured)

    p = sub.add_parser("recommend", help="Products for a random history term")
    p.set_defaults(func=cmd_recommend)

    p = sub.add_parser("saved", help="Saved products")
    p.add_argument("action", choices=["list", "toggle", "clear", "pending", "sync"])
    p.add_argument("id", nargs="?", help="Item id (toggle)")
    p.add_argument("--local", action="store_true", help="List the local mirror only")
    p.set_defaults(func=cmd_saved)

    p = sub.add_parser("history", help="Remote search history")
    p.add_argument("action", choices=["list", "delete", "clear"])
    p.add_argument("id", nargs="?", help="History item id (delete)")
    p.set_defaults(func=cmd_history)

    args = parser.parse_args(argv)
    if args.command == "search" and not args.query.strip():
        parser.error("query must not be empty")
    if args.command in ("saved", "history") and args.action in ("toggle", "delete") and not args.id:
        parser.error(f"{args.command} {args.action} needs an id")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    store = None
    if args.db:
        store = SqliteStore(args.db)
        store.ensure_db()
    session = build_session(store=store)
    return args.func(session, args)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        logger.exception("Fatal shopcrawl error: %s", e)
        raise SystemExit(2)

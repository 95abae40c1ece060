from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from datetime import date, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from playwright.async_api import APIRequestContext, async_playwright
from sqlalchemy.exc import SQLAlchemyError

from intermediator.clients.registry import ClientRegistry
from intermediator.common.db import dispose_engines, run_alembic_upgrade
from intermediator.config import Config, ConfigError, get_config, get_database_settings
from intermediator.json_logger import JsonLogger, get_logger, log_event, new_run_id, timed_event
from intermediator.links.catalog import PlusCatalogStore, SaboritteCatalogStore
from intermediator.links.resolver import ProductLinkResolver
from intermediator.links.store import ProductLinkStore, delete_link, link_products, list_links
from intermediator.notifications import UNREAD_LIMIT, NotificationSink
from intermediator.orders.models import OrderStatus
from intermediator.orders.stats import OrderFilters, calculate_order_total, filter_orders, order_stats
from intermediator.orders.store import OrderStore, OrderStoreError
from intermediator.platforms.api import PlatformApi
from intermediator.sync.gate import SyncGate
from intermediator.sync.orchestrator import SyncOrchestrator

PIPELINE_COMMANDS = {"sync-orders", "send-orders", "sync-menu", "sync-saboritte-menu", "sync-clients"}
LOCAL_COMMANDS = {"links", "clients", "orders", "notifications", "catalog"}


def build_orchestrator(
    app_config: Config,
    *,
    request: APIRequestContext,
    logger: JsonLogger,
    tz: tzinfo,
    gate: SyncGate | None = None,
) -> SyncOrchestrator:
    database_url = app_config.database_url
    return SyncOrchestrator(
        order_store=OrderStore(database_url),
        resolver=ProductLinkResolver(ProductLinkStore(database_url), logger=logger),
        clients=ClientRegistry(database_url, logger=logger),
        plus_api=PlatformApi(request, platform=app_config.plus, logger=logger),
        saboritte_api=PlatformApi(request, platform=app_config.saboritte, logger=logger),
        gate=gate or SyncGate(logger=logger),
        logger=logger,
        tz=tz,
        notifications=NotificationSink(database_url),
        catalog=PlusCatalogStore(database_url),
        saboritte_catalog=SaboritteCatalogStore(database_url),
        test_mode=app_config.saboritte.settings.test_mode,
        notify_errors=app_config.plus.settings.notify_errors,
    )


def _print_json(value: Any) -> None:
    print(json.dumps(value, default=str, ensure_ascii=False, indent=2))


def _print_result(result: Any) -> None:
    _print_json(asdict(result))


async def _load_config() -> tuple[Config, tzinfo] | None:
    try:
        app_config = await get_config()
        return app_config, ZoneInfo(app_config.pipeline_timezone)
    except (ConfigError, ZoneInfoNotFoundError) as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return None


async def _run_orchestrator(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> Any:
    if args.command == "sync-orders":
        return await orchestrator.sync_from_source()
    if args.command == "send-orders":
        return await orchestrator.send_batch(args.order_ids, dry_run=args.dry_run)
    if args.command == "sync-menu":
        return await orchestrator.sync_menu_from_source()
    if args.command == "sync-saboritte-menu":
        return await orchestrator.sync_saboritte_menu()
    return await orchestrator.sync_clients_from_target()


async def _run_pipeline(args: argparse.Namespace) -> int:
    run_id = args.run_id or new_run_id()
    loaded = await _load_config()
    if loaded is None:
        return 2
    app_config, tz = loaded

    root_logger = get_logger(run_id=run_id, log_file_path=app_config.json_log_file or None)
    logger = root_logger.bind(command=args.command)
    log_event(logger=logger, phase="cli", message="command started")
    try:
        async with async_playwright() as playwright:
            request = await playwright.request.new_context()
            try:
                orchestrator = build_orchestrator(app_config, request=request, logger=logger, tz=tz)
                with timed_event(logger=logger, phase="cli", message="command finished"):
                    result = await _run_orchestrator(orchestrator, args)
            finally:
                await request.dispose()
    finally:
        await dispose_engines()

    log_event(logger=logger, phase="cli", status="ok" if result.success else "error", message=result.message)
    root_logger.close()
    _print_result(result)
    return 0 if result.success else 1


# ------------------------------------------------------------ local commands


async def _links_command(args: argparse.Namespace, database_url: str) -> int:
    store = ProductLinkStore(database_url)
    if args.links_command == "list":
        _print_json([asdict(link) for link in await list_links(store)])
        return 0
    if args.links_command == "delete":
        outcome = await delete_link(store, args.link_id)
        _print_result(outcome)
        return 0 if outcome.success else 1

    plus = await PlusCatalogStore(database_url).get(args.plus_id)
    saboritte = await SaboritteCatalogStore(database_url).get(args.saboritte_id)
    if plus is None or saboritte is None:
        missing = f"Produto Plus {args.plus_id}" if plus is None else f"Produto Saboritte {args.saboritte_id}"
        print(f"[links] {missing} não encontrado no catálogo local", file=sys.stderr)
        return 1
    outcome = await link_products(
        store,
        plus.as_ref(),
        saboritte.as_ref(),
        variation_description=args.variation,
        variation_price=args.variation_price,
    )
    _print_result(outcome)
    return 0 if outcome.success else 1


async def _clients_command(args: argparse.Namespace, database_url: str) -> int:
    registry = ClientRegistry(database_url)
    if args.clients_command == "search":
        _print_json([asdict(client) for client in await registry.search_by_phone(args.phone)])
        return 0
    result = await registry.save_client(
        args.nome,
        args.telefone,
        bloqueado=args.bloqueado,
        permitirrobo=not args.no_robot,
        permitircampanhas=not args.no_campaigns,
    )
    _print_result(result)
    return 0 if result.success else 1


async def _orders_command(args: argparse.Namespace, database_url: str, tz: tzinfo) -> int:
    snapshot = await OrderStore(database_url).load()
    if args.orders_command == "stats":
        _print_result(order_stats(snapshot.orders, tz=tz))
        return 0
    filters = OrderFilters(
        status=OrderStatus(args.status) if args.status else None,
        date_from=args.date_from,
        date_to=args.date_to,
        client_name=args.client,
        min_total=args.min_total,
        max_total=args.max_total,
    )
    _print_json(
        [
            {
                "id": order.id,
                "client_name": order.client_name,
                "date_time": order.date_time.astimezone(tz).isoformat(),
                "status": order.status.value,
                "items": len(order.items),
                "total": calculate_order_total(order),
                "sent_to_saboritte": order.sent_to_saboritte,
            }
            for order in filter_orders(snapshot.orders, filters, tz=tz)
        ]
    )
    return 0


async def _notifications_command(args: argparse.Namespace, database_url: str) -> int:
    sink = NotificationSink(database_url)
    if args.notifications_command == "list":
        _print_json([asdict(notification) for notification in await sink.unread(limit=args.limit)])
        return 0
    if args.all:
        _print_json({"marked": await sink.mark_all_read()})
        return 0
    if args.notification_id is None:
        print("[notifications] informe um ID ou --all", file=sys.stderr)
        return 2
    marked = await sink.mark_read(args.notification_id)
    _print_json({"marked": int(marked)})
    return 0 if marked else 1


async def _catalog_command(args: argparse.Namespace, database_url: str) -> int:
    store = PlusCatalogStore(database_url) if args.platform == "plus" else SaboritteCatalogStore(database_url)
    _print_json([asdict(product) for product in await store.all_products()])
    return 0


async def _run_local(args: argparse.Namespace) -> int:
    loaded = await _load_config()
    if loaded is None:
        return 2
    app_config, tz = loaded
    database_url = app_config.database_url
    try:
        if args.command == "links":
            return await _links_command(args, database_url)
        if args.command == "clients":
            return await _clients_command(args, database_url)
        if args.command == "orders":
            return await _orders_command(args, database_url, tz)
        if args.command == "notifications":
            return await _notifications_command(args, database_url)
        return await _catalog_command(args, database_url)
    except (OrderStoreError, SQLAlchemyError) as exc:
        print(f"[db] {exc}", file=sys.stderr)
        return 1
    finally:
        await dispose_engines()


# -------------------------------------------------------------------- parser


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value.replace(",", "."))
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from None


def _add_run_id(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")


def _add_local_parsers(subparsers: Any) -> None:
    links_parser = subparsers.add_parser("links", help="Plus to Saboritte product links")
    links_sub = links_parser.add_subparsers(dest="links_command", required=True)
    add_link = links_sub.add_parser("add", help="Link a Plus product to a Saboritte product")
    add_link.add_argument("plus_id", help="Plus product id from the local catalog")
    add_link.add_argument("saboritte_id", help="Saboritte product id from the local catalog")
    add_link.add_argument("--variation", default="", help="Saboritte variation description")
    add_link.add_argument("--variation-price", dest="variation_price", default=None)
    links_sub.add_parser("list", help="List every link")
    delete_parser = links_sub.add_parser("delete", help="Remove a link")
    delete_parser.add_argument("link_id", type=int)

    clients_parser = subparsers.add_parser("clients", help="Local Saboritte client registry")
    clients_sub = clients_parser.add_subparsers(dest="clients_command", required=True)
    add_client = clients_sub.add_parser("add", help="Register a client")
    add_client.add_argument("nome")
    add_client.add_argument("telefone")
    add_client.add_argument("--bloqueado", action="store_true")
    add_client.add_argument("--no-robot", dest="no_robot", action="store_true", help="Opt out of robot messages")
    add_client.add_argument("--no-campaigns", dest="no_campaigns", action="store_true", help="Opt out of campaigns")
    search_parser = clients_sub.add_parser("search", help="Find clients by phone fragment")
    search_parser.add_argument("phone")

    orders_parser = subparsers.add_parser("orders", help="Inspect the local order store")
    orders_sub = orders_parser.add_subparsers(dest="orders_command", required=True)
    list_orders = orders_sub.add_parser("list", help="List stored orders")
    list_orders.add_argument("--status", choices=[status.value for status in OrderStatus], default=None)
    list_orders.add_argument("--from", dest="date_from", type=date.fromisoformat, default=None, metavar="YYYY-MM-DD")
    list_orders.add_argument("--to", dest="date_to", type=date.fromisoformat, default=None, metavar="YYYY-MM-DD")
    list_orders.add_argument("--client", default=None, help="Client name fragment")
    list_orders.add_argument("--min-total", dest="min_total", type=_decimal_arg, default=None)
    list_orders.add_argument("--max-total", dest="max_total", type=_decimal_arg, default=None)
    orders_sub.add_parser("stats", help="Counts and revenue")

    notifications_parser = subparsers.add_parser("notifications", help="Stored sync notifications")
    notifications_sub = notifications_parser.add_subparsers(dest="notifications_command", required=True)
    list_notifications = notifications_sub.add_parser("list", help="Most recent unread notifications")
    list_notifications.add_argument("--limit", type=int, default=UNREAD_LIMIT)
    read_parser = notifications_sub.add_parser("read", help="Mark notifications as read")
    read_parser.add_argument("notification_id", type=int, nargs="?", default=None)
    read_parser.add_argument("--all", action="store_true")

    catalog_parser = subparsers.add_parser("catalog", help="Local product catalogs")
    catalog_sub = catalog_parser.add_subparsers(dest="catalog_command", required=True)
    list_catalog = catalog_sub.add_parser("list", help="List synced products")
    list_catalog.add_argument("--platform", choices=["plus", "saboritte"], default="plus")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="intermediator", description="Plus/Saboritte order intermediator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_run_id(subparsers.add_parser("sync-orders", help="Pull new orders from Plus into the local store"))

    send_parser = subparsers.add_parser("send-orders", help="Send stored orders to Saboritte")
    send_parser.add_argument("order_ids", nargs="+", metavar="ID", help="Order ids to send, in order")
    send_parser.add_argument(
        "--dry-run", dest="dry_run", action="store_true", help="Build payloads without submitting them"
    )
    _add_run_id(send_parser)

    _add_run_id(subparsers.add_parser("sync-menu", help="Replace the local Plus product catalog"))
    _add_run_id(subparsers.add_parser("sync-saboritte-menu", help="Replace the local Saboritte product catalog"))
    _add_run_id(subparsers.add_parser("sync-clients", help="Mirror Saboritte clients into the local registry"))

    _add_local_parsers(subparsers)

    db_parser = subparsers.add_parser("db", help="Database operations")
    db_sub = db_parser.add_subparsers(dest="db_command", required=True)
    upgrade_parser = db_sub.add_parser("upgrade", help="Run Alembic upgrade")
    upgrade_parser.add_argument("--revision", default="head")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command in PIPELINE_COMMANDS:
        return asyncio.run(_run_pipeline(args))

    if args.command in LOCAL_COMMANDS:
        return asyncio.run(_run_local(args))

    if args.command == "db" and args.db_command == "upgrade":
        try:
            settings = get_database_settings()
        except ConfigError as exc:
            print(f"[config] {exc}", file=sys.stderr)
            return 2
        run_alembic_upgrade(
            revision=args.revision,
            database_url=settings.database_url,
            alembic_config_path=settings.alembic_config,
        )
        return 0

    parser.error("Unknown command")
    return 1

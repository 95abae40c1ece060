"""Order pipeline: pull orders from Plus, push selected orders to Saboritte.

Also mirrors both menus and the Saboritte client list into local tables.

Every public entry point goes through the :class:`SyncGate` and returns a
result object; transport, storage and gate failures are folded into those
results instead of escaping to the caller.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from intermediator.clients.registry import ClientMatch, ClientRegistry
from intermediator.common.phone import normalize_phone
from intermediator.json_logger import JsonLogger, log_event
from intermediator.links.catalog import (
    PlusCatalogStore,
    SaboritteCatalogStore,
    flatten_menu,
    flatten_saboritte_menu,
)
from intermediator.links.resolver import ProductLinkResolver
from intermediator.notifications import NotificationSink
from intermediator.orders.models import Order, OrderStatus
from intermediator.orders.parser import build_order
from intermediator.orders.store import CorruptOrderStoreError, OrderStore, OrderStoreError, StaleOrderStoreError
from intermediator.orders.transformer import LinkedItem, build_saboritte_payload
from intermediator.platforms.api import InvalidResponseError, PlatformApi, TransportError
from intermediator.sync.gate import GatePolicy, SyncAlreadyInProgress, SyncGate, SyncTask

STORE_WRITE_ATTEMPTS = 2


class UnlinkedProductError(RuntimeError):
    def __init__(self, order_id: str, item_names: Sequence[str]) -> None:
        super().__init__(f"Pedido #{order_id} possui {len(item_names)} produto(s) não vinculado(s)")
        self.order_id = order_id
        self.item_names = list(item_names)


@dataclass
class SyncResult:
    success: bool
    message: str
    count: int = 0
    in_progress: bool = False


@dataclass
class OrderSendResult:
    order_id: str
    success: bool
    message: str
    unlinked_items: list[str] = field(default_factory=list)
    linked_items: list[dict[str, Any]] = field(default_factory=list)
    response_status: Optional[int] = None
    response_data: Any = None
    client_exists: bool = False
    client_original_name: Optional[str] = None
    client_used_name: Optional[str] = None
    client_id: Optional[int] = None
    phone_normalized: Optional[str] = None
    phone_original: Optional[str] = None
    payload: Optional[dict[str, Any]] = None


@dataclass
class BatchSendResult:
    success: bool
    message: str
    results: list[OrderSendResult] = field(default_factory=list)
    in_progress: bool = False
    dry_run: bool = False

    @property
    def failures(self) -> list[OrderSendResult]:
        return [result for result in self.results if not result.success]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_ids(order_ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for order_id in order_ids:
        key = str(order_id)
        if key in seen:
            continue
        seen.add(key)
        ordered.append(key)
    return ordered


class SyncOrchestrator:
    def __init__(
        self,
        *,
        order_store: OrderStore,
        resolver: ProductLinkResolver,
        clients: ClientRegistry,
        plus_api: PlatformApi,
        saboritte_api: PlatformApi,
        gate: SyncGate,
        logger: JsonLogger,
        tz: tzinfo,
        notifications: NotificationSink | None = None,
        catalog: PlusCatalogStore | None = None,
        saboritte_catalog: SaboritteCatalogStore | None = None,
        policy: GatePolicy = "wait",
        test_mode: bool = False,
        notify_errors: bool = True,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.order_store = order_store
        self.resolver = resolver
        self.clients = clients
        self.plus_api = plus_api
        self.saboritte_api = saboritte_api
        self.gate = gate
        self.logger = logger
        self.tz = tz
        self.notifications = notifications
        self.catalog = catalog
        self.saboritte_catalog = saboritte_catalog
        self.policy = policy
        self.test_mode = test_mode
        self.notify_errors = notify_errors
        self.clock = clock

    # ------------------------------------------------------------------ orders

    async def sync_from_source(self) -> SyncResult:
        task = SyncTask(id=uuid.uuid4().hex, label="Pedidos do Plus")
        try:
            async with self.gate.hold(task, policy=self.policy):
                return await self._sync_orders()
        except SyncAlreadyInProgress as exc:
            return SyncResult(success=False, message=str(exc), in_progress=True)

    async def _sync_orders(self) -> SyncResult:
        try:
            source_orders = await self.plus_api.fetch_orders()
        except TransportError as exc:
            log_event(logger=self.logger, phase="sync_orders", status="error", message="order fetch failed", error=str(exc))
            await self._notify_error("orders_sync_failed", error=str(exc))
            return SyncResult(success=False, message=f"Erro ao sincronizar pedidos: {exc}")

        fetched_at = self.clock()
        try:
            added = await self._merge_new_orders(source_orders, fetched_at=fetched_at)
        except CorruptOrderStoreError as exc:
            log_event(logger=self.logger, phase="sync_orders", status="error", message="order store read failed", error=str(exc))
            await self._notify_error("orders_sync_failed", error=str(exc))
            return SyncResult(success=False, message=f"Erro ao carregar pedidos: {exc}")
        except (StaleOrderStoreError, SQLAlchemyError) as exc:
            log_event(logger=self.logger, phase="sync_orders", status="error", message="order store write failed", error=str(exc))
            await self._notify_error("orders_sync_failed", error=str(exc))
            return SyncResult(success=False, message=f"Erro ao salvar pedidos: {exc}")

        log_event(
            logger=self.logger,
            phase="sync_orders",
            message="orders synced",
            fetched=len(source_orders),
            added=len(added),
        )
        if added and self.notifications is not None:
            await self.notifications.emit("orders_synced", count=len(added))
        return SyncResult(
            success=True,
            message=f"{len(added)} novos pedidos sincronizados da Plus Delivery.",
            count=len(added),
        )

    async def _merge_new_orders(self, source_orders: Sequence[Any], *, fetched_at: datetime) -> list[Order]:
        for attempt in range(1, STORE_WRITE_ATTEMPTS + 1):
            snapshot = await self.order_store.load()
            known = snapshot.ids()
            added: list[Order] = []
            for source in source_orders:
                if source.id in known:
                    continue
                known.add(source.id)
                order = build_order(source, tz=self.tz, now=fetched_at.astimezone(self.tz))
                if not order.items:
                    self.logger.warn(
                        phase="sync_orders",
                        message="order has no parseable items",
                        order_id=order.id,
                    )
                added.append(order)
            if not added:
                return []
            try:
                await self.order_store.save([*added, *snapshot.orders], expected_version=snapshot.version)
            except StaleOrderStoreError:
                if attempt == STORE_WRITE_ATTEMPTS:
                    raise
                self.logger.warn(phase="sync_orders", message="order store changed; reloading")
                continue
            return added
        return []

    # -------------------------------------------------------------------- send

    async def send_batch(self, order_ids: Sequence[str], *, dry_run: bool = False) -> BatchSendResult:
        dry_run = dry_run or self.test_mode
        task = SyncTask(id=uuid.uuid4().hex, label="Envio de pedidos para Saboritte")
        try:
            async with self.gate.hold(task, policy=self.policy):
                return await self._send_orders(order_ids, dry_run=dry_run)
        except SyncAlreadyInProgress as exc:
            return BatchSendResult(success=False, message=str(exc), in_progress=True, dry_run=dry_run)

    async def _send_orders(self, order_ids: Sequence[str], *, dry_run: bool) -> BatchSendResult:
        try:
            snapshot = await self.order_store.load()
        except (CorruptOrderStoreError, SQLAlchemyError) as exc:
            log_event(logger=self.logger, phase="send_orders", status="error", message="order store read failed", error=str(exc))
            return BatchSendResult(success=False, message=f"Erro ao carregar pedidos: {exc}", dry_run=dry_run)

        stored = snapshot.by_id()
        selected: list[Order] = []
        for order_id in _unique_ids(order_ids):
            order = stored.get(order_id)
            if order is None:
                self.logger.warn(phase="send_orders", message="order not found", order_id=order_id)
                continue
            selected.append(order)

        results: list[OrderSendResult] = []
        sent: dict[str, datetime] = {}
        for order in selected:
            result = await self._send_one(order, dry_run=dry_run)
            results.append(result)
            if result.success and not dry_run:
                sent[order.id] = self.clock()

        success_count = sum(1 for result in results if result.success)
        message = f"{success_count}/{len(selected)} pedidos enviados para Saboritte"
        if dry_run:
            message = f"{success_count}/{len(selected)} pedidos validados (simulação, nada foi enviado)"

        batch = BatchSendResult(success=success_count > 0, message=message, results=results, dry_run=dry_run)
        if sent:
            try:
                await self._persist_sent(sent)
            except (OrderStoreError, SQLAlchemyError) as exc:
                log_event(
                    logger=self.logger,
                    phase="send_orders",
                    status="error",
                    message="sent orders could not be marked",
                    order_ids=sorted(sent),
                    error=str(exc),
                )
                batch.success = False
                batch.message = f"{message}; falha ao salvar status dos pedidos: {exc}"

        log_event(
            logger=self.logger,
            phase="send_orders",
            status="ok" if not batch.failures else "warn",
            message="batch finished",
            selected=len(selected),
            sent=success_count,
            failed=len(batch.failures),
            dry_run=dry_run,
        )
        if not dry_run:
            await self._notify_batch(batch)
        return batch

    async def _send_one(self, order: Order, *, dry_run: bool) -> OrderSendResult:
        base = {
            "order_id": order.id,
            "client_original_name": order.client_name,
            "phone_original": order.client_phone,
            "phone_normalized": normalize_phone(order.client_phone),
        }
        if order.status != OrderStatus.PENDING:
            return OrderSendResult(
                success=False,
                message=f"Pedido #{order.id} não está pendente (status: {order.status.value})",
                **base,
            )
        if not order.items:
            return OrderSendResult(success=False, message=f"Pedido #{order.id} não possui itens para enviar", **base)

        try:
            linked = await self._resolve_items(order)
            client_match = await self.clients.find_existing(order.client_phone)
        except UnlinkedProductError as exc:
            self.logger.warn(
                phase="send_orders",
                message="order skipped; unlinked products",
                order_id=order.id,
                unlinked_items=exc.item_names,
            )
            return OrderSendResult(success=False, message=str(exc), unlinked_items=exc.item_names, **base)
        except SQLAlchemyError as exc:
            return OrderSendResult(success=False, message=f"Erro ao enviar pedido #{order.id}: {exc}", **base)

        payload = build_saboritte_payload(order, linked, client_match)
        details = self._client_details(client_match, payload)
        linked_summary = [
            {
                "original": entry.item.name,
                "vinculado": entry.saboritte_name,
                "id": entry.saboritte_id,
                "quantidade": entry.item.quantity,
            }
            for entry in linked
        ]

        if dry_run:
            log_event(logger=self.logger, phase="send_orders", message="dry run payload", order_id=order.id, payload=payload)
            return OrderSendResult(
                success=True,
                message=f"Pedido #{order.id} validado (simulação)",
                linked_items=linked_summary,
                payload=payload,
                **details,
                **base,
            )

        try:
            outcome = await self.saboritte_api.submit_order(payload)
        except TransportError as exc:
            return OrderSendResult(success=False, message=f"Erro ao enviar pedido #{order.id}: {exc}", **base)

        if not 200 <= outcome.status_code < 300:
            return OrderSendResult(
                success=False,
                message=f"Erro ao enviar pedido #{order.id}: {outcome.error or 'Erro desconhecido'}",
                response_status=outcome.status_code,
                response_data=outcome.data if outcome.data is not None else {"error": outcome.error},
                **base,
            )
        if not outcome.ok:
            return OrderSendResult(
                success=False,
                message=f"Falha ao enviar pedido #{order.id}: {outcome.error or 'Erro desconhecido'}",
                response_status=outcome.status_code,
                response_data=outcome.data if outcome.data is not None else {"error": outcome.error},
                **base,
            )

        log_event(
            logger=self.logger,
            phase="send_orders",
            message="order sent",
            order_id=order.id,
            product_count=len(payload["id_produtos"]),
            client_exists=client_match.exists,
        )
        return OrderSendResult(
            success=True,
            message=f"Pedido #{order.id} enviado com sucesso",
            linked_items=linked_summary,
            response_status=outcome.status_code,
            response_data=outcome.data,
            **details,
            **base,
        )

    async def _resolve_items(self, order: Order) -> list[LinkedItem]:
        linked: list[LinkedItem] = []
        unlinked: list[str] = []
        for item in order.items:
            result = await self.resolver.resolve(item.name)
            if result.linked and result.target is not None:
                linked.append(LinkedItem(item=item, saboritte_id=result.target.id, saboritte_name=result.target.name))
            else:
                unlinked.append(item.name)
        if unlinked:
            raise UnlinkedProductError(order.id, unlinked)
        return linked

    @staticmethod
    def _client_details(client_match: ClientMatch, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "client_exists": client_match.exists,
            "client_used_name": payload["nome"],
            "client_id": client_match.client.id if client_match.exists and client_match.client else None,
        }

    async def _persist_sent(self, sent: dict[str, datetime]) -> None:
        for attempt in range(1, STORE_WRITE_ATTEMPTS + 1):
            snapshot = await self.order_store.load()
            orders = [
                order.mark_sent(sent[order.id]) if order.id in sent else order for order in snapshot.orders
            ]
            try:
                await self.order_store.save(orders, expected_version=snapshot.version)
                return
            except StaleOrderStoreError:
                if attempt == STORE_WRITE_ATTEMPTS:
                    raise
                self.logger.warn(phase="send_orders", message="order store changed; reloading")

    # -------------------------------------------------------------------- menu

    async def sync_menu_from_source(self) -> SyncResult:
        task = SyncTask(id=uuid.uuid4().hex, label="Cardápio do Plus")
        try:
            async with self.gate.hold(task, policy=self.policy):
                return await self._sync_menu()
        except SyncAlreadyInProgress as exc:
            return SyncResult(success=False, message=str(exc), in_progress=True)

    async def _sync_menu(self) -> SyncResult:
        if self.catalog is None:
            return SyncResult(success=False, message="Catálogo local não configurado")
        try:
            menu = await self.plus_api.fetch_menu()
            if not menu.sucesso:
                raise InvalidResponseError("Formato de resposta inválido")
            count = await self.catalog.replace_all(flatten_menu(menu))
        except (TransportError, SQLAlchemyError) as exc:
            log_event(logger=self.logger, phase="sync_menu", status="error", message="menu sync failed", error=str(exc))
            await self._notify_error("menu_sync_failed", error=str(exc))
            return SyncResult(success=False, message=f"Erro ao sincronizar produtos: {exc}")

        log_event(logger=self.logger, phase="sync_menu", message="menu synced", product_count=count)
        if self.notifications is not None:
            await self.notifications.emit("menu_synced", count=count)
        return SyncResult(success=True, message=f"{count} produtos sincronizados com sucesso!", count=count)

    async def sync_saboritte_menu(self) -> SyncResult:
        task = SyncTask(id=uuid.uuid4().hex, label="Cardápio da Saboritte")
        try:
            async with self.gate.hold(task, policy=self.policy):
                return await self._sync_saboritte_menu()
        except SyncAlreadyInProgress as exc:
            return SyncResult(success=False, message=str(exc), in_progress=True)

    async def _sync_saboritte_menu(self) -> SyncResult:
        if self.saboritte_catalog is None:
            return SyncResult(success=False, message="Catálogo local não configurado")
        try:
            menu = await self.saboritte_api.fetch_saboritte_menu()
            if not menu.sucesso:
                raise InvalidResponseError("Formato de resposta inválido")
            count = await self.saboritte_catalog.replace_all(flatten_saboritte_menu(menu))
        except (TransportError, SQLAlchemyError) as exc:
            log_event(
                logger=self.logger, phase="sync_saboritte_menu", status="error", message="menu sync failed", error=str(exc)
            )
            await self._notify_error("saboritte_menu_sync_failed", error=str(exc))
            return SyncResult(success=False, message=f"Erro ao sincronizar produtos: {exc}")

        log_event(logger=self.logger, phase="sync_saboritte_menu", message="menu synced", product_count=count)
        if self.notifications is not None:
            await self.notifications.emit("saboritte_menu_synced", count=count)
        return SyncResult(success=True, message=f"{count} produtos sincronizados com sucesso!", count=count)

    # ----------------------------------------------------------------- clients

    async def sync_clients_from_target(self) -> SyncResult:
        task = SyncTask(id=uuid.uuid4().hex, label="Clientes Saboritte")
        try:
            async with self.gate.hold(task, policy=self.policy):
                return await self._sync_clients()
        except SyncAlreadyInProgress as exc:
            return SyncResult(success=False, message=str(exc), in_progress=True)

    async def _sync_clients(self) -> SyncResult:
        try:
            records = await self.saboritte_api.fetch_clients()
            summary = await self.clients.upsert_clients(records)
        except (TransportError, SQLAlchemyError) as exc:
            log_event(logger=self.logger, phase="sync_clients", status="error", message="client sync failed", error=str(exc))
            await self._notify_error("clients_sync_failed", error=str(exc))
            return SyncResult(success=False, message=f"Erro ao sincronizar clientes: {exc}")

        log_event(
            logger=self.logger,
            phase="sync_clients",
            message="clients synced",
            fetched=len(records),
            inserted=summary.inserted,
            updated=summary.updated,
        )
        if self.notifications is not None:
            await self.notifications.emit("clients_synced", inserted=summary.inserted, updated=summary.updated)
        return SyncResult(
            success=True,
            message=f"{summary.total} clientes sincronizados com sucesso!",
            count=summary.total,
        )

    # ----------------------------------------------------------- notifications

    async def _notify_error(self, event: str, **context: Any) -> None:
        if self.notifications is None or not self.notify_errors:
            return
        await self.notifications.emit(event, **context)

    async def _notify_batch(self, batch: BatchSendResult) -> None:
        if self.notifications is None or not batch.results:
            return
        if not batch.failures:
            existing = sum(1 for result in batch.results if result.client_exists)
            await self.notifications.emit("orders_sent", message=batch.message, existing_clients=existing)
            return
        await self._notify_error(
            "orders_send_failed",
            sent=batch.success,
            message=batch.message,
            failures=[result.message for result in batch.failures],
            unlinked=any(result.unlinked_items for result in batch.failures),
        )

"""User-facing notification records for sync outcomes.

Notifications are a side channel: a failed insert is logged and swallowed so
it can never change the outcome of the sync that triggered it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional

import sqlalchemy as sa
from jinja2 import Template
from sqlalchemy.exc import SQLAlchemyError

from intermediator.common.db import session_scope
from intermediator.db_tables import notifications

logger = logging.getLogger(__name__)

NotificationType = Literal["success", "error", "info"]
UNREAD_LIMIT = 10

# event -> (type, title template, message template)
NOTIFICATION_TEMPLATES: dict[str, tuple[NotificationType, str, str]] = {
    "orders_synced": (
        "success",
        "Sincronização concluída",
        "{{ count }} novo(s) pedido(s) sincronizado(s) do Plus.",
    ),
    "orders_sync_failed": (
        "error",
        "Erro na sincronização",
        "Não foi possível sincronizar os pedidos do Plus: {{ error }}",
    ),
    "orders_sent": (
        "success",
        "Pedidos enviados",
        "{{ message }}"
        "{% if existing_clients %}\n{{ existing_clients }} cliente(s) já existente(s) na Saboritte.{% endif %}",
    ),
    "orders_send_failed": (
        "error",
        "{% if sent %}Alguns pedidos não foram enviados{% else %}Erro ao enviar pedidos{% endif %}",
        "{{ message }}{% for failure in failures %}\n- {{ failure }}{% endfor %}"
        "{% if unlinked %}\nVerifique se todos os produtos estão vinculados.{% endif %}",
    ),
    "menu_synced": (
        "success",
        "Sincronização concluída",
        "{{ count }} produtos sincronizados com sucesso!",
    ),
    "menu_sync_failed": (
        "error",
        "Erro na sincronização",
        "Não foi possível sincronizar os produtos do Plus: {{ error }}",
    ),
    "clients_synced": (
        "success",
        "Sincronização concluída",
        "Clientes da Saboritte sincronizados com sucesso!"
        " {{ inserted }} novo(s), {{ updated }} atualizado(s).",
    ),
    "clients_sync_failed": (
        "error",
        "Erro na sincronização",
        "Não foi possível sincronizar os clientes da Saboritte: {{ error }}",
    ),
    "saboritte_menu_synced": (
        "success",
        "Sincronização concluída",
        "{{ count }} produtos da Saboritte sincronizados com sucesso!",
    ),
    "saboritte_menu_sync_failed": (
        "error",
        "Erro na sincronização",
        "Não foi possível sincronizar os produtos da Saboritte: {{ error }}",
    ),
}


@dataclass(frozen=True)
class Notification:
    id: int
    title: str
    message: str
    type: str
    read: bool
    created_at: datetime


def _render_template(raw: str, context: dict[str, Any]) -> str:
    try:
        return Template(raw).render(**context)
    except Exception:
        logger.exception("failed to render notification template")
        return raw


def render_notification(event: str, **context: Any) -> tuple[NotificationType, str, str]:
    kind, title, message = NOTIFICATION_TEMPLATES[event]
    return kind, _render_template(title, context), _render_template(message, context)


class NotificationSink:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    async def notify(self, *, title: str, message: str, type: NotificationType) -> Optional[int]:
        now = datetime.now(timezone.utc)
        try:
            async with session_scope(self.database_url) as session:
                result = await session.execute(
                    sa.insert(notifications).values(
                        title=title,
                        message=message,
                        type=type,
                        read=False,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await session.commit()
        except (SQLAlchemyError, OSError):
            logger.warning("failed to store notification %r", title, exc_info=True)
            return None
        return int(result.inserted_primary_key[0])

    async def emit(self, event: str, **context: Any) -> Optional[int]:
        kind, title, message = render_notification(event, **context)
        return await self.notify(title=title, message=message, type=kind)

    async def unread(self, limit: int = UNREAD_LIMIT) -> list[Notification]:
        stmt = (
            sa.select(notifications)
            .where(notifications.c.read.is_(False))
            .order_by(notifications.c.created_at.desc(), notifications.c.id.desc())
            .limit(limit)
        )
        async with session_scope(self.database_url) as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [
            Notification(
                id=int(row["id"]),
                title=row["title"],
                message=row["message"],
                type=row["type"],
                read=bool(row["read"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def mark_read(self, notification_id: int) -> bool:
        async with session_scope(self.database_url) as session:
            result = await session.execute(
                sa.update(notifications)
                .where(notifications.c.id == notification_id)
                .values(read=True, updated_at=datetime.now(timezone.utc))
            )
            await session.commit()
        return bool(result.rowcount)

    async def mark_all_read(self) -> int:
        async with session_scope(self.database_url) as session:
            result = await session.execute(
                sa.update(notifications)
                .where(notifications.c.read.is_(False))
                .values(read=True, updated_at=datetime.now(timezone.utc))
            )
            await session.commit()
        return int(result.rowcount or 0)

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import sqlalchemy as sa

from intermediator.common.db import session_scope, transaction_scope
from intermediator.common.phone import MIN_MATCH_DIGITS, normalize_phone
from intermediator.db_tables import clients
from intermediator.json_logger import JsonLogger, log_event
from intermediator.platforms.schemas import SaboritteClient


@dataclass(frozen=True)
class ClientIdentity:
    id: int
    nome: str
    telefone: str


@dataclass(frozen=True)
class ClientMatch:
    exists: bool
    client: Optional[ClientIdentity] = None


NO_MATCH = ClientMatch(exists=False)


@dataclass(frozen=True)
class ClientSyncSummary:
    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated


@dataclass
class SaveClientResult:
    success: bool
    message: str
    client: Optional[ClientIdentity] = None


class ClientRegistry:
    """Saboritte client registry keyed by normalized phone.

    The order pipeline only calls :meth:`find_existing`; ``save_client`` and
    ``upsert_clients`` maintain the registry and never run during a send.
    """

    def __init__(self, database_url: str, *, logger: JsonLogger | None = None) -> None:
        self.database_url = database_url
        self.logger = logger

    async def _all_clients(self) -> list[ClientIdentity]:
        stmt = sa.select(clients.c.id, clients.c.nome, clients.c.telefone).order_by(clients.c.id)
        async with session_scope(self.database_url) as session:
            rows = (await session.execute(stmt)).all()
        return [ClientIdentity(id=int(row.id), nome=row.nome, telefone=row.telefone or "") for row in rows]

    async def find_existing(self, raw_phone: str | None) -> ClientMatch:
        phone = normalize_phone(raw_phone)
        if len(phone) < MIN_MATCH_DIGITS:
            return NO_MATCH

        # Full scan: stored phones may predate normalization.
        for client in await self._all_clients():
            if normalize_phone(client.telefone) == phone:
                if self.logger is not None:
                    log_event(
                        logger=self.logger,
                        phase="client",
                        message="existing client matched",
                        client_id=client.id,
                        telefone=phone,
                    )
                return ClientMatch(exists=True, client=client)
        return NO_MATCH

    async def search_by_phone(self, fragment: str | None) -> list[ClientIdentity]:
        digits = normalize_phone(fragment)
        if not digits:
            return []
        return [client for client in await self._all_clients() if digits in normalize_phone(client.telefone)]

    async def save_client(
        self,
        nome: str,
        telefone: str,
        *,
        bloqueado: bool = False,
        permitirrobo: bool = True,
        permitircampanhas: bool = True,
    ) -> SaveClientResult:
        nome = (nome or "").strip()
        phone = normalize_phone(telefone)
        if not nome:
            return SaveClientResult(success=False, message="Nome é obrigatório")
        if not phone:
            return SaveClientResult(success=False, message="Telefone é obrigatório")

        for client in await self._all_clients():
            if normalize_phone(client.telefone) == phone:
                return SaveClientResult(
                    success=False,
                    message="Cliente com este telefone já existe",
                    client=client,
                )

        now = datetime.now(timezone.utc)
        async with session_scope(self.database_url) as session:
            result = await session.execute(
                sa.insert(clients).values(
                    nome=nome,
                    telefone=phone,
                    bloqueado=bloqueado,
                    permitirrobo=permitirrobo,
                    permitircampanhas=permitircampanhas,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.commit()
        client = ClientIdentity(id=int(result.inserted_primary_key[0]), nome=nome, telefone=phone)
        return SaveClientResult(success=True, message="Cliente salvo com sucesso", client=client)

    async def upsert_clients(self, records: Iterable[SaboritteClient]) -> ClientSyncSummary:
        """Mirror Saboritte's client list into the registry.

        A record updates the row already carrying its Saboritte id; failing
        that, a locally registered client (no Saboritte id yet) with the same
        normalized phone is adopted. Everything else is inserted. Rows absent
        from the feed are left alone.
        """

        now = datetime.now(timezone.utc)
        stmt = sa.select(clients.c.id, clients.c.telefone, clients.c.saboritte_id)
        inserted = updated = 0
        async with transaction_scope(self.database_url) as session:
            rows = (await session.execute(stmt)).all()
            by_saboritte_id = {row.saboritte_id: int(row.id) for row in rows if row.saboritte_id}
            local_by_phone: dict[str, int] = {}
            for row in rows:
                phone = normalize_phone(row.telefone)
                if phone and not row.saboritte_id:
                    local_by_phone.setdefault(phone, int(row.id))

            for record in records:
                phone = normalize_phone(record.telefone)
                values = {
                    "nome": record.nome.strip(),
                    "telefone": phone,
                    "bloqueado": record.bloqueado,
                    "permitirrobo": record.permitirRobo,
                    "permitircampanhas": record.permitirCampanhas,
                    "saboritte_id": record.id,
                    "updated_at": now,
                }
                client_id = by_saboritte_id.get(record.id)
                if client_id is None and phone:
                    client_id = local_by_phone.pop(phone, None)
                if client_id is None:
                    result = await session.execute(sa.insert(clients).values(created_at=now, **values))
                    by_saboritte_id[record.id] = int(result.inserted_primary_key[0])
                    inserted += 1
                else:
                    await session.execute(sa.update(clients).where(clients.c.id == client_id).values(**values))
                    by_saboritte_id[record.id] = client_id
                    updated += 1

        if self.logger is not None:
            log_event(
                logger=self.logger,
                phase="client",
                message="clients upserted",
                inserted=inserted,
                updated=updated,
            )
        return ClientSyncSummary(inserted=inserted, updated=updated)

import pytest
import sqlalchemy as sa

from intermediator.clients.registry import ClientIdentity, ClientRegistry
from intermediator.common.db import session_scope
from intermediator.db_tables import clients
from intermediator.platforms.schemas import SaboritteClient


async def _insert_clients(database_url: str, rows: list[dict]) -> None:
    async with session_scope(database_url) as session:
        for row in rows:
            await session.execute(sa.insert(clients).values(**row))
        await session.commit()


@pytest.mark.asyncio
async def test_find_existing_matches_on_normalized_phone(database_url, logger) -> None:
    await _insert_clients(
        database_url,
        [
            {"nome": "José", "telefone": "27999990000"},
            {"nome": "Maria Souza", "telefone": "(11) 98888-7777"},
            {"nome": "Maria Duplicada", "telefone": "11988887777"},
        ],
    )
    registry = ClientRegistry(database_url, logger=logger)

    match = await registry.find_existing("11 98888 7777")

    assert match.exists is True
    assert match.client == ClientIdentity(id=2, nome="Maria Souza", telefone="(11) 98888-7777")


@pytest.mark.asyncio
async def test_short_phone_never_matches(database_url, monkeypatch) -> None:
    await _insert_clients(database_url, [{"nome": "Curto", "telefone": "1234567"}])
    registry = ClientRegistry(database_url)

    async def _fail_scan():
        raise AssertionError("registry must not be scanned for short phones")

    monkeypatch.setattr(registry, "_all_clients", _fail_scan)

    assert (await registry.find_existing("123-4567")).exists is False
    assert (await registry.find_existing(None)).exists is False


@pytest.mark.asyncio
async def test_unknown_phone_is_not_found(database_url) -> None:
    await _insert_clients(database_url, [{"nome": "José", "telefone": "27999990000"}])

    match = await ClientRegistry(database_url).find_existing("27 98888-1111")

    assert match.exists is False
    assert match.client is None


@pytest.mark.asyncio
async def test_save_client_normalizes_and_refuses_duplicates(database_url) -> None:
    registry = ClientRegistry(database_url)

    saved = await registry.save_client("Ana Lima", "(27) 99999-8888")
    duplicate = await registry.save_client("Ana L.", "27 99999 8888")
    missing_name = await registry.save_client("  ", "27999998888")

    assert saved.success is True
    assert saved.client.telefone == "27999998888"
    assert duplicate.success is False
    assert duplicate.client.id == saved.client.id
    assert missing_name.success is False


@pytest.mark.asyncio
async def test_search_by_phone_fragment(database_url) -> None:
    await _insert_clients(
        database_url,
        [
            {"nome": "José", "telefone": "27999990000"},
            {"nome": "Maria", "telefone": "(11) 98888-7777"},
        ],
    )
    registry = ClientRegistry(database_url)

    assert [client.nome for client in await registry.search_by_phone("8888-77")] == ["Maria"]
    assert await registry.search_by_phone("") == []


@pytest.mark.asyncio
async def test_upsert_clients_adopts_local_rows_then_tracks_saboritte_ids(database_url, logger) -> None:
    await _insert_clients(
        database_url,
        [
            {"nome": "Maria (balcão)", "telefone": "(11) 98888-7777"},
            {"nome": "Sem cadastro", "telefone": "27911112222"},
        ],
    )
    registry = ClientRegistry(database_url, logger=logger)

    first = await registry.upsert_clients(
        [
            SaboritteClient(id="501", nome="Maria Souza", telefone="11988887777"),
            SaboritteClient(id="502", nome=" João ", telefone="", bloqueado=True),
        ]
    )
    second = await registry.upsert_clients(
        [SaboritteClient(id="502", nome="João Lima", telefone="(27) 97777-6666", permitirCampanhas=False)]
    )

    assert (first.inserted, first.updated, first.total) == (1, 1, 2)
    assert (second.inserted, second.updated) == (0, 1)

    async with session_scope(database_url) as session:
        rows = (
            await session.execute(
                sa.select(
                    clients.c.nome,
                    clients.c.telefone,
                    clients.c.saboritte_id,
                    clients.c.bloqueado,
                    clients.c.permitircampanhas,
                ).order_by(clients.c.id)
            )
        ).all()
    assert [tuple(row) for row in rows] == [
        ("Maria Souza", "11988887777", "501", False, True),
        ("Sem cadastro", "27911112222", None, False, True),
        ("João Lima", "27977776666", "502", False, False),
    ]

import pytest

from intermediator.notifications import NotificationSink, render_notification


def test_render_send_failure_lists_each_failure() -> None:
    kind, title, message = render_notification(
        "orders_send_failed",
        sent=True,
        message="1/3 pedidos enviados para Saboritte",
        failures=["Pedido #B falhou", "Pedido #C falhou"],
        unlinked=True,
    )

    assert kind == "error"
    assert title == "Alguns pedidos não foram enviados"
    assert message.splitlines() == [
        "1/3 pedidos enviados para Saboritte",
        "- Pedido #B falhou",
        "- Pedido #C falhou",
        "Verifique se todos os produtos estão vinculados.",
    ]


def test_render_sent_without_existing_clients() -> None:
    kind, title, message = render_notification("orders_sent", message="2/2 pedidos enviados", existing_clients=0)

    assert (kind, title, message) == ("success", "Pedidos enviados", "2/2 pedidos enviados")


@pytest.mark.asyncio
async def test_unread_and_mark_read(database_url) -> None:
    sink = NotificationSink(database_url)
    first = await sink.emit("orders_synced", count=2)
    second = await sink.emit("menu_sync_failed", error="HTTP 500")
    third = await sink.notify(title="Aviso", message="Teste", type="info")

    unread = await sink.unread()
    assert [n.id for n in unread] == [third, second, first]
    assert unread[1].message == "Não foi possível sincronizar os produtos do Plus: HTTP 500"
    assert [n.id for n in await sink.unread(limit=1)] == [third]

    assert await sink.mark_read(second) is True
    assert await sink.mark_read(9999) is False
    assert [n.id for n in await sink.unread()] == [third, first]

    assert await sink.mark_all_read() == 2
    assert await sink.unread() == []


@pytest.mark.asyncio
async def test_storage_failure_is_swallowed(tmp_path) -> None:
    sink = NotificationSink(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")

    assert await sink.emit("orders_synced", count=1) is None

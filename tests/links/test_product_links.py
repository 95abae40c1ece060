from datetime import datetime, timedelta, timezone

import pytest

from intermediator.links.resolver import LinkTarget, ProductLinkResolver
from intermediator.links.store import (
    DuplicateLinkConflict,
    PlusProductRef,
    ProductLinkStore,
    SaboritteProductRef,
    delete_link,
    link_products,
    list_links,
)

T0 = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


async def _link(store, plus_id, plus_name, saboritte_id, *, variation="", now=T0):
    return await store.create_link(
        PlusProductRef(id=plus_id, name=plus_name, category="Pizzas", price="40.00"),
        SaboritteProductRef(id=saboritte_id, name=f"Sab {plus_name}", price="42.00"),
        variation_description=variation,
        now=now,
    )


@pytest.mark.asyncio
async def test_link_products_creates_link(database_url) -> None:
    store = ProductLinkStore(database_url)

    outcome = await link_products(
        store,
        PlusProductRef(id="p1", name="Pizza Calabresa"),
        SaboritteProductRef(id="77", name="Pizza de Calabresa", image="https://cdn.example.com/77.png"),
    )

    assert outcome.success is True
    assert outcome.link is not None
    assert outcome.link.id >= 1
    links = await list_links(store)
    assert [(link.plus_id, link.saboritte_id, link.saboritte_image) for link in links] == [
        ("p1", "77", "https://cdn.example.com/77.png")
    ]


@pytest.mark.asyncio
async def test_duplicate_plus_product_is_reported_as_already_linked(database_url) -> None:
    store = ProductLinkStore(database_url)
    await _link(store, "p1", "Pizza Calabresa", "77")

    with pytest.raises(DuplicateLinkConflict):
        await _link(store, "p1", "Pizza Calabresa", "78")

    outcome = await link_products(store, PlusProductRef(id="p1", name="Pizza"), SaboritteProductRef(id="90", name="X"))
    assert outcome.success is False
    assert outcome.message == "Vinculação já existe"


@pytest.mark.asyncio
async def test_saboritte_product_unique_per_variation(database_url) -> None:
    store = ProductLinkStore(database_url)
    await _link(store, "p1", "Pizza Broto", "77", variation="Broto")
    await _link(store, "p2", "Pizza Grande", "77", variation="Grande")

    with pytest.raises(DuplicateLinkConflict):
        await _link(store, "p3", "Pizza Grande 2", "77", variation="Grande")

    await _link(store, "p4", "Suco", "80")
    with pytest.raises(DuplicateLinkConflict):
        await _link(store, "p5", "Suco Natural", "80")


@pytest.mark.asyncio
async def test_delete_link(database_url) -> None:
    store = ProductLinkStore(database_url)
    link = await _link(store, "p1", "Pizza", "77")

    assert (await delete_link(store, link.id)).success is True
    assert (await delete_link(store, link.id)).success is False
    assert await list_links(store) == []


@pytest.mark.asyncio
async def test_exact_match_is_case_sensitive_and_wins(database_url) -> None:
    store = ProductLinkStore(database_url)
    await _link(store, "p1", "Pizza Calabresa Grande", "10")
    await _link(store, "p2", "pizza calabresa", "20")
    resolver = ProductLinkResolver(store)

    exact = await resolver.resolve("pizza calabresa")
    assert exact.linked is True
    assert exact.match == "exact"
    assert exact.target == LinkTarget(id="20", name="Sab pizza calabresa")


@pytest.mark.asyncio
async def test_fuzzy_match_prefers_shortest_stored_name(database_url) -> None:
    store = ProductLinkStore(database_url)
    await _link(store, "p1", "Pizza Calabresa Grande", "10")
    await _link(store, "p2", "Pizza Calabresa", "20")
    resolver = ProductLinkResolver(store)

    result = await resolver.resolve("CALABRESA")

    assert result.linked is True
    assert result.match == "contains"
    assert result.target.id == "20"


@pytest.mark.asyncio
async def test_fuzzy_tie_prefers_most_recently_updated(database_url, logger, log_stream) -> None:
    store = ProductLinkStore(database_url)
    await _link(store, "p1", "Suco Laranja", "10", now=T0)
    await _link(store, "p2", "Suco Abacaxi", "20", now=T0 + timedelta(days=1))
    resolver = ProductLinkResolver(store, logger=logger)

    result = await resolver.resolve("suco")

    assert result.target.id == "20"
    assert '"phase": "resolve"' in log_stream.getvalue()


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["Hambúrguer", "", "   ", None])
async def test_unknown_or_blank_names_are_unlinked(database_url, name) -> None:
    store = ProductLinkStore(database_url)
    await _link(store, "p1", "Pizza Calabresa", "10")

    result = await ProductLinkResolver(store).resolve(name)

    assert result.linked is False
    assert result.target is None

import pytest

from intermediator.links.catalog import (
    CatalogProduct,
    PlusCatalogStore,
    SaboritteCatalogProduct,
    SaboritteCatalogStore,
    flatten_saboritte_menu,
)
from intermediator.links.store import PlusProductRef, SaboritteProductRef
from intermediator.platforms.schemas import SaboritteMenuResponse


def test_flatten_saboritte_menu_uses_category_keys() -> None:
    menu = SaboritteMenuResponse.model_validate(
        {
            "sucesso": True,
            "categorias": {
                "Pizzas": [
                    {"id": 77, "nome": "Pizza de Calabresa", "preco": "42.90", "categoria": "ignorada", "opcionais": []},
                ],
                "Bebidas": [
                    {"id": "12", "nome": "Coca Lata", "preco": 6, "ativo": False, "codigoBarras": "789"},
                    {"id": 77, "nome": "Pizza de Calabresa", "preco": "42.90"},
                ],
            },
        }
    )

    assert flatten_saboritte_menu(menu) == [
        SaboritteCatalogProduct(id="77", nome="Pizza de Calabresa", categoria="Pizzas", preco="42.90"),
        SaboritteCatalogProduct(
            id="12", nome="Coca Lata", categoria="Bebidas", preco="6", ativo=False, codigo_barras="789"
        ),
    ]


@pytest.mark.asyncio
async def test_saboritte_catalog_replace_and_get(database_url) -> None:
    store = SaboritteCatalogStore(database_url)
    await store.replace_all([SaboritteCatalogProduct(id="1", nome="Antiga")])

    count = await store.replace_all(
        [SaboritteCatalogProduct(id="77", nome="Pizza de Calabresa", categoria="Pizzas", imagem="pizza.png")]
    )

    assert count == 1
    assert await store.get("1") is None
    product = await store.get("77")
    assert product is not None
    assert product.as_ref() == SaboritteProductRef(
        id="77", name="Pizza de Calabresa", category="Pizzas", price="", enabled=True, image="pizza.png"
    )


@pytest.mark.asyncio
async def test_plus_catalog_get_builds_link_ref(database_url) -> None:
    store = PlusCatalogStore(database_url)
    await store.replace_all([CatalogProduct(id="p1", nome="Calabresa", valor="40.00", promocao="35.00", categoria="Pizzas")])

    product = await store.get("p1")

    assert product is not None
    assert product.as_ref() == PlusProductRef(
        id="p1", name="Calabresa", category="Pizzas", price="40.00", promo_price="35.00", enabled=True
    )
    assert await store.get("p2") is None

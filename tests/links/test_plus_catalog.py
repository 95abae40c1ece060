import pytest

from intermediator.links.catalog import CatalogProduct, PlusCatalogStore, flatten_menu
from intermediator.platforms.schemas import MenuResponse


def test_flatten_menu_tags_category_and_drops_repeats() -> None:
    menu = MenuResponse.model_validate(
        {
            "sucesso": True,
            "menus": [
                {"nome": "Pizzas", "produtos": [{"id": 1, "nome": "Calabresa", "valor": "40.00"}]},
                {
                    "nome": "Promoções",
                    "produtos": [
                        {"id": 1, "nome": "Calabresa", "valor": "40.00", "promocao": "35.00"},
                        {"id": 9, "nome": "Combo", "valor": "55.00", "habilitado": False},
                    ],
                },
            ],
        }
    )

    products = flatten_menu(menu)

    assert products == [
        CatalogProduct(id="1", nome="Calabresa", valor="40.00", categoria="Pizzas"),
        CatalogProduct(id="9", nome="Combo", valor="55.00", habilitado=False, categoria="Promoções"),
    ]


@pytest.mark.asyncio
async def test_replace_all_discards_previous_catalog(database_url) -> None:
    store = PlusCatalogStore(database_url)
    await store.replace_all([CatalogProduct(id="1", nome="Calabresa"), CatalogProduct(id="2", nome="Mussarela")])

    count = await store.replace_all([CatalogProduct(id="3", nome="Suco", categoria="Bebidas")])

    assert count == 1
    assert await store.all_products() == [CatalogProduct(id="3", nome="Suco", categoria="Bebidas")]

import httpx
import pytest

from app.services.product_client import ProductNotFoundError, ProductServiceClient, ProductServiceError


def make_client(handler):
    return ProductServiceClient(base_url="http://catalog.test", transport=httpx.MockTransport(handler))


async def test_product_definition_with_required_fields():
    def handler(request):
        assert request.url.path == "/products/66f0c0ffee"
        return httpx.Response(200, json={
            "_id": "66f0c0ffee",
            "name": "Spotify Family",
            "price": 99000,
            "currency": "VND",
            "requiredFields": [
                {"label": "Spotify email", "type": "email", "placeholder": "you@mail.vn", "required": True},
                {"label": "Note", "type": "text"},
            ],
        })

    product = await make_client(handler).get_product("66f0c0ffee")

    assert product.id == "66f0c0ffee"
    assert product.price == 99000
    assert [(f.label, f.required) for f in product.required_fields] == [("Spotify email", True), ("Note", False)]


async def test_missing_product():
    with pytest.raises(ProductNotFoundError):
        await make_client(lambda request: httpx.Response(404)).get_product("nope")


async def test_unexpected_status():
    with pytest.raises(ProductServiceError):
        await make_client(lambda request: httpx.Response(500)).get_product("p1")

from dataclasses import replace

import pytest
import requests
from requests.adapters import BaseAdapter

from client import ApiError, AuthenticationError, CatalogClient, NetworkError
from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, make_product
from models import Review


class BrokenTransport(BaseAdapter):
    def send(self, request, **kwargs):
        raise requests.ConnectionError("connection refused")

    def close(self):
        pass


def test_public_reads(api, store):
    store.replace_products([make_product("p1")])

    assert [p.id for p in api.get_products()] == ["p1"]
    assert api.get_product("p1").name == "Glazed Tile"
    assert api.get_categories() == ["Tiles", "Marble"]


def test_bad_credentials_raise_authentication_error(api):
    with pytest.raises(AuthenticationError) as exc:
        api.login(ADMIN_USERNAME, "wrong")

    assert exc.value.status == 401
    assert exc.value.message == "Invalid username or password"
    assert api.authenticated is False
    assert api.auth_status() is False


def test_login_and_logout(api):
    api.login(ADMIN_USERNAME, ADMIN_PASSWORD)
    assert api.authenticated is True
    assert api.auth_status() is True

    api.logout()
    assert api.authenticated is False
    assert api.auth_status() is False


def test_admin_product_lifecycle(admin_api):
    created = admin_api.create_product(make_product(""))
    assert created.id.startswith("prod-")

    updated = admin_api.update_product(replace(created, price=55.0))
    assert updated.price == 55.0
    assert updated.version == 2

    with pytest.raises(ApiError) as exc:
        admin_api.update_product(replace(created, price=1.0))
    assert exc.value.status == 409

    admin_api.delete_product(created.id)
    assert admin_api.get_products() == []


def test_save_products_unwraps_data(admin_api):
    saved = admin_api.save_products([make_product("p1"), make_product("p2")])

    assert [p.id for p in saved] == ["p1", "p2"]
    assert all(p.version == 1 for p in saved)


def test_category_calls(admin_api, store):
    store.replace_products([make_product("p1", category="Tiles")])

    admin_api.add_category("Stone / Rock")
    assert admin_api.rename_category("Tiles", "Ceramic Tiles") == 1
    admin_api.delete_category("Stone / Rock")
    admin_api.save_categories(["Ceramic Tiles", "Marble", "Fences"])

    assert admin_api.get_categories() == ["Ceramic Tiles", "Marble", "Fences"]
    assert store.get_product("p1").category == "Ceramic Tiles"


def test_server_message_is_surfaced(admin_api):
    with pytest.raises(ApiError) as exc:
        admin_api.add_category("tiles")

    assert not isinstance(exc.value, AuthenticationError)
    assert exc.value.status == 409
    assert "already exists" in exc.value.message


def test_forbidden_drops_local_auth_and_notifies(api):
    calls = []
    api.on_logout = lambda: calls.append(True)
    api.authenticated = True

    with pytest.raises(AuthenticationError) as exc:
        api.add_category("Stone")

    assert exc.value.status == 403
    assert api.authenticated is False
    assert calls == [True]


def test_add_review_is_public(api, store):
    store.create_product(make_product("p1"))

    product = api.add_review("p1", Review("rev-1", "Ann", 5, "Great", "2024-06-01"))

    assert product.reviews[0].id == "rev-1"


def test_session_lists(api):
    api.save_cart([make_product("p1")])
    api.save_wishlist(["p2", "p3"])

    assert [p.id for p in api.get_cart()] == ["p1"]
    assert api.get_wishlist() == ["p2", "p3"]


def test_transport_failure_is_network_error():
    http = requests.Session()
    http.mount("http://", BrokenTransport())
    api = CatalogClient("http://shop.invalid/api", http=http)

    with pytest.raises(NetworkError) as exc:
        api.get_products()

    assert "connection refused" in exc.value.message
    assert exc.value.status is None

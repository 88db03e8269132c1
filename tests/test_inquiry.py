from urllib.parse import parse_qs, urlparse

import pytest

from conftest import make_product
from inquiry import (
    build_inquiry_message,
    build_wishlist_message,
    cart_total,
    encode_component,
    format_price,
    has_out_of_stock,
    share_links,
    whatsapp_url,
)


def test_format_price():
    assert format_price(1170) == "Ksh 1,170.00"
    assert format_price(0.5) == "Ksh 0.50"
    assert format_price("oops") == "Ksh 0.00"


def test_encode_component_matches_browser_rules():
    assert encode_component("a b/c?d=e&f") == "a%20b%2Fc%3Fd%3De%26f"
    assert encode_component("it's (fine)!*~") == "it's%20(fine)!*~"


def test_inquiry_message_lists_items_and_total():
    items = [make_product("p1", name="Tile", price=100), make_product("p2", name="Slab", price=1070)]

    message = build_inquiry_message(items)

    assert message == (
        "Hello! I'm interested in the following products:\n\n"
        "- Tile (Ksh 100.00)\n"
        "- Slab (Ksh 1,070.00)\n\n"
        "Total: Ksh 1,170.00\n\n"
        "Please provide me with more information. Thank you."
    )
    assert cart_total(items) == 1170


def test_wishlist_message():
    message = build_wishlist_message([make_product("p1", name="Tile")])
    assert message.endswith("- Tile (Ksh 100.00)")


def test_out_of_stock_detection():
    assert not has_out_of_stock([make_product("p1")])
    assert has_out_of_stock([make_product("p1"), make_product("p2", is_in_stock=False)])


def test_whatsapp_url_keeps_digits_only():
    url = whatsapp_url("+254 (700) 000-000", "Hi there")

    assert url == "https://wa.me/254700000000?text=Hi%20there"
    assert parse_qs(urlparse(url).query)["text"] == ["Hi there"]


def test_whatsapp_url_needs_a_number():
    with pytest.raises(ValueError):
        whatsapp_url("call us", "Hi")


def test_share_links_point_at_product():
    product = make_product("p 1", name="Tile & Trim")

    links = {link["name"]: link["url"] for link in share_links(product, "https://shop.example/")}

    fb = parse_qs(urlparse(links["Facebook"]).query)
    assert fb["u"] == ["https://shop.example/?product=p%201"]
    tweet = parse_qs(urlparse(links["X (Twitter)"]).query)
    assert tweet["text"] == ["Check out Tile & Trim!"]
    assert links["Email"].startswith("mailto:?subject=Check%20out%20Tile%20%26%20Trim&body=")

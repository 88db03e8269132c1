from __future__ import annotations

import re
from typing import Dict, List, Sequence
from urllib.parse import quote

from models import Product

CURRENCY = "Ksh"

# characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


def format_price(value: float) -> str:
    """Shop formatting: Ksh 1,170.00"""
    try:
        v = float(value)
    except (TypeError, ValueError):
        v = 0.0
    return f"{CURRENCY} {v:,.2f}"


def encode_component(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE)


def cart_total(items: Sequence[Product]) -> float:
    return sum(p.price for p in items)


def has_out_of_stock(items: Sequence[Product]) -> bool:
    return any(not p.is_in_stock for p in items)


def build_inquiry_message(items: Sequence[Product]) -> str:
    lines = "\n".join(f"- {p.name} ({format_price(p.price)})" for p in items)
    return (
        "Hello! I'm interested in the following products:\n\n"
        f"{lines}\n\n"
        f"Total: {format_price(cart_total(items))}\n\n"
        "Please provide me with more information. Thank you."
    )


def build_wishlist_message(items: Sequence[Product]) -> str:
    lines = "\n".join(f"- {p.name} ({format_price(p.price)})" for p in items)
    return f"Hello! I'd like to ask about these products from my wishlist:\n\n{lines}"


def whatsapp_url(number: str, message: str) -> str:
    digits = re.sub(r"\D", "", number or "")
    if not digits:
        raise ValueError("A WhatsApp number is required.")
    return f"https://wa.me/{digits}?text={encode_component(message)}"


def product_share_url(product: Product, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/?product={encode_component(product.id)}"


def share_links(product: Product, base_url: str) -> List[Dict[str, str]]:
    url = product_share_url(product, base_url)
    return [
        {
            "name": "Facebook",
            "url": f"https://www.facebook.com/sharer/sharer.php?u={encode_component(url)}",
        },
        {
            "name": "X (Twitter)",
            "url": "https://twitter.com/intent/tweet?text="
            + encode_component(f"Check out {product.name}!")
            + f"&url={encode_component(url)}",
        },
        {
            "name": "WhatsApp",
            "url": f"https://wa.me/?text={encode_component(f'Check out {product.name}: {url}')}",
        },
        {
            "name": "Email",
            "url": f"mailto:?subject={encode_component(f'Check out {product.name}')}"
            + "&body="
            + encode_component(
                f"I found this product: {product.name}\n\n{product.description}\n\nView it here: {url}"
            ),
        },
    ]

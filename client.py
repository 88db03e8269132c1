from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from models import Product, Review

_NO_BODY = object()


class ApiError(Exception):
    """A request reached the server (or tried to) and did not succeed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class AuthenticationError(ApiError):
    """401/403: the caller must treat the user as logged out."""


class NetworkError(ApiError):
    pass


def _unwrap(data: Any) -> Any:
    # some server builds wrap collections as {"message": ..., "data": [...]}
    if isinstance(data, dict) and "data" in data:
        return data["data"]
    return data


def _as_list(data: Any, what: str) -> List[Any]:
    data = _unwrap(data)
    if not isinstance(data, list):
        raise ApiError(f"Unexpected {what} payload from server.")
    return data


class CatalogClient:
    """Thin wrapper around the catalog HTTP API.

    The underlying ``requests.Session`` keeps the session cookie, so admin
    calls made after ``login()`` carry the privileged session. Every non-2xx
    response is raised as an ``ApiError`` subclass; nothing is swallowed.
    """

    def __init__(
        self,
        base_url: str,
        http: Optional[requests.Session] = None,
        timeout: float = 10.0,
        on_logout: Optional[Callable[[], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.http.headers.setdefault("Accept", "application/json")
        self.timeout = timeout
        self.on_logout = on_logout
        self.authenticated = False

    # -------------------------
    # Transport
    # -------------------------
    def _request(self, method: str, path: str, body: Any = _NO_BODY) -> Any:
        kwargs: Dict[str, Any] = {"timeout": self.timeout}
        if body is not _NO_BODY:
            kwargs["json"] = body
        try:
            resp = self.http.request(method, f"{self.base_url}{path}", **kwargs)
        except requests.RequestException as e:
            raise NetworkError(str(e) or "Network error") from e

        if not resp.ok:
            message = self._error_message(resp)
            if resp.status_code in (401, 403):
                self._drop_auth()
                raise AuthenticationError(message, resp.status_code)
            raise ApiError(message, resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            msg = data.get("error") or data.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg
        return f"Request failed with status {resp.status_code}"

    def _drop_auth(self) -> None:
        was_authenticated = self.authenticated
        self.authenticated = False
        if was_authenticated and self.on_logout is not None:
            self.on_logout()

    # -------------------------
    # Auth
    # -------------------------
    def login(self, username: str, password: str) -> None:
        self._request("POST", "/auth/login", {"username": username, "password": password})
        self.authenticated = True

    def logout(self) -> None:
        try:
            self._request("POST", "/logout")
        finally:
            self.authenticated = False

    def auth_status(self) -> bool:
        data = self._request("GET", "/auth/status")
        self.authenticated = bool(isinstance(data, dict) and data.get("isAuthenticated"))
        return self.authenticated

    # -------------------------
    # Products
    # -------------------------
    def get_products(self) -> List[Product]:
        return [Product.from_dict(x) for x in _as_list(self._request("GET", "/products"), "products")]

    def get_product(self, product_id: str) -> Product:
        return Product.from_dict(self._request("GET", f"/products/{quote(product_id, safe='')}"))

    def save_products(self, products: List[Product]) -> List[Product]:
        data = self._request("PUT", "/products", [p.to_dict() for p in products])
        return [Product.from_dict(x) for x in _as_list(data, "products")]

    def create_product(self, product: Product) -> Product:
        return Product.from_dict(self._request("POST", "/products", product.to_dict()))

    def update_product(self, product: Product) -> Product:
        path = f"/products/{quote(product.id, safe='')}"
        return Product.from_dict(self._request("PUT", path, product.to_dict()))

    def delete_product(self, product_id: str) -> None:
        self._request("DELETE", f"/products/{quote(product_id, safe='')}")

    def add_review(self, product_id: str, review: Review) -> Product:
        path = f"/products/{quote(product_id, safe='')}/reviews"
        return Product.from_dict(self._request("POST", path, review.to_dict()))

    # -------------------------
    # Categories
    # -------------------------
    def get_categories(self) -> List[str]:
        return [str(c) for c in _as_list(self._request("GET", "/categories"), "categories")]

    def save_categories(self, names: List[str]) -> None:
        self._request("PUT", "/categories", list(names))

    def add_category(self, name: str) -> None:
        self._request("POST", "/categories", {"name": name})

    def rename_category(self, old_name: str, new_name: str) -> int:
        data = self._request("POST", "/categories/rename", {"from": old_name, "to": new_name})
        return int(data.get("updatedProducts", 0)) if isinstance(data, dict) else 0

    def delete_category(self, name: str) -> None:
        self._request("DELETE", f"/categories/{quote(name, safe='')}")

    # -------------------------
    # Session cart / wishlist
    # -------------------------
    def get_cart(self) -> List[Product]:
        return [Product.from_dict(x) for x in _as_list(self._request("GET", "/session/cart"), "cart")]

    def save_cart(self, items: List[Product]) -> None:
        self._request("POST", "/session/cart", {"cart": [p.to_dict() for p in items]})

    def get_wishlist(self) -> List[str]:
        return [str(x) for x in _as_list(self._request("GET", "/session/wishlist"), "wishlist")]

    def save_wishlist(self, ids: List[str]) -> None:
        self._request("POST", "/session/wishlist", {"wishlist": list(ids)})

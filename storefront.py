from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional

from client import ApiError, AuthenticationError, CatalogClient
from inquiry import build_inquiry_message, build_wishlist_message, has_out_of_stock, share_links, whatsapp_url
from models import Product, Review

ALL_CATEGORIES = "All"


class AuthState(Enum):
    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    LOGGED_IN = "logged_in"


@dataclass
class Notification:
    kind: str  # "success" | "error"
    message: str


@dataclass
class Confirmation:
    action: str  # "delete_product" | "delete_category"
    target: str
    message: str


@dataclass
class ViewState:
    products: List[Product] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    cart: List[Product] = field(default_factory=list)
    wishlist: List[str] = field(default_factory=list)
    active_category: str = ALL_CATEGORIES
    search: str = ""
    selected_product: Optional[Product] = None
    share_product: Optional[Product] = None
    cart_open: bool = False
    wishlist_open: bool = False
    login_open: bool = False
    form_open: bool = False
    editing_product: Optional[Product] = None
    confirmation: Optional[Confirmation] = None
    notification: Optional[Notification] = None
    auth: AuthState = AuthState.LOGGED_OUT
    login_error: Optional[str] = None
    busy: bool = False


class Storefront:
    """Owns the storefront's view state and the commands that change it.

    Reads are derived from ``state``; every mutation goes through a method
    here. Admin edits reach ``state`` only after the server accepted them.
    Cart and wishlist changes are mirrored to the server session when
    ``sync_session`` is on.
    """

    def __init__(
        self,
        client: CatalogClient,
        whatsapp_number: str = "",
        base_url: str = "",
        sync_session: bool = True,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.client.on_logout = self._session_lost
        self.whatsapp_number = whatsapp_number
        self.base_url = base_url
        self.sync_session = sync_session
        self.today = today
        self.state = ViewState()

    # -------------------------
    # Notifications
    # -------------------------
    def notify(self, kind: str, message: str) -> None:
        self.state.notification = Notification(kind, message)

    def notify_success(self, message: str) -> None:
        self.notify("success", message)

    def notify_error(self, message: str) -> None:
        self.notify("error", message)

    def dismiss_notification(self) -> None:
        self.state.notification = None

    def _fail(self, prefix: str, err: ApiError) -> None:
        if isinstance(err, AuthenticationError):
            self._session_lost()
            self.notify_error(f"{prefix}: you are not authorized. Please log in again.")
        else:
            self.notify_error(f"{prefix}: {err.message or 'unexpected error'}")

    def _session_lost(self) -> None:
        self.state.auth = AuthState.LOGGED_OUT
        self.state.form_open = False
        self.state.editing_product = None
        self.state.confirmation = None

    # -------------------------
    # Loading
    # -------------------------
    def load(self) -> bool:
        try:
            products = self.client.get_products()
            categories = self.client.get_categories()
        except ApiError as e:
            self._fail("Could not load the catalog", e)
            return False
        self.state.products = products
        self.state.categories = categories

        if not self.sync_session:
            return True
        try:
            logged_in = self.client.auth_status()
            cart = self.client.get_cart()
            wishlist = self.client.get_wishlist()
        except ApiError as e:
            self._fail("Could not restore your session", e)
            return False
        self.state.auth = AuthState.LOGGED_IN if logged_in else AuthState.LOGGED_OUT
        by_id = {p.id: p for p in products}
        # prefer live catalog data over stale session snapshots
        self.state.cart = [by_id.get(p.id, p) for p in cart]
        self.state.wishlist = wishlist
        return True

    # -------------------------
    # Derived views
    # -------------------------
    @property
    def is_admin(self) -> bool:
        return self.state.auth == AuthState.LOGGED_IN

    def find_product(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.state.products if p.id == product_id), None)

    def visible_products(self) -> List[Product]:
        category = self.state.active_category
        query = self.state.search.lower()
        out = []
        for p in self.state.products:
            if not p.is_visible and not self.is_admin:
                continue
            if category != ALL_CATEGORIES and p.category != category:
                continue
            if query not in p.name.lower() and query not in p.description.lower():
                continue
            out.append(p)
        return out

    def set_category(self, category: str) -> None:
        self.state.active_category = category or ALL_CATEGORIES

    def set_search(self, text: str) -> None:
        self.state.search = text or ""

    # -------------------------
    # Panels
    # -------------------------
    def open_product(self, product_id: str) -> None:
        self.state.selected_product = self.find_product(product_id)

    def close_product(self) -> None:
        self.state.selected_product = None

    def open_cart(self) -> None:
        self.state.cart_open = True

    def close_cart(self) -> None:
        self.state.cart_open = False

    def open_wishlist(self) -> None:
        self.state.wishlist_open = True

    def close_wishlist(self) -> None:
        self.state.wishlist_open = False

    def open_login(self) -> None:
        self.state.login_open = True
        self.state.login_error = None

    def close_login(self) -> None:
        self.state.login_open = False

    def open_share(self, product_id: str) -> None:
        self.state.share_product = self.find_product(product_id)

    def close_share(self) -> None:
        self.state.share_product = None

    def share_links(self, product_id: str) -> List[Dict[str, str]]:
        product = self.find_product(product_id)
        return share_links(product, self.base_url) if product else []

    # -------------------------
    # Cart
    # -------------------------
    def in_cart(self, product_id: str) -> bool:
        return any(p.id == product_id for p in self.state.cart)

    def add_to_cart(self, product: Product) -> bool:
        if not product.is_in_stock:
            self.notify_error(f'"{product.name}" is out of stock and cannot be added to the cart.')
            return False
        if self.in_cart(product.id):
            return False
        self.state.cart = self.state.cart + [product]
        self.notify_success(f'"{product.name}" added to your cart.')
        self._sync_cart()
        return True

    def remove_from_cart(self, product_id: str) -> None:
        self.state.cart = [p for p in self.state.cart if p.id != product_id]
        self._sync_cart()

    def cart_total(self) -> float:
        return sum(p.price for p in self.state.cart)

    def inquiry_url(self) -> Optional[str]:
        """WhatsApp link carrying the cart as a prefilled message."""
        if not self.state.cart:
            self.notify_error("Your cart is empty.")
            return None
        if has_out_of_stock(self.state.cart):
            self.notify_error("Remove out-of-stock items before sending an inquiry.")
            return None
        return whatsapp_url(self.whatsapp_number, build_inquiry_message(self.state.cart))

    def wishlist_inquiry_url(self) -> Optional[str]:
        items = self.wishlist_items()
        if not items:
            self.notify_error("Your wishlist is empty.")
            return None
        return whatsapp_url(self.whatsapp_number, build_wishlist_message(items))

    def _sync_cart(self) -> None:
        if not self.sync_session:
            return
        try:
            self.client.save_cart(self.state.cart)
        except ApiError as e:
            self._fail("Could not save your cart", e)

    # -------------------------
    # Wishlist
    # -------------------------
    def in_wishlist(self, product_id: str) -> bool:
        return product_id in self.state.wishlist

    def wishlist_items(self) -> List[Product]:
        by_id = {p.id: p for p in self.state.products}
        return [by_id[i] for i in self.state.wishlist if i in by_id]

    def toggle_wishlist(self, product_id: str) -> bool:
        """Add or remove ``product_id``; returns the new membership."""
        if self.in_wishlist(product_id):
            self.state.wishlist = [i for i in self.state.wishlist if i != product_id]
            member = False
        else:
            self.state.wishlist = self.state.wishlist + [product_id]
            member = True
        self._sync_wishlist()
        return member

    def remove_from_wishlist(self, product_id: str) -> None:
        self.state.wishlist = [i for i in self.state.wishlist if i != product_id]
        self._sync_wishlist()

    def move_to_cart(self, product: Product) -> bool:
        if not product.is_in_stock:
            self.notify_error(f'"{product.name}" is out of stock and stays in your wishlist.')
            return False
        if not self.in_cart(product.id):
            self.state.cart = self.state.cart + [product]
            self._sync_cart()
        self.remove_from_wishlist(product.id)
        self.notify_success(f'"{product.name}" moved to your cart.')
        return True

    def _sync_wishlist(self) -> None:
        if not self.sync_session:
            return
        try:
            self.client.save_wishlist(self.state.wishlist)
        except ApiError as e:
            self._fail("Could not save your wishlist", e)

    # -------------------------
    # Reviews
    # -------------------------
    def submit_review(self, product_id: str, user_name: str, rating: int, comment: str) -> bool:
        user_name = (user_name or "").strip()
        comment = (comment or "").strip()
        if not user_name or not comment:
            self.notify_error("Please enter your name and a comment.")
            return False
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            self.notify_error("Rating must be between 1 and 5 stars.")
            return False
        if self.find_product(product_id) is None:
            self.notify_error("That product is no longer available.")
            return False

        review = Review(
            id=f"rev-{int(time.time() * 1000)}",
            user_name=user_name,
            rating=rating,
            comment=comment,
            date=self.today().isoformat(),
        )
        self.state.busy = True
        try:
            saved = self.client.add_review(product_id, review)
        except ApiError as e:
            self._fail("Could not submit your review", e)
            return False
        finally:
            self.state.busy = False
        self._apply_saved(saved)
        self.notify_success("Thank you! Your review has been submitted.")
        return True

    def _apply_saved(self, saved: Product) -> None:
        replaced = False
        products = []
        for p in self.state.products:
            if p.id == saved.id:
                products.append(saved)
                replaced = True
            else:
                products.append(p)
        if not replaced:
            products.append(saved)
        self.state.products = products
        self.state.cart = [saved if p.id == saved.id else p for p in self.state.cart]
        if self.state.selected_product is not None and self.state.selected_product.id == saved.id:
            self.state.selected_product = saved

    # -------------------------
    # Admin auth
    # -------------------------
    def login(self, username: str, password: str) -> bool:
        if not (username or "").strip() or not password:
            self.state.login_error = "Please enter both username and password."
            return False
        self.state.auth = AuthState.AUTHENTICATING
        self.state.login_error = None
        try:
            self.client.login(username.strip(), password)
        except AuthenticationError:
            self.state.auth = AuthState.LOGGED_OUT
            self.state.login_error = "Invalid username or password."
            return False
        except ApiError as e:
            self.state.auth = AuthState.LOGGED_OUT
            self.state.login_error = e.message
            return False
        self.state.auth = AuthState.LOGGED_IN
        self.state.login_open = False
        # login starts a fresh server session; carry the visitor's lists over
        if self.state.cart:
            self._sync_cart()
        if self.state.wishlist:
            self._sync_wishlist()
        return True

    def logout(self) -> None:
        try:
            self.client.logout()
        except ApiError as e:
            self._fail("Logout failed", e)
        else:
            self.notify_success("You have been logged out.")
        finally:
            self._session_lost()

    # -------------------------
    # Admin: products
    # -------------------------
    def _admin_ready(self) -> bool:
        if not self.is_admin:
            self.notify_error("Please log in as an admin first.")
            return False
        return not self.state.busy

    def open_product_form(self, product_id: Optional[str] = None) -> None:
        if not self.is_admin:
            return
        self.state.editing_product = self.find_product(product_id) if product_id else None
        self.state.form_open = True

    def close_product_form(self) -> None:
        self.state.form_open = False
        self.state.editing_product = None

    def _product_problem(self, product: Product) -> Optional[str]:
        if not product.name.strip() or not product.description.strip():
            return "Please fill in the product name and description."
        if not product.image_urls:
            return "Please add at least one image."
        if product.price < 0:
            return "Price cannot be negative."
        if product.category not in self.state.categories:
            return f'Unknown category "{product.category}".'
        return None

    def save_product(self, product: Product) -> bool:
        """Create ``product`` (empty or unknown id) or replace the stored one."""
        if not self._admin_ready():
            return False
        problem = self._product_problem(product)
        if problem:
            self.notify_error(problem)
            return False

        existing = bool(product.id) and self.find_product(product.id) is not None
        self.state.busy = True
        try:
            if existing:
                saved = self.client.update_product(product)
            else:
                saved = self.client.create_product(product)
        except ApiError as e:
            self._fail("Could not save the product", e)
            return False
        finally:
            self.state.busy = False

        self._apply_saved(saved)
        self.close_product_form()
        self.notify_success("Product updated." if existing else "Product added.")
        return True

    def set_visibility(self, product_id: str, visible: bool) -> bool:
        product = self.find_product(product_id)
        if product is None:
            self.notify_error("That product is no longer available.")
            return False
        return self.save_product(replace(product, is_visible=visible))

    def request_delete_product(self, product_id: str) -> None:
        product = self.find_product(product_id)
        if product is None or not self.is_admin:
            return
        self.state.confirmation = Confirmation(
            "delete_product", product_id, f'Delete "{product.name}"? This cannot be undone.'
        )

    def delete_product(self, product_id: str) -> bool:
        if not self._admin_ready():
            return False
        self.state.busy = True
        try:
            self.client.delete_product(product_id)
        except ApiError as e:
            self._fail("Could not delete the product", e)
            return False
        finally:
            self.state.busy = False

        self.state.products = [p for p in self.state.products if p.id != product_id]
        if self.in_cart(product_id):
            self.remove_from_cart(product_id)
        if self.in_wishlist(product_id):
            self.remove_from_wishlist(product_id)
        if self.state.selected_product is not None and self.state.selected_product.id == product_id:
            self.state.selected_product = None
        self.notify_success("Product deleted.")
        return True

    # -------------------------
    # Admin: categories
    # -------------------------
    def _category_exists(self, name: str, ignore: Optional[str] = None) -> bool:
        return any(c.lower() == name.lower() and c != ignore for c in self.state.categories)

    def _category_usage(self, name: str) -> int:
        return sum(1 for p in self.state.products if p.category == name)

    def add_category(self, name: str) -> bool:
        name = (name or "").strip()
        if not name:
            self.notify_error("Category name cannot be empty.")
            return False
        if self._category_exists(name):
            self.notify_error(f'Category "{name}" already exists.')
            return False
        if not self._admin_ready():
            return False
        self.state.busy = True
        try:
            self.client.add_category(name)
        except ApiError as e:
            self._fail("Could not add the category", e)
            return False
        finally:
            self.state.busy = False
        self.state.categories = self.state.categories + [name]
        self.notify_success(f'Category "{name}" added.')
        return True

    def rename_category(self, old_name: str, new_name: str) -> bool:
        new_name = (new_name or "").strip()
        if not new_name:
            self.notify_error("Category name cannot be empty.")
            return False
        if old_name not in self.state.categories:
            self.notify_error(f'Category "{old_name}" not found.')
            return False
        if new_name == old_name:
            return True
        if self._category_exists(new_name, ignore=old_name):
            self.notify_error(f'Category "{new_name}" already exists.')
            return False
        if not self._admin_ready():
            return False
        self.state.busy = True
        try:
            self.client.rename_category(old_name, new_name)
        except ApiError as e:
            self._fail("Could not rename the category", e)
            return False
        finally:
            self.state.busy = False

        self.state.categories = [new_name if c == old_name else c for c in self.state.categories]

        # the server bumps the version of every product it retags
        def retag(p: Product) -> Product:
            if p.category != old_name:
                return p
            version = p.version + 1 if p.version is not None else None
            return replace(p, category=new_name, version=version)

        self.state.products = [retag(p) for p in self.state.products]
        if any(p.category == old_name for p in self.state.cart):
            self.state.cart = [retag(p) for p in self.state.cart]
            self._sync_cart()
        if self.state.selected_product is not None:
            self.state.selected_product = retag(self.state.selected_product)
        if self.state.active_category == old_name:
            self.state.active_category = new_name
        self.notify_success(f'Category "{old_name}" renamed to "{new_name}".')
        return True

    def _category_in_use_message(self, name: str) -> Optional[str]:
        used = self._category_usage(name)
        if used:
            return f'Cannot delete "{name}" because {used} product(s) still use it.'
        return None

    def request_delete_category(self, name: str) -> None:
        if not self.is_admin:
            return
        blocked = self._category_in_use_message(name)
        if blocked:
            self.notify_error(blocked)
            return
        self.state.confirmation = Confirmation(
            "delete_category", name, f'Delete category "{name}"?'
        )

    def delete_category(self, name: str) -> bool:
        blocked = self._category_in_use_message(name)
        if blocked:
            self.notify_error(blocked)
            return False
        if not self._admin_ready():
            return False
        self.state.busy = True
        try:
            self.client.delete_category(name)
        except ApiError as e:
            self._fail("Could not delete the category", e)
            return False
        finally:
            self.state.busy = False
        self.state.categories = [c for c in self.state.categories if c != name]
        if self.state.active_category == name:
            self.state.active_category = ALL_CATEGORIES
        self.notify_success(f'Category "{name}" deleted.')
        return True

    # -------------------------
    # Confirmation dialog
    # -------------------------
    def confirm(self) -> bool:
        pending = self.state.confirmation
        self.state.confirmation = None
        if pending is None:
            return False
        if pending.action == "delete_product":
            return self.delete_product(pending.target)
        if pending.action == "delete_category":
            return self.delete_category(pending.target)
        return False

    def cancel_confirmation(self) -> None:
        self.state.confirmation = None

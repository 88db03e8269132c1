from __future__ import annotations

import logging
import logging.config
import os
import sqlite3
import uuid
from dataclasses import replace
from datetime import date, timedelta
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

import click
from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request, send_from_directory, session
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from errors import AuthorizationError, CatalogError, ValidationError
from models import Product, Review, products_from_list
from session_store import SqliteSessionInterface
from storage import CatalogStore

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

DEFAULT_CATEGORIES = ["Tiles", "Marble", "Fences", "Stone"]
DEFAULT_ADMIN_PASSWORD = "change-me"

DEMO_PRODUCTS: List[Dict[str, Any]] = [
    {
        "id": "prod-1",
        "name": "Carrara Marble Tile",
        "description": "Classic Italian polished marble, perfect for elegant floors and walls.",
        "imageUrls": ["https://picsum.photos/seed/marble1/600/400"],
        "category": "Marble",
        "price": 1170.00,
        "isNewArrival": True,
        "isInStock": True,
        "reviews": [
            {"id": "r1", "userName": "Alice M.", "rating": 5,
             "comment": "Absolutely stunning tiles!", "date": "2023-10-05"},
        ],
    },
    {
        "id": "prod-2",
        "name": "Modern Slate Fence Panel",
        "description": "Sleek and durable slate panels for a contemporary garden boundary.",
        "imageUrls": ["https://picsum.photos/seed/fence1/600/400"],
        "category": "Fences",
        "price": 20150.00,
        "isNewArrival": True,
        "isInStock": True,
    },
    {
        "id": "prod-3",
        "name": "Terracotta Hexagon Tiles",
        "description": "Warm, rustic terracotta tiles in a modern hexagon shape.",
        "imageUrls": ["https://picsum.photos/seed/tiles1/600/400"],
        "category": "Tiles",
        "price": 845.00,
        "isInStock": False,
    },
    {
        "id": "prod-4",
        "name": "Cobblestone Pavers",
        "description": "Authentic, old-world cobblestone for driveways, walkways and patios.",
        "imageUrls": ["https://picsum.photos/seed/stone1/600/400"],
        "category": "Stone",
        "price": 620.00,
        "isInStock": True,
    },
]


# -------------------------
# Helpers
# -------------------------
def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name) or ""
    return [x.strip() for x in raw.split(",") if x.strip()]


def configure_logging(level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"}
            },
            "handlers": {
                "wsgi": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://flask.logging.wsgi_errors_stream",
                    "formatter": "default",
                }
            },
            "root": {"level": level, "handlers": ["wsgi"]},
        }
    )


def get_store() -> CatalogStore:
    return current_app.extensions["catalog_store"]


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not session.get("isAdmin"):
            current_app.logger.warning(
                "Rejected %s %s without an admin session", request.method, request.path
            )
            raise AuthorizationError("Unauthorized")
        return view(*args, **kwargs)

    return wrapper


def _json_body(expected: type) -> Any:
    payload = request.get_json(silent=True)
    if not isinstance(payload, expected):
        kind = "an array" if expected is list else "an object"
        raise ValidationError(f"Request body must be {kind}.")
    return payload


def _admin_users_from_env() -> List[Tuple[str, str]]:
    username = (os.getenv("ADMIN_USERNAME") or "admin").strip()
    password = os.getenv("ADMIN_PASSWORD") or DEFAULT_ADMIN_PASSWORD
    return [(username, password)]


# -------------------------
# App factory
# -------------------------
def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    load_dotenv(os.path.join(BASE_DIR, ".env"))

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.getenv("SECRET_KEY", "dev-secret-change-me"),
        DATABASE=os.getenv("CATALOG_DATABASE", os.path.join(app.root_path, "data", "catalog.db")),
        PERMANENT_SESSION_LIFETIME=timedelta(days=int(os.getenv("SESSION_LIFETIME_DAYS", "30"))),
        SESSION_COOKIE_NAME="catalog_session",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=_env_bool("SESSION_COOKIE_SECURE"),
        ADMIN_USERS=_admin_users_from_env(),
        SEED_CATEGORIES=list(DEFAULT_CATEGORIES),
        DIST_DIR=os.getenv("DIST_DIR", os.path.join(app.root_path, "dist")),
        CORS_ORIGINS=_env_list("CORS_ORIGINS"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        MAX_CONTENT_LENGTH=50 * 1024 * 1024,
    )
    if config:
        app.config.update(config)

    configure_logging(app.config["LOG_LEVEL"])

    if any(p == DEFAULT_ADMIN_PASSWORD for _, p in app.config["ADMIN_USERS"]):
        app.logger.warning("Seeding admin user with the default password; set ADMIN_PASSWORD.")

    store = CatalogStore(app.config["DATABASE"])
    store.init_db(
        admin_users=app.config["ADMIN_USERS"],
        seed_categories=app.config["SEED_CATEGORIES"],
    )
    app.extensions["catalog_store"] = store
    app.session_interface = SqliteSessionInterface(store)

    register_hooks(app)
    register_error_handlers(app)
    register_auth_routes(app)
    register_catalog_routes(app)
    register_session_routes(app)
    register_frontend_routes(app)
    register_cli(app)
    return app


# -------------------------
# Request hooks
# -------------------------
def register_hooks(app: Flask) -> None:
    @app.before_request
    def log_request():
        if request.path.startswith("/api"):
            app.logger.info("%s %s", request.method, request.path)

    @app.after_request
    def add_no_cache_headers(resp):
        if request.path.startswith("/api"):
            resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            resp.headers["Pragma"] = "no-cache"
            resp.headers["Expires"] = "0"
        return resp

    # cross-origin access only for configured front-end origins
    if app.config["CORS_ORIGINS"]:
        CORS(
            app,
            resources={r"/api/*": {}},
            origins=app.config["CORS_ORIGINS"],
            supports_credentials=True,
        )


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(CatalogError)
    def handle_catalog_error(err: CatalogError):
        return jsonify({"error": err.message}), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err: HTTPException):
        if request.path.startswith("/api"):
            return jsonify({"error": err.description}), err.code
        return err

    @app.errorhandler(sqlite3.Error)
    def handle_db_error(err: sqlite3.Error):
        app.logger.exception("Database error on %s %s", request.method, request.path)
        return jsonify({"error": "Database error"}), 500


# -------------------------
# Auth
# -------------------------
def register_auth_routes(app: Flask) -> None:
    @app.get("/api/auth/status")
    def auth_status():
        is_admin = bool(session.get("isAdmin"))
        return jsonify(
            {"isAuthenticated": is_admin, "username": session.get("username") if is_admin else None}
        )

    @app.post("/api/auth/login")
    @app.post("/api/login")
    def login():
        payload = request.get_json(silent=True) or {}
        username = payload.get("username") if isinstance(payload, dict) else None
        password = payload.get("password") if isinstance(payload, dict) else None
        if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
            raise ValidationError("Missing credentials")

        if not get_store().verify_user(username, password):
            app.logger.warning("Failed login for %r", username)
            return jsonify({"error": "Invalid username or password"}), 401

        session.regenerate()
        session["isAdmin"] = True
        session["username"] = username
        session["cart"] = []
        session["wishlist"] = []
        app.logger.info("Admin %r logged in", username)
        return jsonify({"message": "success"})

    @app.post("/api/logout")
    def logout():
        session.destroy()
        return jsonify({"message": "logged out"})


# -------------------------
# Catalog
# -------------------------
def register_catalog_routes(app: Flask) -> None:
    @app.get("/api/products")
    def list_products():
        return jsonify([p.to_dict() for p in get_store().list_products()])

    @app.put("/api/products")
    @admin_required
    def replace_products():
        products = products_from_list(_json_body(list))
        saved = get_store().replace_products(products)
        return jsonify({"message": "success", "data": [p.to_dict() for p in saved]})

    @app.post("/api/products")
    @admin_required
    def create_product():
        product = get_store().create_product(Product.from_dict(_json_body(dict)))
        app.logger.info("Created product %s", product.id)
        return jsonify(product.to_dict()), 201

    @app.get("/api/products/<product_id>")
    def get_product(product_id: str):
        return jsonify(get_store().get_product(product_id).to_dict())

    @app.put("/api/products/<product_id>")
    @admin_required
    def update_product(product_id: str):
        payload = _json_body(dict)
        payload["id"] = product_id
        product = get_store().update_product(Product.from_dict(payload))
        return jsonify(product.to_dict())

    @app.delete("/api/products/<product_id>")
    @admin_required
    def delete_product(product_id: str):
        get_store().delete_product(product_id)
        app.logger.info("Deleted product %s", product_id)
        return jsonify({"message": "success"})

    @app.post("/api/products/<product_id>/reviews")
    def add_review(product_id: str):
        review = Review.from_dict(_json_body(dict))
        review = replace(
            review,
            id=review.id or f"rev-{uuid.uuid4().hex[:12]}",
            date=review.date or date.today().isoformat(),
        )
        product = get_store().add_review(product_id, review)
        return jsonify(product.to_dict()), 201

    @app.get("/api/categories")
    def list_categories():
        return jsonify(get_store().list_categories())

    @app.put("/api/categories")
    @admin_required
    def replace_categories():
        names = get_store().replace_categories(_json_body(list))
        return jsonify({"message": "success", "data": names})

    @app.post("/api/categories")
    @admin_required
    def add_category():
        name = get_store().add_category(_json_body(dict).get("name"))
        return jsonify({"message": "success", "name": name}), 201

    @app.post("/api/categories/rename")
    @admin_required
    def rename_category():
        payload = _json_body(dict)
        old_name, new_name = payload.get("from"), payload.get("to")
        retagged = get_store().rename_category(old_name, new_name)
        app.logger.info("Renamed category %r to %r (%d products)", old_name, new_name, retagged)
        return jsonify({"message": "success", "updatedProducts": retagged})

    @app.delete("/api/categories/<path:name>")
    @admin_required
    def delete_category(name: str):
        get_store().delete_category(name)
        app.logger.info("Deleted category %r", name)
        return jsonify({"message": "success"})


# -------------------------
# Session cart / wishlist
# -------------------------
def register_session_routes(app: Flask) -> None:
    @app.get("/api/session/cart")
    def get_cart():
        return jsonify(session.get("cart") or [])

    @app.post("/api/session/cart")
    def save_cart():
        cart = _json_body(dict).get("cart")
        if not isinstance(cart, list):
            raise ValidationError("Invalid cart")
        snapshots = [Product.from_dict(x).to_dict() for x in cart]
        session["cart"] = snapshots
        return jsonify({"message": "ok"})

    @app.get("/api/session/wishlist")
    def get_wishlist():
        return jsonify(session.get("wishlist") or [])

    @app.post("/api/session/wishlist")
    def save_wishlist():
        wishlist = _json_body(dict).get("wishlist")
        if not isinstance(wishlist, list) or not all(isinstance(x, str) and x for x in wishlist):
            raise ValidationError("Invalid wishlist")
        # de-dup while preserving order
        session["wishlist"] = list(dict.fromkeys(wishlist))
        return jsonify({"message": "ok"})


# -------------------------
# Built client (SPA fallback)
# -------------------------
def register_frontend_routes(app: Flask) -> None:
    @app.get("/", defaults={"path": ""})
    @app.get("/<path:path>")
    def frontend(path: str):
        if path == "api" or path.startswith("api/"):
            return jsonify({"error": "API route not found"}), 404
        dist = app.config["DIST_DIR"]
        if not os.path.isdir(dist):
            return (
                "API is running. Frontend not built or dist/ missing.",
                200,
                {"Content-Type": "text/plain; charset=utf-8"},
            )
        if path and os.path.isfile(os.path.join(dist, path)):
            return send_from_directory(dist, path)
        return send_from_directory(dist, "index.html")


# -------------------------
# CLI
# -------------------------
def register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create tables and seed users/categories when empty."""
        get_store().init_db(
            admin_users=app.config["ADMIN_USERS"],
            seed_categories=app.config["SEED_CATEGORIES"],
        )
        click.echo(f"Database ready at {app.config['DATABASE']}")

    @app.cli.command("create-admin")
    @click.argument("username")
    @click.password_option()
    def create_admin_command(username: str, password: str):
        """Create an admin user, or reset the password of an existing one."""
        created = get_store().create_user(username, password)
        click.echo(f"{'Created' if created else 'Updated'} admin user {username!r}.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Insert the demo catalog when no products exist yet."""
        store = get_store()
        if store.count_products():
            click.echo("Products already present; nothing to do.")
            return
        categories = store.list_categories()
        for raw in DEMO_PRODUCTS:
            if raw["category"] not in categories:
                store.add_category(raw["category"])
                categories.append(raw["category"])
        store.replace_products(products_from_list(DEMO_PRODUCTS))
        click.echo(f"Inserted {len(DEMO_PRODUCTS)} demo products.")

    @app.cli.command("purge-sessions")
    def purge_sessions_command():
        """Delete expired session rows."""
        click.echo(f"Removed {get_store().purge_expired_sessions()} expired session(s).")


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "3000")), debug=True)

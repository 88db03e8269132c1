from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

from errors import ConflictError, NotFoundError, ValidationError
from models import Product, Review

log = logging.getLogger(__name__)

SCHEMA = (
    """CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        imageUrls TEXT NOT NULL DEFAULT '[]',
        category TEXT NOT NULL,
        price REAL NOT NULL DEFAULT 0,
        isNewArrival INTEGER NOT NULL DEFAULT 0,
        isInStock INTEGER NOT NULL DEFAULT 1,
        reviews TEXT NOT NULL DEFAULT '[]',
        isVisible INTEGER NOT NULL DEFAULT 1,
        version INTEGER NOT NULL DEFAULT 1
    )""",
    """CREATE TABLE IF NOT EXISTS sessions (
        sid TEXT PRIMARY KEY,
        data TEXT NOT NULL,
        expires_at REAL NOT NULL
    )""",
)


def new_product_id() -> str:
    return f"prod-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def _row_to_product(row: sqlite3.Row) -> Product:
    try:
        urls = json.loads(row["imageUrls"] or "[]")
    except ValueError:
        urls = []
    try:
        reviews = json.loads(row["reviews"] or "[]")
    except ValueError:
        reviews = []
    return Product(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        category=row["category"],
        price=float(row["price"]),
        image_urls=tuple(str(u) for u in urls if u),
        is_in_stock=bool(row["isInStock"]),
        is_new_arrival=bool(row["isNewArrival"]),
        is_visible=bool(row["isVisible"]),
        reviews=tuple(Review.from_dict(r) for r in reviews if isinstance(r, dict)),
        version=int(row["version"]),
    )


def _product_params(p: Product) -> Tuple[Any, ...]:
    return (
        p.name,
        p.description,
        json.dumps(list(p.image_urls)),
        p.category,
        float(p.price),
        1 if p.is_new_arrival else 0,
        1 if p.is_in_stock else 0,
        json.dumps([r.to_dict() for r in p.reviews]),
        1 if p.is_visible else 0,
    )


def _clean_category_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Category name is required.")
    return name.strip()


class CatalogStore:
    """SQLite-backed storage for users, categories, products and sessions.

    Every public method opens its own connection; methods that touch more
    than one row do so inside a single transaction.
    """

    def __init__(self, path: str):
        self.path = path

    # -------------------------
    # Connection handling
    # -------------------------
    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(
        self,
        admin_users: Sequence[Tuple[str, str]] = (),
        seed_categories: Sequence[str] = (),
    ) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with self.connect() as conn:
            for stmt in SCHEMA:
                conn.execute(stmt)

            if conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 0 and admin_users:
                conn.executemany(
                    "INSERT INTO users (username, password_hash) VALUES (?, ?)",
                    [(u, generate_password_hash(p)) for u, p in admin_users],
                )
                log.info("Seeded %d admin user(s).", len(admin_users))

            if conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0] == 0 and seed_categories:
                conn.executemany(
                    "INSERT OR IGNORE INTO categories (name) VALUES (?)",
                    [(c,) for c in seed_categories],
                )
                log.info("Seeded %d categories.", len(seed_categories))

    # -------------------------
    # Users
    # -------------------------
    def create_user(self, username: str, password: str) -> bool:
        """Create an admin user or reset the password of an existing one.

        Returns True when a new user was created.
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required.")
        pw_hash = generate_password_hash(password)
        with self.connect() as conn:
            cur = conn.execute(
                "UPDATE users SET password_hash = ? WHERE username = ?", (pw_hash, username)
            )
            if cur.rowcount:
                return False
            conn.execute(
                "INSERT INTO users (username, password_hash) VALUES (?, ?)", (username, pw_hash)
            )
            return True

    def verify_user(self, username: str, password: str) -> bool:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT password_hash FROM users WHERE username = ?", (username,)
            ).fetchone()
        if row is None:
            # Still pay for a hash check so unknown users are not distinguishable by timing.
            check_password_hash(generate_password_hash("x"), password)
            return False
        return check_password_hash(row["password_hash"], password)

    # -------------------------
    # Categories
    # -------------------------
    def list_categories(self) -> List[str]:
        with self.connect() as conn:
            rows = conn.execute("SELECT name FROM categories ORDER BY id").fetchall()
        return [r["name"] for r in rows]

    def _category_usage(self, conn: sqlite3.Connection, name: str) -> int:
        return conn.execute(
            "SELECT COUNT(*) FROM products WHERE category = ?", (name,)
        ).fetchone()[0]

    def add_category(self, name: str) -> str:
        name = _clean_category_name(name)
        with self.connect() as conn:
            existing = [r["name"] for r in conn.execute("SELECT name FROM categories")]
            if name.lower() in {c.lower() for c in existing}:
                raise ConflictError(f'Category "{name}" already exists.')
            conn.execute("INSERT INTO categories (name) VALUES (?)", (name,))
        return name

    def rename_category(self, old_name: str, new_name: str) -> int:
        """Rename a category and retag every product that used the old name.

        Both updates commit together. Returns the number of products retagged.
        """
        old_name = _clean_category_name(old_name)
        new_name = _clean_category_name(new_name)
        with self.connect() as conn:
            names = [r["name"] for r in conn.execute("SELECT name FROM categories")]
            if old_name not in names:
                raise NotFoundError(f'Category "{old_name}" not found.')
            if old_name == new_name:
                return 0
            clash = [c for c in names if c.lower() == new_name.lower() and c != old_name]
            if clash:
                raise ConflictError(f'Category "{new_name}" already exists.')
            conn.execute("UPDATE categories SET name = ? WHERE name = ?", (new_name, old_name))
            cur = conn.execute(
                "UPDATE products SET category = ?, version = version + 1 WHERE category = ?",
                (new_name, old_name),
            )
            return cur.rowcount

    def delete_category(self, name: str) -> None:
        name = _clean_category_name(name)
        with self.connect() as conn:
            if conn.execute("SELECT 1 FROM categories WHERE name = ?", (name,)).fetchone() is None:
                raise NotFoundError(f'Category "{name}" not found.')
            used = self._category_usage(conn, name)
            if used:
                raise ConflictError(
                    f'Cannot delete category "{name}": it is used by {used} product(s).'
                )
            conn.execute("DELETE FROM categories WHERE name = ?", (name,))

    def replace_categories(self, names: Any) -> List[str]:
        """Make the stored category list exactly equal to ``names``.

        Rejects case-insensitive duplicates and the removal of any category
        that a product still references; nothing is written in either case.
        """
        if not isinstance(names, list):
            raise ValidationError("Expected an array of category names.")
        cleaned = [_clean_category_name(n) for n in names]
        seen = set()
        for n in cleaned:
            if n.lower() in seen:
                raise ValidationError(f'Duplicate category "{n}".')
            seen.add(n.lower())

        with self.connect() as conn:
            current = [r["name"] for r in conn.execute("SELECT name FROM categories ORDER BY id")]
            in_use = [c for c in current if c not in cleaned and self._category_usage(conn, c)]
            if in_use:
                raise ConflictError(
                    "Cannot remove categories still used by products: " + ", ".join(in_use)
                )
            conn.execute("DELETE FROM categories")
            conn.executemany("INSERT INTO categories (name) VALUES (?)", [(n,) for n in cleaned])
        return cleaned

    def _check_category(self, conn: sqlite3.Connection, category: str) -> None:
        if conn.execute("SELECT 1 FROM categories WHERE name = ?", (category,)).fetchone() is None:
            raise ValidationError(f'Unknown category "{category}".')

    # -------------------------
    # Products
    # -------------------------
    def list_products(self) -> List[Product]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM products ORDER BY rowid").fetchall()
        return [_row_to_product(r) for r in rows]

    def get_product(self, product_id: str) -> Product:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        if row is None:
            raise NotFoundError(f'Product "{product_id}" not found.')
        return _row_to_product(row)

    def _insert(self, conn: sqlite3.Connection, p: Product) -> None:
        conn.execute(
            """INSERT INTO products
               (name, description, imageUrls, category, price, isNewArrival,
                isInStock, reviews, isVisible, id, version)
               VALUES (?,?,?,?,?,?,?,?,?,?,1)""",
            _product_params(p) + (p.id,),
        )

    def _update(self, conn: sqlite3.Connection, p: Product) -> None:
        conn.execute(
            """UPDATE products SET
               name = ?, description = ?, imageUrls = ?, category = ?, price = ?,
               isNewArrival = ?, isInStock = ?, reviews = ?, isVisible = ?,
               version = version + 1
               WHERE id = ?""",
            _product_params(p) + (p.id,),
        )

    def _stored_version(self, conn: sqlite3.Connection, product_id: str) -> Optional[int]:
        row = conn.execute("SELECT version FROM products WHERE id = ?", (product_id,)).fetchone()
        return None if row is None else int(row["version"])

    def replace_products(self, products: Iterable[Product]) -> List[Product]:
        """Upsert every product by id in one transaction.

        Products missing from ``products`` are left alone. A product carrying
        a ``version`` that no longer matches storage rejects the whole batch.
        """
        batch = []
        seen = set()
        for p in products:
            if not p.id:
                p = replace(p, id=new_product_id())
            if p.id in seen:
                raise ValidationError(f'Duplicate product id "{p.id}".')
            seen.add(p.id)
            batch.append(p)

        with self.connect() as conn:
            for p in batch:
                self._check_category(conn, p.category)
                stored = self._stored_version(conn, p.id)
                if stored is not None and p.version is not None and p.version != stored:
                    raise ConflictError(
                        f'Product "{p.id}" was changed by someone else; reload and try again.'
                    )
                if stored is None:
                    self._insert(conn, p)
                else:
                    self._update(conn, p)
        return [self.get_product(p.id) for p in batch]

    def create_product(self, product: Product) -> Product:
        if not product.id:
            product = replace(product, id=new_product_id())
        with self.connect() as conn:
            self._check_category(conn, product.category)
            if self._stored_version(conn, product.id) is not None:
                raise ConflictError(f'Product "{product.id}" already exists.')
            self._insert(conn, product)
        return self.get_product(product.id)

    def update_product(self, product: Product) -> Product:
        """Full replace of one product; ``product.version`` is checked when set."""
        with self.connect() as conn:
            stored = self._stored_version(conn, product.id)
            if stored is None:
                raise NotFoundError(f'Product "{product.id}" not found.')
            if product.version is not None and product.version != stored:
                raise ConflictError(
                    f'Product "{product.id}" was changed by someone else; reload and try again.'
                )
            self._check_category(conn, product.category)
            self._update(conn, product)
        return self.get_product(product.id)

    def delete_product(self, product_id: str) -> None:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
            if not cur.rowcount:
                raise NotFoundError(f'Product "{product_id}" not found.')

    def add_review(self, product_id: str, review: Review) -> Product:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
            if row is None:
                raise NotFoundError(f'Product "{product_id}" not found.')
            product = _row_to_product(row).with_review(review)
            conn.execute(
                "UPDATE products SET reviews = ?, version = version + 1 WHERE id = ?",
                (json.dumps([r.to_dict() for r in product.reviews]), product_id),
            )
        return self.get_product(product_id)

    def count_products(self) -> int:
        with self.connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]

    # -------------------------
    # Sessions
    # -------------------------
    def load_session(self, sid: str) -> Optional[Dict[str, Any]]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT data, expires_at FROM sessions WHERE sid = ?", (sid,)
            ).fetchone()
        if row is None:
            return None
        if row["expires_at"] < time.time():
            self.delete_session(sid)
            return None
        try:
            data = json.loads(row["data"])
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def save_session(self, sid: str, data: Dict[str, Any], expires_at: float) -> None:
        with self.connect() as conn:
            conn.execute(
                """INSERT INTO sessions (sid, data, expires_at) VALUES (?, ?, ?)
                   ON CONFLICT(sid) DO UPDATE SET data = excluded.data,
                                                  expires_at = excluded.expires_at""",
                (sid, json.dumps(data), expires_at),
            )

    def delete_session(self, sid: str) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM sessions WHERE sid = ?", (sid,))

    def purge_expired_sessions(self) -> int:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM sessions WHERE expires_at < ?", (time.time(),))
            return cur.rowcount

import json
import sqlite3
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from common.constants import BEHAVIOR_TYPES, PATHS
from common.errors import UpstreamFailure
from common.utils import safe_read_csv, setup_logging

from recommenders.data_models import Product, UserBehavior

logger = setup_logging(__name__, PATHS["app_log_file"])

CATALOG_CSV_COLS = ["id", "name", "category", "price"]


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _format_ts(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return _parse_ts(str(value)).isoformat()


class Storage:
    """SQLite-backed catalog reader and behavior store."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()

    def _connect(self):
        return sqlite3.connect(self.db_path)

    def _init_db(self):
        types = ",".join(f"'{t}'" for t in BEHAVIOR_TYPES)
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS products (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        description TEXT DEFAULT '',
                        price REAL,
                        category TEXT,
                        brand TEXT,
                        tags TEXT DEFAULT '[]',
                        attributes TEXT DEFAULT '{}',
                        image_url TEXT DEFAULT '',
                        rating REAL DEFAULT 0,
                        review_count INTEGER DEFAULT 0,
                        created_at TEXT,
                        updated_at TEXT
                    )
                """)
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS behaviors (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        type TEXT NOT NULL CHECK(type IN ({types})),
                        product_id TEXT NOT NULL,
                        value REAL,
                        context TEXT DEFAULT '{{}}',
                        ts TEXT NOT NULL
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_behaviors_user ON behaviors (user_id)")
                conn.commit()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to initialize database {self.db_path}: {e}") from e

    # ===================================================================
    # Catalog
    # ===================================================================
    def upsert_products(self, products: Iterable[Product]) -> int:
        rows = [
            (
                p["id"],
                p.get("name", ""),
                p.get("description", ""),
                p.get("price"),
                p.get("category"),
                p.get("brand"),
                json.dumps(list(p.get("tags") or [])),
                json.dumps(p.get("attributes") or {}),
                p.get("image_url", ""),
                p.get("rating", 0.0),
                p.get("review_count", 0),
                _format_ts(p.get("created_at")),
                _format_ts(p.get("updated_at")),
            )
            for p in products
        ]
        try:
            with self._connect() as conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO products (id, name, description, price, category, brand, tags, attributes, "
                    "image_url, rating, review_count, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
                conn.commit()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to write products: {e}") from e
        return len(rows)

    def load_catalog_csv(self, filepath: str) -> int:
        """
        Seed the catalog from a CSV file. Tags are '|' separated, attributes a JSON object.
        Rows without a numeric price are skipped.
        """
        df = safe_read_csv(filepath)
        missing = [c for c in CATALOG_CSV_COLS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing columns in catalog CSV: {missing}")

        products: List[Product] = []
        for line_no, row in enumerate(df.to_dict(orient="records"), start=2):
            try:
                price = float(row["price"])
            except (TypeError, ValueError):
                logger.warning(f"Skipping catalog row {line_no} (id={row['id']!r}): invalid price {row['price']!r}")
                continue

            tags = [t.strip() for t in str(row.get("tags", "")).split("|") if t.strip()]
            attributes = json.loads(row["attributes"]) if row.get("attributes") else {}
            products.append(
                {
                    "id": str(row["id"]),
                    "name": str(row["name"]),
                    "description": str(row.get("description", "")),
                    "price": price,
                    "category": str(row["category"]),
                    "brand": str(row.get("brand", "")),
                    "tags": tags,
                    "attributes": attributes,
                    "image_url": str(row.get("image_url", "")),
                    "rating": float(row.get("rating") or 0.0),
                    "review_count": int(row.get("review_count") or 0),
                    "created_at": row.get("created_at") or None,
                    "updated_at": row.get("updated_at") or None,
                }
            )
        return self.upsert_products(products)

    def get_product(self, product_id: str) -> Optional[Product]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to read product {product_id}: {e}") from e
        return self._row_to_product(row) if row else None

    def get_products(self, category: Optional[str] = None) -> List[Product]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                if category is None:
                    rows = conn.execute("SELECT * FROM products ORDER BY rowid").fetchall()
                else:
                    rows = conn.execute(
                        "SELECT * FROM products WHERE category = ? ORDER BY rowid", (category,)
                    ).fetchall()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to read products: {e}") from e
        return [self._row_to_product(row) for row in rows]

    @staticmethod
    def _row_to_product(row) -> Product:
        return {
            "id": row["id"],
            "name": row["name"],
            "description": row["description"] or "",
            "price": row["price"],
            "category": row["category"],
            "brand": row["brand"],
            "tags": json.loads(row["tags"] or "[]"),
            "attributes": json.loads(row["attributes"] or "{}"),
            "image_url": row["image_url"] or "",
            "rating": row["rating"] or 0.0,
            "review_count": row["review_count"] or 0,
            "created_at": _parse_ts(row["created_at"]),
            "updated_at": _parse_ts(row["updated_at"]),
        }

    # ===================================================================
    # Behaviors
    # ===================================================================
    def append_user_behavior(self, user_id: str, behavior: UserBehavior) -> None:
        ts = behavior.get("timestamp") or datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO behaviors (user_id, type, product_id, value, context, ts) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        user_id,
                        behavior["type"],
                        behavior["product_id"],
                        behavior.get("value"),
                        json.dumps(behavior.get("context") or {}, default=str),
                        _format_ts(ts),
                    ),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to append behavior for user {user_id}: {e}") from e

    def get_user_behaviors(self, user_id: str) -> List[UserBehavior]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute("SELECT * FROM behaviors WHERE user_id = ? ORDER BY id", (user_id,)).fetchall()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to read behaviors for user {user_id}: {e}") from e
        return [self._row_to_behavior(row) for row in rows]

    def get_all_user_behaviors(self) -> Dict[str, List[UserBehavior]]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute("SELECT * FROM behaviors ORDER BY id").fetchall()
        except sqlite3.Error as e:
            raise UpstreamFailure(f"Unable to read behaviors: {e}") from e

        behaviors: Dict[str, List[UserBehavior]] = {}
        for row in rows:
            behaviors.setdefault(row["user_id"], []).append(self._row_to_behavior(row))
        return behaviors

    @staticmethod
    def _row_to_behavior(row) -> UserBehavior:
        return {
            "type": row["type"],
            "product_id": row["product_id"],
            "timestamp": _parse_ts(row["ts"]),
            "value": row["value"],
            "context": json.loads(row["context"] or "{}"),
        }

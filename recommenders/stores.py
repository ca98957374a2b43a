"""
In-memory catalog reader and behavior store.
Used by library callers and tests; the server wires the SQLite-backed storage instead.
"""

import copy
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .data_models import Product, UserBehavior


class InMemoryCatalog:
    """Catalog read model keyed by product id, preserving insertion order."""

    def __init__(self, products: Optional[Iterable[Product]] = None):
        self._products: Dict[str, Product] = {}
        for product in products or []:
            self.add_product(product)

    def add_product(self, product: Product) -> None:
        self._products[product["id"]] = product

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def get_products(self, category: Optional[str] = None) -> List[Product]:
        if category is None:
            return list(self._products.values())
        return [p for p in self._products.values() if p.get("category") == category]


class InMemoryBehaviorStore:
    """Append-only per-user behavior log."""

    def __init__(self, behaviors: Optional[Dict[str, Iterable[UserBehavior]]] = None):
        self._lock = threading.Lock()
        self._behaviors: Dict[str, List[UserBehavior]] = defaultdict(list)
        for user_id, user_behaviors in (behaviors or {}).items():
            self._behaviors[user_id].extend(user_behaviors)

    def get_user_behaviors(self, user_id: str) -> List[UserBehavior]:
        with self._lock:
            return list(self._behaviors.get(user_id, []))

    def append_user_behavior(self, user_id: str, behavior: UserBehavior) -> None:
        with self._lock:
            self._behaviors[user_id].append(copy.deepcopy(behavior))

    def get_all_user_behaviors(self) -> Dict[str, List[UserBehavior]]:
        with self._lock:
            return {user_id: list(items) for user_id, items in self._behaviors.items()}

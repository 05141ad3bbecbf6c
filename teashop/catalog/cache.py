"""Product cache - the last good product list, persisted in a durable slot."""
from typing import Iterable, Optional

from teashop.db import StorageKeys
from teashop.errors import MalformedPersistedState
from teashop.logging import get_logger
from teashop.services.models import Product, decode_products
from teashop.storage import KeyValueStore

logger = get_logger(__name__)


class ProductCache:
    """
    In-memory product list mirrored to ``store[key]``.

    The cart reads it to value lines; the reconciler writes every merged list
    into it before publishing.
    """

    def __init__(self, store: KeyValueStore, key: str = StorageKeys.PRODUCTS):
        self.store = store
        self.key = key
        self._products: list[Product] = self._load()

    def _load(self) -> list[Product]:
        try:
            raw = self.store.get_json(self.key, default=[])
        except MalformedPersistedState as e:
            logger.warning(f"Discarding unreadable product cache: {e.message}")
            return []
        if not isinstance(raw, list):
            logger.warning(f"Discarding product cache of type {type(raw).__name__}")
            return []
        return decode_products(raw)

    @property
    def products(self) -> list[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Optional[Product]:
        product_id = str(product_id)
        return next((p for p in self._products if p.id == product_id), None)

    def save(self, products: Iterable[Product]) -> list[Product]:
        """Replace the cached list and persist it before returning."""
        self._products = list(products)
        self.store.set_json(self.key, [p.to_dict() for p in self._products])
        return self.products

    def reload(self) -> list[Product]:
        """Re-read the persisted list (another writer may have replaced it)."""
        self._products = self._load()
        return self.products

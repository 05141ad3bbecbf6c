"""
Tombstone Ledger - recently deleted product ids.

A tombstone keeps a deleted product out of every incoming product list for a
grace window, so a stale snapshot arriving right after the delete cannot
resurrect it. Entries are ``{product_id: deletion time in epoch seconds}``.
"""
import time
from typing import Callable, Optional

from teashop.config import get_settings
from teashop.db import StorageKeys
from teashop.errors import MalformedPersistedState
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.storage import KeyValueStore

logger = get_logger(__name__)


class TombstoneLedger:
    """Time-bounded set of deleted product ids persisted under one slot."""

    def __init__(
        self,
        store: KeyValueStore,
        grace: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        key: str = StorageKeys.TOMBSTONES,
    ):
        self.store = store
        self.grace = grace if grace is not None else get_settings().tombstone_grace
        self.clock = clock
        self.key = key

    def _read(self) -> dict[str, float]:
        try:
            raw = self.store.get_json(self.key, default={})
        except MalformedPersistedState as e:
            logger.warning(f"Discarding unreadable tombstones: {e.message}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Discarding tombstones of type {type(raw).__name__}")
            return {}

        entries = {}
        for product_id, deleted_at in raw.items():
            if isinstance(deleted_at, bool) or not isinstance(deleted_at, (int, float)):
                continue
            entries[str(product_id)] = float(deleted_at)
        return entries

    def _write(self, entries: dict[str, float]) -> None:
        self.store.set_json(self.key, entries)

    def _is_live(self, deleted_at: float, now: float) -> bool:
        return now - deleted_at <= self.grace

    def record(self, product_id: str) -> None:
        """Mark a product as deleted now."""
        entries = self._read()
        entries[str(product_id)] = self.clock()
        self._write(entries)
        logger.debug(f"Tombstoned product {sanitize_id_for_logging(product_id)}")

    def forget(self, product_id: str) -> None:
        """Drop a tombstone (the delete it guarded was rolled back)."""
        entries = self._read()
        if entries.pop(str(product_id), None) is not None:
            self._write(entries)

    def is_active(self, product_id: str) -> bool:
        deleted_at = self._read().get(str(product_id))
        return deleted_at is not None and self._is_live(deleted_at, self.clock())

    def active_ids(self) -> set[str]:
        now = self.clock()
        return {pid for pid, deleted_at in self._read().items() if self._is_live(deleted_at, now)}

    def purge_expired(self) -> set[str]:
        """
        Remove expired entries from the persisted ledger.

        Returns:
            Ids that are still active after the purge
        """
        entries = self._read()
        now = self.clock()
        live = {pid: t for pid, t in entries.items() if self._is_live(t, now)}
        if len(live) != len(entries):
            self._write(live)
        return set(live)

"""
Durable key-value slots.

The cart, the product cache and the tombstone ledger each live in one slot.
Writes are synchronous: a mutation is persisted before the call that made it
returns. Listeners are told about every change, either made in this process
(``local``) or reported by another writer (``external``), so readers can
re-read the slot. Last write wins; there is no locking.
"""
import json
from typing import Any, Callable, Dict, List, Optional

from teashop.db import StorageKeys, get_redis_sync
from teashop.errors import MalformedPersistedState, RemoteUnavailable
from teashop.logging import get_logger

logger = get_logger(__name__)

ORIGIN_LOCAL = "local"
ORIGIN_EXTERNAL = "external"

# listener(key, origin)
ChangeListener = Callable[[str, str], None]


class KeyValueStore:
    """Base class for durable string slots with change notifications."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    # -- backend primitives ------------------------------------------------

    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, value: str) -> None:
        raise NotImplementedError

    def _remove(self, key: str) -> None:
        raise NotImplementedError

    # -- public API ----------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        return self._read(key)

    def set(self, key: str, value: str) -> None:
        self._write(key, value)
        self._emit(key, ORIGIN_LOCAL)

    def delete(self, key: str) -> None:
        self._remove(key)
        self._emit(key, ORIGIN_LOCAL)

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Read and decode a JSON slot.

        Raises:
            MalformedPersistedState: If the slot holds something undecodable
        """
        raw = self.get(key)
        if raw is None or raw == "":
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedPersistedState(f"Slot {key!r} is not valid JSON: {e}")

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns the matching unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify_external(self, key: str) -> None:
        """Report that another writer (another process or tab) changed ``key``."""
        self._emit(key, ORIGIN_EXTERNAL)

    def _emit(self, key: str, origin: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, origin)
            except Exception:
                logger.exception(f"Storage listener failed for key {key!r}")


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used for tests and single-process sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        super().__init__()
        self._data: Dict[str, str] = dict(initial or {})

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        self._data[key] = value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)


class RedisKeyValueStore(KeyValueStore):
    """Store backed by the sync Upstash Redis client.

    ``namespace`` prefixes every key so that sessions do not share slots.
    """

    def __init__(self, namespace: str = "shop", client=None) -> None:
        super().__init__()
        self.namespace = namespace
        self._redis = client  # Lazy initialization

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            try:
                self._redis = get_redis_sync()
            except ValueError as e:
                raise RemoteUnavailable(f"Redis not available: {e}")
        return self._redis

    def _full_key(self, key: str) -> str:
        return StorageKeys.namespaced(self.namespace, key)

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(self._full_key(key))
        except RemoteUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to read {key!r} from Redis: {e}")
            raise RemoteUnavailable(f"Storage unavailable: {e}")

    def _write(self, key: str, value: str) -> None:
        try:
            self.redis.set(self._full_key(key), value)
        except RemoteUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to write {key!r} to Redis: {e}")
            raise RemoteUnavailable(f"Storage unavailable: {e}")

    def _remove(self, key: str) -> None:
        try:
            self.redis.delete(self._full_key(key))
        except RemoteUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to delete {key!r} from Redis: {e}")
            raise RemoteUnavailable(f"Storage unavailable: {e}")

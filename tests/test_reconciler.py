"""Tests for product reconciliation across snapshot, fetch and event sources"""
from unittest.mock import AsyncMock

import pytest

from teashop.catalog.cache import ProductCache
from teashop.catalog.reconciler import ProductReconciler, reconcile_products
from teashop.db import StorageKeys
from teashop.errors import ProductNotFound, RemoteUnavailable, ShopError
from teashop.services.models import Product


def make_product(product_id, name, price=10):
    return Product(id=product_id, name=name, price=price)


def ids(products):
    return [p.id for p in products]


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def reconciler(product_cache, tombstones, sleep):
    reconciler = ProductReconciler(product_cache, tombstones, max_retries=3, base_delay=1, sleep=sleep)
    yield reconciler
    reconciler.close()


# ==================== MERGE PASS ====================

class TestReconcileProducts:
    def test_tombstoned_ids_are_dropped(self):
        incoming = [make_product("p1", "A"), make_product("p2", "B")]
        assert ids(reconcile_products(incoming, [], {"p2"})) == ["p1"]

    def test_duplicate_incoming_ids_keep_first(self):
        incoming = [make_product("p1", "A"), make_product("p1", "A2")]
        merged = reconcile_products(incoming, [], set())
        assert [p.name for p in merged] == ["A"]

    def test_local_product_matched_by_name_and_price(self):
        local = make_product("tmp-1", "Oolong", 50)
        incoming = [make_product("p9", "oolong", 50)]

        assert ids(reconcile_products(incoming, [local], set())) == ["p9"]

    def test_local_product_matched_by_unique_name(self):
        local = make_product("tmp-1", "Oolong", 50)
        incoming = [make_product("p9", "Oolong", 55)]

        assert ids(reconcile_products(incoming, [local], set())) == ["p9"]

    def test_ambiguous_name_keeps_local_product(self):
        local = make_product("tmp-1", "Oolong", 50)
        incoming = [make_product("p8", "Oolong", 55), make_product("p9", "Oolong", 60)]

        assert ids(reconcile_products(incoming, [local], set())) == ["tmp-1", "p8", "p9"]

    def test_unmatched_local_products_come_first(self):
        cached = [make_product("p1", "A"), make_product("local-5-ab", "New tea")]
        incoming = [make_product("p1", "A")]

        assert ids(reconcile_products(incoming, cached, set())) == ["local-5-ab", "p1"]

    def test_server_products_missing_from_incoming_are_dropped(self):
        cached = [make_product("p1", "A"), make_product("p2", "B")]
        incoming = [make_product("p1", "A")]

        assert ids(reconcile_products(incoming, cached, set())) == ["p1"]

    def test_tombstoned_local_product_is_dropped(self):
        cached = [make_product("tmp-1", "New tea")]
        assert reconcile_products([], cached, {"tmp-1"}) == []

    def test_idempotent(self):
        cached = [make_product("tmp-1", "New tea"), make_product("tmp-2", "Oolong", 50)]
        incoming = [make_product("p1", "A"), make_product("p9", "Oolong", 50)]

        once = reconcile_products(incoming, cached, set())
        twice = reconcile_products(incoming, once, set())

        assert ids(once) == ids(twice) == ["tmp-1", "p1", "p9"]


# ==================== SOURCES ====================

class TestSnapshot:
    def test_snapshot_replaces_cache_and_publishes(self, reconciler, product_cache):
        published = []
        reconciler.products.subscribe(published.append)

        merged = reconciler.apply_snapshot([{"id": "p1", "name": "Da Hong Pao", "price": 210}])

        assert ids(merged) == ["p1"]
        assert ids(product_cache.products) == ["p1"]
        assert ids(published[-1]) == ["p1"]
        assert reconciler.realtime_attached

    def test_invalid_records_are_skipped(self, reconciler):
        merged = reconciler.apply_snapshot([{"id": "p1", "name": "A"}, {"name": "no id"}, "junk"])
        assert ids(merged) == ["p1"]

    def test_stale_snapshot_after_delete_does_not_resurrect(
        self, reconciler, tombstones, clock, sample_products
    ):
        tombstones.record("p2")
        clock.advance(1)

        merged = reconciler.apply_snapshot(sample_products)

        assert "p2" not in ids(merged)

    def test_product_returns_after_grace(self, reconciler, tombstones, clock, sample_products, memory_store):
        tombstones.record("p2")
        clock.advance(121)

        merged = reconciler.apply_snapshot(sample_products)

        assert "p2" in ids(merged)
        assert memory_store.get_json(StorageKeys.TOMBSTONES) == {}


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_applies_fetch(self, reconciler):
        source = AsyncMock()
        source.fetch.return_value = [make_product("p1", "A")]

        assert ids(await reconciler.refresh(source)) == ["p1"]

    @pytest.mark.asyncio
    async def test_refresh_ignored_once_realtime_attached(self, reconciler):
        reconciler.apply_snapshot([{"id": "p1", "name": "A"}])
        source = AsyncMock()
        source.fetch.return_value = [make_product("p7", "Stale")]

        result = await reconciler.refresh(source)

        assert ids(result) == ["p1"]
        source.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_snapshot_during_fetch_wins(self, reconciler):
        source = AsyncMock()

        async def fetch():
            reconciler.apply_snapshot([{"id": "p1", "name": "A"}])
            return [make_product("p7", "Stale")]

        source.fetch.side_effect = fetch

        assert ids(await reconciler.refresh(source)) == ["p1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [RemoteUnavailable(), ProductNotFound(), ShopError("Bad request")])
    async def test_failed_fetch_keeps_cache(self, reconciler, error):
        source = AsyncMock()
        source.fetch.side_effect = error

        assert ids(await reconciler.refresh(source)) == ["p1", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_refresh_respects_tombstones(self, reconciler, tombstones):
        tombstones.record("p1")
        source = AsyncMock()
        source.fetch.return_value = [make_product("p1", "A"), make_product("p2", "B")]

        assert ids(await reconciler.refresh(source)) == ["p2"]


class TestEvents:
    def test_created_event_prepends(self, reconciler):
        changed = reconciler.apply_event({
            "event": "product.created",
            "product_id": "p4",
            "product": {"id": "p4", "name": "Bai Mu Dan", "price": 120},
        })

        assert changed
        assert ids(reconciler.products.value) == ["p4", "p1", "p2", "p3"]

    def test_updated_event_replaces_in_place(self, reconciler):
        reconciler.apply_event({
            "event": "product.updated",
            "product_id": "p2",
            "product": {"id": "p2", "name": "Gaiwan", "price": 40, "unit": "piece"},
        })

        products = reconciler.products.value
        assert ids(products) == ["p1", "p2", "p3"]
        assert products[1].price == 40

    def test_deleted_event_removes_and_tombstones(self, reconciler, tombstones):
        assert reconciler.apply_event({"event": "product.deleted", "product_id": "p2"})

        assert ids(reconciler.products.value) == ["p1", "p3"]
        assert tombstones.is_active("p2")

    def test_created_event_for_tombstoned_product_is_ignored(self, reconciler, tombstones):
        tombstones.record("p4")

        changed = reconciler.apply_event({
            "event": "product.created",
            "product": {"id": "p4", "name": "Bai Mu Dan"},
        })

        assert not changed
        assert "p4" not in ids(reconciler.products.value)

    def test_events_ignored_while_attached(self, reconciler):
        reconciler.apply_snapshot([{"id": "p1", "name": "A"}])

        assert not reconciler.apply_event({"event": "product.deleted", "product_id": "p1"})
        assert ids(reconciler.products.value) == ["p1"]

    def test_unknown_event_is_ignored(self, reconciler):
        assert not reconciler.apply_event({"event": "product.renamed", "product_id": "p1"})


class TestWatch:
    @pytest.mark.asyncio
    async def test_retries_with_backoff_then_degrades(self, reconciler, sleep):
        subscriptions = []

        class FailingFeed:
            def subscribe(self, on_change, on_error, on_event=None):
                subscriptions.append(on_event)
                on_error(RemoteUnavailable())
                return lambda: None

        await reconciler.watch(FailingFeed())

        assert len(subscriptions) == 4
        assert sleep.delays == [1, 2, 4]
        assert reconciler.degraded.value is True
        assert not reconciler.realtime_attached
        assert ids(reconciler.products.value) == ["p1", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_good_snapshot_resets_attempts(self, reconciler, sleep):
        calls = 0

        class FlakyFeed:
            def subscribe(self, on_change, on_error, on_event=None):
                nonlocal calls
                calls += 1
                if calls == 3:
                    on_change([{"id": "p1", "name": "A"}])
                on_error(RemoteUnavailable())
                return lambda: None

        await reconciler.watch(FlakyFeed())

        assert sleep.delays == [1, 2, 1, 2, 4]
        assert reconciler.degraded.value is True

    @pytest.mark.asyncio
    async def test_unsubscribes_after_failure(self, reconciler):
        unsubscribed = []

        class FailingFeed:
            def subscribe(self, on_change, on_error, on_event=None):
                on_error(RemoteUnavailable())
                return lambda: unsubscribed.append(True)

        await reconciler.watch(FailingFeed())

        assert len(unsubscribed) == 4

    def test_snapshot_clears_degraded(self, reconciler):
        reconciler.degraded.publish(True)

        reconciler.apply_snapshot([{"id": "p1", "name": "A"}])

        assert reconciler.degraded.value is False


class TestExternalChanges:
    def test_external_write_is_republished(self, reconciler, memory_store):
        published = []
        reconciler.products.subscribe(published.append)

        memory_store.set_json(StorageKeys.PRODUCTS, [{"id": "p5", "name": "From another tab"}])
        memory_store.notify_external(StorageKeys.PRODUCTS)

        assert ids(published[-1]) == ["p5"]

    def test_local_write_is_not_reloaded(self, reconciler, memory_store):
        published = []
        reconciler.products.subscribe(published.append)

        memory_store.set_json(StorageKeys.PRODUCTS, [])

        assert len(published) == 1

    def test_malformed_cache_starts_empty(self, memory_store, tombstones):
        memory_store.set(StorageKeys.PRODUCTS, "not json")

        reconciler = ProductReconciler(ProductCache(memory_store), tombstones)

        assert reconciler.products.value == []
        reconciler.close()

"""Catalog package - product cache, tombstones, sources and reconciliation."""
from teashop.catalog.admin import CatalogAdmin
from teashop.catalog.cache import ProductCache
from teashop.catalog.client import CatalogClient
from teashop.catalog.feeds import StreamProductFeed
from teashop.catalog.reconciler import ProductReconciler, reconcile_products
from teashop.catalog.tombstones import TombstoneLedger

__all__ = [
    "CatalogAdmin",
    "CatalogClient",
    "ProductCache",
    "ProductReconciler",
    "StreamProductFeed",
    "TombstoneLedger",
    "reconcile_products",
]

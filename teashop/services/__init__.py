# Services Module
from .models import Order, OrderLine, PriceTier, Product, Unit
from .pricing import line_total, unit_price

__all__ = ["Order", "OrderLine", "PriceTier", "Product", "Unit", "line_total", "unit_price"]

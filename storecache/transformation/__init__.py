"""
Data Transformation Module
"""
from .normalizers import normalize_products, normalize_order, normalize_line_items
from .aggregations import compute_sales_windows

__all__ = [
    "normalize_products",
    "normalize_order",
    "normalize_line_items",
    "compute_sales_windows",
]

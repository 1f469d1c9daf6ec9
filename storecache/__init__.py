"""
Storefront lookup service: a local cache of a Shopify store's catalog and
order history with barcode lookups and sales analytics.
"""

__version__ = "1.0.0"

"""
Storefront Lookup API
"""

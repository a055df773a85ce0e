"""
Reference Catalog
Local replica, TTL reference cache and hybrid search for estimate catalogs.
"""

__version__ = "0.1.0"

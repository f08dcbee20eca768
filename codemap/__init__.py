"""
codemap - content-addressed payload storage over Redis and PostgreSQL.
"""

__version__ = "1.0.0"

from codemap.addressing import address_of, is_content_key

__all__ = ["__version__", "address_of", "is_content_key"]

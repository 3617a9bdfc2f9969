"""
Utilities package for EdConnect Records.

Exports shared helpers for logging and slug generation.
Keep this package lightweight and free of storage logic.
"""

from edconnect_records.utils.logging import configure_logging, get_logger
from edconnect_records.utils.slug import slugify

__all__ = [
    "configure_logging",
    "get_logger",
    "slugify",
]

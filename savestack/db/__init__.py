"""Database package for SaveStack."""

from savestack.db.models import AISecret

__all__ = [
    "AISecret",
]

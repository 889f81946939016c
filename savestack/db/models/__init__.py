"""SQLAlchemy models for the SaveStack secret store."""

from savestack.db.models.ai_secret import AISecret

__all__ = [
    "AISecret",
]

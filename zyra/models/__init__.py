"""SQLAlchemy models: re-export all."""

from models.user import UserProfile, APIKey  # noqa: F401

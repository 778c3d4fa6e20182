"""
Database Models
===============

SQLAlchemy ORM models for all database entities.

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations.
"""

from app.models.subscription import (
    AnonymousPurchase,
    Subscription,
    SubscriptionStatus,
)

__all__ = [
    "AnonymousPurchase",
    "Subscription",
    "SubscriptionStatus",
]

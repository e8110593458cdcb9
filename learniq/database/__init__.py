"""Database schema and initialization for LearnIQ."""

from learniq.database.base import Base, ModelBase, metadata

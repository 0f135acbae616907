"""Persistence layer: declarative base, engine wrapper and query specs."""

from .base import Base
from .database import Database

__all__ = ["Base", "Database"]

"""
Database Package - Infrastructure Layer

This package contains database client implementations.
"""

from .mongo_database import MongoDatabase, transient_errors

__all__ = ["MongoDatabase", "transient_errors"]

"""
Database module for Listing Wizard
SQL persistence for the key-value store
"""
from .base import Base
from .engine import create_db_engine, create_session_factory
from .models import KeyValueRecord

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "KeyValueRecord",
]

"""
Database Module
"""
from .connection import (
    build_engine,
    init_database,
    close_database,
    get_engine,
    execute_statement,
    fetch_all,
)
from .models import Base

__all__ = [
    "build_engine",
    "init_database",
    "close_database",
    "get_engine",
    "execute_statement",
    "fetch_all",
    "Base",
]

"""
Serving Module
"""
from .api.main import create_app

__all__ = ["create_app"]

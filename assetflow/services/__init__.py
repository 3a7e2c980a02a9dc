"""Service modules - Read-side business logic"""
from .query_service import QueryService

__all__ = [
    "QueryService",
]

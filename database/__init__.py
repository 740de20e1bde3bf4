"""
Database package initialization.
"""

from .repository import ContactRepository, TaskRepository
from .supabase_client import get_supabase_client

__all__ = ["ContactRepository", "TaskRepository", "get_supabase_client"]

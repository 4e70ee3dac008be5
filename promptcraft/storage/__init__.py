"""Prompt repository backends."""

from .filesystem import FileSystemPromptRepository, slugify
from .postgres import PostgresPromptRepository
from .sqlite import SQLitePromptRepository

__all__ = [
    "FileSystemPromptRepository",
    "PostgresPromptRepository",
    "SQLitePromptRepository",
    "slugify",
]

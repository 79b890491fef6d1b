"""Data layer utilities for loading story JSON files."""

from .errors import DataError, DataLoadError, DataReferenceError, DataValidationError
from .paths import get_repo_root, get_stories_path

__all__ = [
    "DataError",
    "DataLoadError",
    "DataReferenceError",
    "DataValidationError",
    "get_repo_root",
    "get_stories_path",
]

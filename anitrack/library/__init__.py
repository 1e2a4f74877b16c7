"""
Library module for anitrack.

    - models: LibraryEntry
    - store: LibraryStore, local CRUD and per-status ordering
"""

from anitrack.library.models import LibraryEntry
from anitrack.library.store import LibraryStore

__all__ = [
    "LibraryEntry",
    "LibraryStore",
]

"""
Adapters layer - Practice data sources for the search service.
"""

from .snapshot_client import PracticeSnapshot, SnapshotPracticeClient

__all__ = ["PracticeSnapshot", "SnapshotPracticeClient"]

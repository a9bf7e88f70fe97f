"""
Trail sync: client-side generation tracking and progress aggregation for
personalized language-learning trails.
"""

from trailsync.client import TrailClient
from trailsync.store import TrailStore, TrailStoreState

__all__ = ["TrailClient", "TrailStore", "TrailStoreState"]

"""
Holder Tracker package initializer.

This package exposes the pipeline entry points ``build_snapshot`` and
``HolderTracker`` for external usage.  Other internal modules (e.g. API)
should be imported explicitly from their respective files.
"""

from .holder_snapshot import build_snapshot  # noqa: F401
from .tracker import HolderTracker  # noqa: F401

__all__ = ["build_snapshot", "HolderTracker"]

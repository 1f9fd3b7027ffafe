"""
Core drift detection pipeline: structural analysis, snapshots, drift
detection, usage collection and priority scoring.
"""

from .engine import DriftEngine
from .errors import DocDriftError, ProjectRootNotFoundError

__all__ = ["DriftEngine", "DocDriftError", "ProjectRootNotFoundError"]

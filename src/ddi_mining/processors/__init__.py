"""
Processors module for DDI mining.
"""

from ddi_mining.processors.progress_tracker import ProgressTracker

__all__ = [
    "ProgressTracker",
]

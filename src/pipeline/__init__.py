"""Session-level components: expansion progress tracking and the graph session store.

``GraphSessionStore`` is imported from ``src.pipeline.session_store``
directly; it depends on the expansion engine, which itself imports the
progress tracker from this package.
"""

from src.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "ProgressTracker",
]

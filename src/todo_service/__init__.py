"""
Todo Service

Minimal task-tracking HTTP service backed by SQLite.
"""

__version__ = "1.0.0"

"""FastAPI service for TubeNote.

This package provides REST API endpoints for accounts, saved YouTube videos
and timestamped notes.
"""

__version__ = "1.0.0"

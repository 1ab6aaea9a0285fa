"""FastAPI dependency injection utilities.

Provides shared dependencies for API routes, configured by app factory.
"""

from spirestats.collector.library import RunLibrary


def get_library() -> RunLibrary:
    """Dependency injection for the run library - set by app factory.

    This function is replaced by app.py's create_app() with an actual
    library instance via dependency_overrides.

    Raises:
        NotImplementedError: If not configured (should never happen in production)
    """
    raise NotImplementedError("Run library not configured")

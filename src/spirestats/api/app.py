"""FastAPI application factory."""

from collections import deque

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spirestats.api import dependencies
from spirestats.api.routes import runs, settings, stats, watch
from spirestats.api.schemas import CacheInfoResponse, StatusResponse
from spirestats.collector.library import RunLibrary
from spirestats.version import __version__

# Runs reported by the watcher and not yet fetched by a client
WATCH_EVENT_BUFFER = 256


def create_app(library: RunLibrary) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        library: Run library shared by every route

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="SpireStats API",
        description="Local run history and card/relic statistics",
        version=__version__,
    )

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Dependency override for library injection
    def get_library() -> RunLibrary:
        return library

    app.dependency_overrides[dependencies.get_library] = get_library

    # Include routers
    app.include_router(runs.router)
    app.include_router(stats.router)
    app.include_router(settings.router)
    app.include_router(watch.router)

    # The API is the watcher's single subscriber
    watch_events: deque = deque(maxlen=WATCH_EVENT_BUFFER)
    library.on_new_run_detected(watch_events.append)

    app.state.library = library
    app.state.watch_events = watch_events

    @app.get("/api/status", response_model=StatusResponse, tags=["status"])
    def get_status() -> StatusResponse:
        """Get server status."""
        status = library.status()
        return StatusResponse(
            status="ok",
            version=__version__,
            run_count=status["run_count"],
            db_path=status["db_path"],
            run_folder=status["run_folder"],
            watching=status["watching"],
            watched_path=status["watched_path"],
            cache=CacheInfoResponse(**status["cache"]),
        )

    return app

"""
Routers aggregator for FastAPI app.

This package re-exports the routers from the top-level route modules.
We use absolute imports relative to the backend source root (not package
relative) so it works when running the app directly from the backend folder
or inside a container where the working directory is the app root.
"""

from mod_routes import router as mod_router  # Installed mods, browsing, provider settings
from health_routes import router as health_router  # Health checks

__all__ = [
    "mod_router",
    "health_router",
]

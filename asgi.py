"""
asgi.py -- ASGI entry point for AuthKeeper.

Run with:  uvicorn asgi:app --reload

api/main.py assembles the application; this module only exposes it under the
conventional name so process managers do not need to know the layout.
"""

from api.main import app

__all__ = ["app"]

"""
asgi.py -- ASGI entry point for authn-password.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers point at a stable module
path while the application assembly stays inside api/.
"""

from api.main import app

__all__ = ["app"]

"""
asgi.py -- ASGI entry point for the reading-log API.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]

"""
asgi.py -- ASGI entry point for the portal auth service.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]

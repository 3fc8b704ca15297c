"""
asgi.py -- ASGI entry point for authcore.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 8000

Kept separate from api/main.py so process managers and tests import the app
from one stable path.
"""

from api.main import app

__all__ = ["app"]

"""
asgi.py -- ASGI entry point for Bech-Do.

api/main.py builds the complete application; this module only gives servers
a stable import path that does not depend on the api/ package layout.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]

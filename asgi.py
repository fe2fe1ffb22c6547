"""
asgi.py -- ASGI entry point for the enrollment portal.

The application is assembled in api/main.py; this module only re-exports it
so deployment commands do not depend on the package layout.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]

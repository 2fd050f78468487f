"""
asgi.py -- ASGI entry point for the LostFound auth service.

Builds the application from environment settings. Tests build their own app
with api.main.create_app() instead of importing this module, so importing it
is the only thing that opens the configured database.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()

"""
ASGI entrypoint: expose `app` for process managers / deployments.

En production, un process manager (ex: gunicorn + uvicorn workers) importe `marketplace.asgi:app`.
Toute la configuration FastAPI est centralisée dans marketplace.app.
"""

from marketplace.app import app

__all__ = ["app"]

"""ASGI entrypoint: `uvicorn physiohub.api.app:app` (role from APP_ROLE)."""

from .factory import create_app

app = create_app()

"""ASGI entry point: uvicorn warelay.api.app:app"""

from .factory import create_app

app = create_app()

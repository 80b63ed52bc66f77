"""FastAPI application and routes."""

from process_engine.api.app import create_app
from process_engine.api.routes import router

__all__ = ["create_app", "router"]

"""Sandbox API FastAPI application."""

from .main import create_app, create_app_from_env
from .settings import SandboxApiSettings

__all__ = ["create_app", "create_app_from_env", "SandboxApiSettings"]

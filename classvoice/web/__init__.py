"""Web control surface."""

from .api import create_app, set_service_instance

__all__ = ["create_app", "set_service_instance"]

"""Front-end serving."""

from .server import setup_public_routes

__all__ = ["setup_public_routes"]

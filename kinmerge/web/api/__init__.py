"""HTTP API."""

from .main import app, get_service

__all__ = ['app', 'get_service']

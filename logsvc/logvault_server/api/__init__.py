"""
API module for LogVault - the HTTP transport.

Routes hand raw path and body strings to the LogService and encode its
results; they never parse or validate values themselves.
"""

from .app import create_app
from .routes import router

__all__ = [
    "create_app",
    "router",
]

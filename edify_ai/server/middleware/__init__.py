"""
Middleware modules for the Edify AI server.

This package contains custom middleware for request timing and logging.
"""

from .logfire_middleware import LogfireMiddleware

__all__ = ["LogfireMiddleware"]

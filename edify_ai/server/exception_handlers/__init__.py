"""
Exception handlers for the Edify AI server.

This package renders every error as a JSON ``{"error": ...}`` body and
provides a setup function to register the handlers with the application.
"""

from .global_handler import setup_exception_handlers, status_for_error_message

__all__ = ["setup_exception_handlers", "status_for_error_message"]

"""Persistence core for a library-management application."""

__version__ = "0.1.0"

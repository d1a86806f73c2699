"""Routers package."""

from . import console, health, servers, system

__all__ = ["console", "health", "servers", "system"]

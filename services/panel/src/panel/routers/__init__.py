"""Routers package."""

from . import backups, console, health, locations, nodes, remote, servers

__all__ = ["backups", "console", "health", "locations", "nodes", "remote", "servers"]

"""Shared library for the gameplane panel and node agent."""

from .redis import ConsolePubSub

__all__ = ["ConsolePubSub"]

"""Gameplane node agent: supervises game-server containers on one machine."""

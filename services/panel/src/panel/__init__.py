"""Gameplane control plane: inventory, placement and server lifecycle."""

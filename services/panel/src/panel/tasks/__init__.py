"""Background tasks run inside the panel process."""

from .status_sync import status_from_container_state, sync_all_nodes, sync_node

__all__ = ["status_from_container_state", "sync_all_nodes", "sync_node"]

"""FastAPI dependencies: services, process-wide singletons and node auth."""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.redis import ConsolePubSub

from .config import get_settings
from .database import get_async_session
from .inventory import InventoryService
from .lifecycle import LifecycleOrchestrator
from .locks import ServerLocks
from .models import Node
from .transport import HttpNodeTransport, NodeTransport

# Process-wide; closed in the app lifespan
server_locks = ServerLocks()
_transport: HttpNodeTransport | None = None
_console: ConsolePubSub | None = None


def get_transport() -> NodeTransport:
    global _transport
    if _transport is None:
        _transport = HttpNodeTransport(timeout=get_settings().node_request_timeout)
    return _transport


def get_server_locks() -> ServerLocks:
    return server_locks


async def get_console() -> ConsolePubSub:
    global _console
    if _console is None:
        _console = ConsolePubSub(redis_url=get_settings().redis_url)
    await _console.connect()
    return _console


async def close_singletons() -> None:
    global _transport, _console
    if _transport is not None:
        await _transport.close()
        _transport = None
    if _console is not None:
        await _console.close()
        _console = None


def get_inventory(db: AsyncSession = Depends(get_async_session)) -> InventoryService:
    return InventoryService(db)


def get_lifecycle(
    db: AsyncSession = Depends(get_async_session),
    transport: NodeTransport = Depends(get_transport),
    locks: ServerLocks = Depends(get_server_locks),
) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(db, transport, locks)


async def get_authenticated_node(
    authorization: str = Header(..., alias="Authorization"),
    inventory: InventoryService = Depends(get_inventory),
) -> Node:
    """Authenticate an agent callback by `Bearer <token_id>.<token>`.

    Raises 403 if the credential does not match a node.
    """
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credential:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Bearer credential required"
        )
    node = await inventory.authenticate_node(credential.strip())
    if node is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid node credential")
    return node

"""FastAPI dependencies: objects built in the lifespan and token auth."""

import hmac

from fastapi import Depends, HTTPException, Query, status
from fastapi.requests import HTTPConnection

from shared.redis import ConsolePubSub

from .backups import BackupArchiver
from .config import AgentSettings
from .manager import ServerManager
from .panel_client import PanelClient


def get_settings(conn: HTTPConnection) -> AgentSettings:
    return conn.app.state.settings


def get_manager(conn: HTTPConnection) -> ServerManager:
    return conn.app.state.manager


def get_panel(conn: HTTPConnection) -> PanelClient:
    return conn.app.state.panel


def get_archiver(conn: HTTPConnection) -> BackupArchiver:
    return conn.app.state.archiver


def get_console(conn: HTTPConnection) -> ConsolePubSub:
    return conn.app.state.console


def token_matches(presented: str | None, settings: AgentSettings) -> bool:
    """Accept `Bearer <token>` or the raw token, compared in constant time."""
    if not presented:
        return False
    scheme, _, credential = presented.partition(" ")
    if credential and scheme.lower() == "bearer":
        presented = credential.strip()
    return hmac.compare_digest(presented.encode(), settings.token.encode())


async def require_token(
    conn: HTTPConnection, settings: AgentSettings = Depends(get_settings)
) -> None:
    if not token_matches(conn.headers.get("Authorization"), settings):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def websocket_token_ok(
    conn: HTTPConnection,
    token: str | None = Query(default=None),
    settings: AgentSettings = Depends(get_settings),
) -> bool:
    """Browsers cannot set headers on a WebSocket, so `?token=` is accepted too."""
    return token_matches(conn.headers.get("Authorization"), settings) or token_matches(
        token, settings
    )

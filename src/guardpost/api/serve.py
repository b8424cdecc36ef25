"""Development server for ``python -m guardpost serve``.

Builds the authorization server from GUARDPOST_* settings with in-memory
services and serves it with uvicorn. Not meant for production: every record
except issued tokens lives in process memory.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from guardpost.api.router import create_router
from guardpost.config import Settings, get_settings
from guardpost.context import ServerContext, Services
from guardpost.models import Client, User
from guardpost.server import AuthorizationServer, build_authorization_server
from guardpost.storage import MemoryStore

logger = logging.getLogger(__name__)

DEMO_CLIENT_ID = "demo-client"
DEMO_CLIENT_SECRET = "demo-secret"
DEMO_USER = "demo"
DEMO_PASSWORD = "demo"


def seed_demo(store: MemoryStore, settings: Settings) -> None:
    """Register a confidential demo client and a demo user."""
    store.add_client(
        Client(
            client_id=DEMO_CLIENT_ID,
            client_name="Demo Client",
            client_secret=DEMO_CLIENT_SECRET,
            redirect_uris=[settings.url_for("/callback")],
            grant_types=list(settings.grant_types),
            response_types=list(settings.response_types),
            scopes=list(settings.scopes),
            id_token_signed_response_alg="RS256",
        )
    )
    store.add_user(
        User(
            user_id=DEMO_USER,
            username=DEMO_USER,
            claims={"name": "Demo User", "email": "demo@example.com", "email_verified": True},
        ),
        password=DEMO_PASSWORD,
    )
    logger.info("Seeded client %s and user %s", DEMO_CLIENT_ID, DEMO_USER)


async def _cleanup_loop(store: MemoryStore, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        store.cleanup_expired()


def _store_lifespan(store: MemoryStore, interval: int):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Purge expired records at startup and every *interval* seconds."""
        store.cleanup_expired()
        task = asyncio.create_task(_cleanup_loop(store, interval))
        try:
            yield
        finally:
            task.cancel()

    return lifespan


def create_app(
    server: AuthorizationServer | None = None,
    demo: bool = False,
    store: MemoryStore | None = None,
) -> FastAPI:
    """Build a FastAPI application around *server* (or a default in-memory one).

    When the records live in a MemoryStore (*store*, or the one created here),
    expired codes, grants, tokens and assertion ids are purged periodically.
    """
    if server is None:
        settings = get_settings()
        store = store or MemoryStore()
        if demo:
            seed_demo(store, settings)
        context = ServerContext.create(settings, services=Services.in_memory(settings, store))
        server = build_authorization_server(context)

    app = FastAPI(
        title="guardpost",
        description="OAuth 2.0 / OpenID Connect authorization server",
        version="0.1.0",
        lifespan=_store_lifespan(store, server.context.settings.cleanup_interval) if store is not None else None,
    )
    app.state.authorization_server = server
    app.include_router(create_router(server))
    return app


def create_demo_app() -> FastAPI:
    return create_app(demo=True)


def run_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    dev: bool = False,
    demo: bool = False,
) -> None:
    """Start the development server."""
    import uvicorn

    logger.info("Discovery: http://%s:%d/.well-known/openid-configuration", host, port)
    factory = "guardpost.api.serve:create_demo_app" if demo else "guardpost.api.serve:create_app"
    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            factory,
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        uvicorn.run(create_app(demo=demo), host=host, port=port)

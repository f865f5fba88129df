from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from fanplayer.core.config import Config
from fanplayer.domain.playback.engine import PlaybackEngine
from fanplayer.domain.providers.spotify.auth import AccessTokenProvider

from .routers import player
from .sync_manager import SyncManager


def create_app(
    engine: PlaybackEngine,
    token_provider: Optional[AccessTokenProvider] = None,
    config: Optional[Config] = None,
) -> FastAPI:
    """Build the control surface around an engine.

    The lifespan starts the token provider and engine and closes both on
    shutdown; every engine change is pushed to /api/player/live clients.
    """
    config = config or Config()
    sync_manager = SyncManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        unsubscribe = engine.subscribe(sync_manager.on_snapshot)
        if token_provider is not None:
            token_provider.subscribe(engine.set_credential)
            await token_provider.start()
        await engine.start()
        logger.info("Playback service started")
        try:
            yield
        finally:
            unsubscribe()
            if token_provider is not None:
                await token_provider.close()
            await sync_manager.close()
            await engine.close()
            logger.info("Playback service stopped")

    app = FastAPI(title="Fanplayer Playback API", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.sync_manager = sync_manager
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(player.router, prefix="/api/player", tags=["player"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "activeBackend": engine.active_backend.value}

    return app

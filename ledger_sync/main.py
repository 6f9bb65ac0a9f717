import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledger_sync import __version__
from ledger_sync.core.config import Config, config
from ledger_sync.core.context import SyncContext
from ledger_sync.core.error_handler import global_exception_handler
from ledger_sync.modules.drafts.router import router as drafts_router
from ledger_sync.modules.store.router import router as storage_router
from ledger_sync.modules.sync.router import router as sync_router

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

origins = [
    "http://localhost",
    "http://localhost:5173",
    "http://localhost:8080",
]


def create_app(settings: Optional[Config] = None, context: Optional[SyncContext] = None) -> FastAPI:
    """
    Build the local sync API.

    Args:
        settings: Configuration (default: environment/.env)
        context: Prebuilt SyncContext, mostly for tests (default: built at startup)
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting ledger sync agent...")
        ctx = context or await SyncContext.build(settings)
        app.state.sync = ctx
        await ctx.start()
        try:
            yield
        finally:
            await ctx.close()
            logger.info("Ledger sync agent stopped")

    app = FastAPI(
        title="Ledger Sync API",
        description="Offline drafts, cache and sync queue for the ledger web app",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(Exception, global_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sync_router, prefix="/api")
    app.include_router(drafts_router, prefix="/api")
    app.include_router(storage_router, prefix="/api")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()

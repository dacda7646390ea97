"""
FastAPI application for voice capture.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

import engine
from engine.config import EngineConfig, load_config
from engine.core import NoteStore, Structurer, Transcriber, build_structurer, build_transcriber

from .capture_routes import CaptureServices, router as capture_router
from .database import SqlNoteStore, init_db

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


# ============================================================================
# APP SETUP
# ============================================================================

def create_app(
    config: Optional[EngineConfig] = None,
    transcriber: Optional[Transcriber] = None,
    structurer: Optional[Structurer] = None,
    note_store: Optional[NoteStore] = None,
) -> FastAPI:
    """Build the application.

    Collaborators that are not injected are created from the configuration
    at startup (providers from API keys, the note store from DATABASE_URL).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Voice capture service starting up...")
        cfg = config or load_config()

        if transcriber is None or structurer is None:
            cfg.validate()

        store = note_store
        if store is None:
            logger.info("📊 Initializing database...")
            init_db()
            store = SqlNoteStore()

        app.state.capture = CaptureServices(
            config=cfg,
            transcriber=transcriber or build_transcriber(cfg),
            structurer=structurer or build_structurer(cfg),
            note_store=store,
        )
        logger.info(
            f"🎙️  Ready | transcription={cfg.transcription_engine} "
            f"| structuring={cfg.structuring_engine} | timeout={cfg.request_timeout_seconds:g}s"
        )
        yield
        logger.info("👋 Voice capture service shutting down...")

    app = FastAPI(
        title="Voice Capture",
        description="Turn a spoken utterance into notes, tasks, reminders or a reflection",
        version=engine.__version__,
        lifespan=lifespan,
    )
    app.include_router(capture_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )

"""
ExamPrep Backend - Main FastAPI Application

CAIE IGCSE study and mock-exam service backed by Google Gemini.
Version: 1.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient

from examprep.config.settings import settings
from examprep.routes.exam_routes import create_exam_routes
from examprep.routes.tutor_routes import create_tutor_routes
from examprep.services import ExamContracts, GeminiOracle, Oracle, SessionRegistry, TutorService
from examprep.store import BlobStore, FileBlobStore, MemoryBlobStore, MongoBlobStore, init_attempt_store

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _build_blob_store() -> BlobStore:
    """Pick the attempt-history back-end from settings."""
    if settings.ATTEMPT_STORE == "mongo":
        client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            maxPoolSize=50,
            serverSelectionTimeoutMS=5000
        )
        return MongoBlobStore(client[settings.DATABASE_NAME])
    if settings.ATTEMPT_STORE == "file":
        return FileBlobStore(settings.ATTEMPT_STORE_DIR)
    return MemoryBlobStore()


def create_app(
    oracle: Optional[Oracle] = None,
    blobs: Optional[BlobStore] = None,
    tick_interval: float = 1.0
) -> FastAPI:
    """
    Build the application.

    `oracle` and `blobs` default to Gemini and the configured store;
    tests pass their own.
    """
    injected = oracle is not None
    oracle = oracle or GeminiOracle()
    blobs = blobs or _build_blob_store()

    store = init_attempt_store(blobs, settings.ATTEMPT_STORE_KEY)
    contracts = ExamContracts(oracle)
    registry = SessionRegistry(contracts, store, tick_interval=tick_interval)
    tutor = TutorService(contracts, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan context manager for startup/shutdown."""
        # STARTUP
        logger.info("🚀 ExamPrep Backend Starting Up...")
        try:
            if not injected:
                settings.validate()
                logger.info("✅ Settings validated")

            if isinstance(blobs, MongoBlobStore):
                await blobs.db.client.server_info()
                await blobs.col.create_index("key", unique=True)
                logger.info(f"✅ Connected to MongoDB: {settings.DATABASE_NAME}")

            logger.info(f"✅ Attempt store ready ({type(blobs).__name__}, key '{store.key}')")
        except Exception as e:
            logger.error(f"❌ Startup failed: {e}")
            raise

        yield

        # SHUTDOWN
        logger.info("🛑 Shutting down...")
        registry.close_all()
        if isinstance(blobs, MongoBlobStore):
            blobs.db.client.close()
            logger.info("✅ Database connection closed")

    app = FastAPI(
        title="ExamPrep API",
        description="CAIE IGCSE study guides, tutoring and timed mock exams",
        version=VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.registry = registry
    app.state.tutor = tutor

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": VERSION,
            "attemptStore": type(blobs).__name__,
            "activeSessions": len(registry)
        }

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": "ExamPrep",
            "version": VERSION,
            "docs": "/docs",
            "health": "/api/health"
        }

    app.include_router(create_exam_routes(registry))
    app.include_router(create_tutor_routes(tutor))
    logger.info("✅ Routes registered")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )

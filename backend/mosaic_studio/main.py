import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.engine import Engine

from mosaic_studio.api.routes import router
from mosaic_studio.core.settings import settings
from mosaic_studio.db import session as db
from mosaic_studio.services.compositor import MosaicCompositor
from mosaic_studio.services.image_store import ImageStore
from mosaic_studio.services.orchestrator import MosaicOrchestrator

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(engine: Engine | None = None, uploads_dir: str | None = None) -> FastAPI:
    engine = engine or db.engine
    uploads = Path(uploads_dir or settings.uploads_dir)
    uploads.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = ImageStore(uploads)
    app.state.engine = engine
    app.state.store = store
    app.state.orchestrator = MosaicOrchestrator(
        engine,
        store,
        compositor=MosaicCompositor(quality=settings.jpeg_quality),
        max_workers=settings.max_workers,
    )

    @app.on_event("startup")
    def startup() -> None:
        db.init_db(engine)
        logger.info(f"{settings.app_name} started, uploads at {uploads.resolve()}")

    @app.on_event("shutdown")
    def shutdown() -> None:
        app.state.orchestrator.shutdown(wait=True)

    app.include_router(router)
    app.mount("/uploads", StaticFiles(directory=str(uploads)), name="uploads")

    @app.get("/")
    def health():
        return {"ok": True, "service": settings.app_name}

    return app


app = create_app()

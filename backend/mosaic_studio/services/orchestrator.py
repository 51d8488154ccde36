"""Background mosaic generation.

``MosaicOrchestrator.submit`` records a job and hands the pipeline to a
worker thread; callers follow it through the registry. Each project has at
most one pipeline running, tracked by the orchestrator's ``TargetGuard``.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Optional

from PIL import Image
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from mosaic_studio.core.errors import (
    AlreadyInProgress,
    ImageDecodeError,
    ImageNotFound,
    MosaicError,
    NoTilesAvailable,
    StorageError,
)
from mosaic_studio.models.entities import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    GenerationJob,
    ImageAsset,
)
from mosaic_studio.schemas.contracts import MosaicParams
from mosaic_studio.services.compositor import MosaicCompositor, sd_cell_size
from mosaic_studio.services.image_store import ImageStore
from mosaic_studio.services.jobs import create_job, update_job
from mosaic_studio.utils.filenames import build_output_names, mosaics_dir

logger = logging.getLogger(__name__)


class TargetGuard:
    """Set of project IDs with a pipeline in flight."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[int] = set()

    def acquire(self, key: int) -> bool:
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
            return True

    def release(self, key: int) -> None:
        with self._lock:
            self._active.discard(key)

    def is_held(self, key: int) -> bool:
        with self._lock:
            return key in self._active


class MosaicOrchestrator:
    def __init__(
        self,
        engine: Engine,
        store: ImageStore,
        compositor: Optional[MosaicCompositor] = None,
        max_workers: int = 4,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.engine = engine
        self.store = store
        self.compositor = compositor or MosaicCompositor()
        self.guard = TargetGuard()
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mosaic")
        self._futures: dict[int, Future] = {}
        self._futures_lock = threading.Lock()
        self._closed = False

    def submit(
        self,
        user_id: int,
        project_id: int,
        main_image_id: int,
        tile_image_ids: list[int],
        params: MosaicParams,
    ) -> GenerationJob:
        if self._closed:
            raise RuntimeError("Mosaic orchestrator is shut down")
        if not self.guard.acquire(project_id):
            raise AlreadyInProgress(project_id)

        try:
            with Session(self.engine) as session:
                job = create_job(
                    session,
                    user_id=user_id,
                    project_id=project_id,
                    main_image_id=main_image_id,
                    tile_image_ids=tile_image_ids,
                    params=params,
                )
        except Exception:
            self.guard.release(project_id)
            raise

        try:
            future = self._executor.submit(self._run, job.id, project_id)
        except RuntimeError as exc:
            # Shut down between the check above and here; the pipeline will never run.
            with Session(self.engine) as session:
                self._fail(session, session.get(GenerationJob, job.id), f"Failed to schedule mosaic: {exc}", "InternalError")
            self.guard.release(project_id)
            raise

        with self._futures_lock:
            self._futures[job.id] = future
        future.add_done_callback(lambda _f, job_id=job.id: self._forget(job_id))
        logger.info(f"Mosaic job {job.id} queued for project {project_id} ({len(tile_image_ids)} tiles)")
        return job

    def is_active(self, project_id: int) -> bool:
        return self.guard.is_held(project_id)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for running pipelines. Returns False if the timeout expired first."""
        with self._futures_lock:
            pending = list(self._futures.values())
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)

    def _forget(self, job_id: int) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _run(self, job_id: int, project_id: int) -> None:
        try:
            with Session(self.engine) as session:
                job = session.get(GenerationJob, job_id)
                if job is None:
                    logger.error(f"Mosaic job {job_id} vanished before it started")
                    return
                try:
                    self._pipeline(session, job)
                except MosaicError as exc:
                    logger.warning(f"Mosaic job {job_id} failed: {exc}")
                    self._fail(session, job, str(exc), exc.kind)
                except Exception as exc:
                    logger.error(f"Mosaic job {job_id} crashed: {exc}", exc_info=True)
                    self._fail(session, job, f"Failed to generate mosaic: {exc}", "InternalError")
        finally:
            self.guard.release(project_id)

    def _fail(self, session: Session, job: GenerationJob | None, message: str, kind: str) -> None:
        if job is None:
            return
        session.rollback()
        try:
            update_job(session, job, status=STATUS_FAILED, error_message=message, error_kind=kind)
        except Exception as exc:
            logger.error(f"Could not record failure of mosaic job {job.id}: {exc}", exc_info=True)

    def _pipeline(self, session: Session, job: GenerationJob) -> None:
        logger.info(f"Mosaic job {job.id} started (tile size {job.tile_size})")

        main_asset = session.get(ImageAsset, job.main_image_id)
        if main_asset is None or main_asset.user_id != job.user_id:
            raise ImageNotFound("Failed to find main image")
        update_job(session, job, progress=10)

        tile_assets = self._resolve_tiles(session, job)
        update_job(session, job, progress=20)

        relative_dir = mosaics_dir(job.user_id, job.project_id)
        try:
            out_dir = self.store.ensure_dir(relative_dir)
        except StorageError as exc:
            raise StorageError("Failed to create mosaic directory") from exc
        sd_name, hd_name = build_output_names(self._clock())
        sd_path, hd_path = out_dir / sd_name, out_dir / hd_name
        update_job(session, job, progress=30)

        try:
            main = self.store.open(main_asset.path)
        except (ImageNotFound, ImageDecodeError, StorageError) as exc:
            raise type(exc)(f"Failed to open main image: {exc}") from exc
        update_job(session, job, progress=40)

        canvas = self.compositor.allocate(main)
        main.close()
        update_job(session, job, progress=50)

        tiles = self._decode_tiles(tile_assets)
        if not tiles:
            raise NoTilesAvailable()
        update_job(session, job, progress=60)

        self.compositor.paint(canvas.sd, tiles, sd_cell_size(job.tile_size))
        update_job(session, job, progress=70)

        self.compositor.paint(canvas.hd, tiles, job.tile_size)
        update_job(session, job, progress=80)

        self.compositor.encode_jpeg(canvas.sd, sd_path)
        update_job(session, job, progress=90)

        self.compositor.encode_jpeg(canvas.hd, hd_path)
        update_job(
            session,
            job,
            progress=100,
            status=STATUS_COMPLETED,
            sd_path=self.store.relative_path(sd_path),
            hd_path=self.store.relative_path(hd_path),
        )
        logger.info(f"Mosaic job {job.id} completed: {job.sd_path}, {job.hd_path}")

    def _resolve_tiles(self, session: Session, job: GenerationJob) -> list[ImageAsset]:
        ids = list(dict.fromkeys(job.tile_image_ids))
        if not ids:
            return []
        stmt = select(ImageAsset).where(col(ImageAsset.id).in_(ids), ImageAsset.user_id == job.user_id)
        by_id = {asset.id: asset for asset in session.exec(stmt).all()}
        missing = [i for i in ids if i not in by_id]
        if missing:
            logger.warning(f"Mosaic job {job.id}: tile images {missing} not found, skipping")
        return [by_id[i] for i in ids if i in by_id]

    def _decode_tiles(self, assets: list[ImageAsset]) -> list[Image.Image]:
        tiles: list[Image.Image] = []
        for asset in assets:
            try:
                tiles.append(self.store.open(asset.path))
            except (ImageNotFound, ImageDecodeError, StorageError) as exc:
                logger.warning(f"Failed to open tile image {asset.path}: {exc}")
        return tiles

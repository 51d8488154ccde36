from __future__ import annotations

import json

from sqlmodel import Session

from mosaic_studio.models.entities import STATUS_PROCESSING, GenerationJob, utcnow
from mosaic_studio.schemas.contracts import MosaicParams


def create_job(
    session: Session,
    *,
    user_id: int,
    project_id: int,
    main_image_id: int,
    tile_image_ids: list[int],
    params: MosaicParams,
) -> GenerationJob:
    job = GenerationJob(
        user_id=user_id,
        project_id=project_id,
        main_image_id=main_image_id,
        tile_image_ids_json=json.dumps(list(tile_image_ids)),
        tile_size=params.tile_size,
        tile_density=params.tile_density,
        color_adjustment=params.color_adjustment,
        style=params.style,
        status=STATUS_PROCESSING,
        progress=0,
    )
    session.add(job)
    session.commit()
    session.refresh(job)
    return job


def update_job(
    session: Session,
    job: GenerationJob,
    *,
    progress: int | None = None,
    status: str | None = None,
    sd_path: str | None = None,
    hd_path: str | None = None,
    error_message: str | None = None,
    error_kind: str | None = None,
) -> GenerationJob:
    if job.is_terminal:
        raise ValueError(f"Job {job.id} is already {job.status}")
    if progress is not None:
        if progress < job.progress or progress > 100:
            raise ValueError(f"Job {job.id} progress cannot move from {job.progress} to {progress}")
        job.progress = progress
    if status is not None:
        job.status = status
    if sd_path is not None:
        job.sd_path = sd_path
    if hd_path is not None:
        job.hd_path = hd_path
    if error_message is not None:
        job.error_message = error_message
    if error_kind is not None:
        job.error_kind = error_kind
    job.updated_at = utcnow()
    session.add(job)
    session.commit()
    session.refresh(job)
    return job

"""Read side for polling clients.

Queries always go to the database (``populate_existing``) so a session that
already holds a job instance still sees the pipeline's latest commit.
"""
from __future__ import annotations

from sqlmodel import Session, col, select

from mosaic_studio.core.errors import JobNotFound
from mosaic_studio.models.entities import GenerationJob


def get_status(session: Session, user_id: int, job_id: int) -> GenerationJob:
    stmt = (
        select(GenerationJob)
        .where(GenerationJob.id == job_id, GenerationJob.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    job = session.exec(stmt).first()
    if job is None:
        raise JobNotFound(job_id)
    return job


def list_by_target(session: Session, user_id: int, project_id: int) -> list[GenerationJob]:
    stmt = (
        select(GenerationJob)
        .where(GenerationJob.user_id == user_id, GenerationJob.project_id == project_id)
        .order_by(col(GenerationJob.created_at).desc(), col(GenerationJob.id).desc())
        .execution_options(populate_existing=True)
    )
    return list(session.exec(stmt).all())

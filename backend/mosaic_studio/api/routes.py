from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile, status
from sqlmodel import Session

from mosaic_studio.core.errors import AlreadyInProgress, ImageDecodeError, JobNotFound, StorageError
from mosaic_studio.db.session import get_session
from mosaic_studio.models.entities import STATUS_COMPLETED, STATUS_FAILED, GenerationJob, ImageAsset
from mosaic_studio.schemas.contracts import (
    GenerateRequest,
    GenerateResponse,
    ImageKind,
    JobStatusResponse,
    JobSummary,
    ProjectMosaicsResponse,
    ProjectSettings,
    SettingsResponse,
    UploadResponse,
)
from mosaic_studio.services.image_store import ImageStore
from mosaic_studio.services.mosaic_settings import get_settings, save_settings
from mosaic_studio.services.orchestrator import MosaicOrchestrator
from mosaic_studio.services.registry import get_status, list_by_target

router = APIRouter(prefix="/api", tags=["api"])


def current_user(x_user_id: Optional[int] = Header(default=None)) -> int:
    if x_user_id is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    return x_user_id


def get_store(request: Request) -> ImageStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> MosaicOrchestrator:
    return request.app.state.orchestrator


def _upload_url(path: str) -> Optional[str]:
    return f"/uploads/{path}" if path else None


def _status_fields(job: GenerationJob) -> dict:
    fields = {
        "id": job.id,
        "status": job.status,
        "progress": job.progress,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
    }
    if job.status == STATUS_COMPLETED:
        fields["sd_url"] = _upload_url(job.sd_path)
        fields["hd_url"] = _upload_url(job.hd_path)
    if job.status == STATUS_FAILED and job.error_message:
        fields["error"] = job.error_message
        fields["error_kind"] = job.error_kind or None
    return fields


@router.post("/images/upload", response_model=UploadResponse)
def upload_image(
    file: UploadFile = File(...),
    kind: ImageKind = Query(default="tile"),
    project_id: Optional[int] = Query(default=None),
    user_id: int = Depends(current_user),
    store: ImageStore = Depends(get_store),
    session: Session = Depends(get_session),
):
    raw = file.file.read()
    if not raw:
        raise HTTPException(400, "Empty file")
    try:
        stored = store.save_upload(user_id, project_id, kind, file.filename or "", raw)
    except ImageDecodeError as exc:
        raise HTTPException(400, str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(500, "Failed to save image") from exc

    asset = ImageAsset(
        user_id=user_id,
        project_id=project_id,
        kind=kind,
        path=stored.path,
        filename=stored.filename,
        width=stored.width,
        height=stored.height,
        format=stored.format,
    )
    session.add(asset)
    session.commit()
    session.refresh(asset)
    return UploadResponse.model_validate(asset, from_attributes=True)


@router.post("/mosaics/generate", response_model=GenerateResponse, status_code=status.HTTP_202_ACCEPTED)
def generate_mosaic(
    req: GenerateRequest,
    user_id: int = Depends(current_user),
    orchestrator: MosaicOrchestrator = Depends(get_orchestrator),
):
    if not req.tile_image_ids:
        raise HTTPException(400, "No valid tile image IDs provided")
    try:
        job = orchestrator.submit(user_id, req.project_id, req.main_image_id, req.tile_image_ids, req.params())
    except AlreadyInProgress as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc)) from exc
    return GenerateResponse(id=job.id, status=job.status, progress=job.progress, created_at=job.created_at)


@router.get("/mosaics/settings", response_model=SettingsResponse)
def read_settings(
    project_id: Optional[int] = Query(default=None),
    user_id: int = Depends(current_user),
    session: Session = Depends(get_session),
):
    row = get_settings(session, user_id, project_id)
    return SettingsResponse(user_id=user_id, settings=ProjectSettings.model_validate(row, from_attributes=True))


@router.post("/mosaics/settings", response_model=SettingsResponse)
def write_settings(
    req: ProjectSettings,
    user_id: int = Depends(current_user),
    session: Session = Depends(get_session),
):
    row = save_settings(session, user_id, req.project_id, req)
    return SettingsResponse(user_id=user_id, settings=ProjectSettings.model_validate(row, from_attributes=True))


@router.get("/mosaics/{job_id}", response_model=JobStatusResponse)
def get_generation_status(job_id: int, user_id: int = Depends(current_user), session: Session = Depends(get_session)):
    try:
        job = get_status(session, user_id, job_id)
    except JobNotFound as exc:
        raise HTTPException(404, str(exc)) from exc
    return JobStatusResponse(**_status_fields(job))


@router.get("/projects/{project_id}/mosaics", response_model=ProjectMosaicsResponse)
def get_project_mosaics(project_id: int, user_id: int = Depends(current_user), session: Session = Depends(get_session)):
    summaries = [
        JobSummary(
            **_status_fields(job),
            tile_size=job.tile_size,
            tile_density=job.tile_density,
            color_adjustment=job.color_adjustment,
            style=job.style,
        )
        for job in list_by_target(session, user_id, project_id)
    ]
    return ProjectMosaicsResponse(mosaics=summaries, count=len(summaries))

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

STYLES = ("classic", "random", "flowing")
Style = Literal["classic", "random", "flowing"]
ImageKind = Literal["main", "tile"]


class MosaicParams(BaseModel):
    tile_size: int = Field(default=50, ge=10, le=200)
    tile_density: int = Field(default=80, ge=1, le=100)
    color_adjustment: int = Field(default=50, ge=0, le=100)
    style: Style = "classic"


class GenerateRequest(MosaicParams):
    project_id: int
    main_image_id: int
    tile_image_ids: List[int] = Field(default_factory=list)
    # Older clients send the overlay as a 0..1 ratio instead of color_adjustment.
    overlay_ratio: Optional[float] = Field(default=None, ge=0, le=1)

    @model_validator(mode="after")
    def apply_overlay_ratio(self) -> "GenerateRequest":
        if self.overlay_ratio is not None:
            self.color_adjustment = int(self.overlay_ratio * 100)
        return self

    def params(self) -> MosaicParams:
        return MosaicParams(
            tile_size=self.tile_size,
            tile_density=self.tile_density,
            color_adjustment=self.color_adjustment,
            style=self.style,
        )


class GenerateResponse(BaseModel):
    id: int
    status: str
    progress: int
    created_at: datetime


class JobStatusResponse(BaseModel):
    id: int
    status: str
    progress: int
    created_at: datetime
    updated_at: datetime
    sd_url: Optional[str] = None
    hd_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class JobSummary(JobStatusResponse):
    tile_size: int
    tile_density: int
    color_adjustment: int
    style: str


class ProjectMosaicsResponse(BaseModel):
    mosaics: List[JobSummary]
    count: int


class ProjectSettings(MosaicParams):
    project_id: Optional[int] = None


class SettingsResponse(BaseModel):
    user_id: int
    settings: ProjectSettings


class UploadResponse(BaseModel):
    id: int
    user_id: int
    project_id: Optional[int] = None
    kind: ImageKind
    path: str
    filename: str
    width: int
    height: int
    format: str

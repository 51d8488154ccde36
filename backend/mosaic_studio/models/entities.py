import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp():
    return Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class ImageAsset(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    project_id: Optional[int] = Field(default=None, index=True)
    kind: str = "tile"  # "main" or "tile"
    # Relative to the uploads root, "/"-separated, no leading separator.
    path: str
    filename: str
    width: int = 0
    height: int = 0
    format: str = ""
    created_at: datetime = _timestamp()


class MosaicSettings(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    project_id: Optional[int] = Field(default=None, index=True)
    tile_size: int = 50
    tile_density: int = 80
    color_adjustment: int = 50
    style: str = "classic"
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class GenerationJob(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    project_id: int = Field(index=True)
    main_image_id: int
    tile_image_ids_json: str = "[]"
    tile_size: int
    tile_density: int
    color_adjustment: int
    style: str
    status: str = STATUS_PROCESSING
    progress: int = 0
    sd_path: str = ""
    hd_path: str = ""
    error_message: str = ""
    error_kind: str = ""
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()

    @property
    def tile_image_ids(self) -> list[int]:
        return json.loads(self.tile_image_ids_json or "[]")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

from __future__ import annotations

from sqlmodel import Session, select

from mosaic_studio.core.settings import settings as app_settings
from mosaic_studio.models.entities import MosaicSettings, utcnow
from mosaic_studio.schemas.contracts import MosaicParams


def _query(user_id: int, project_id: int | None):
    stmt = select(MosaicSettings).where(MosaicSettings.user_id == user_id)
    if project_id is not None:
        stmt = stmt.where(MosaicSettings.project_id == project_id)
    return stmt


def get_settings(session: Session, user_id: int, project_id: int | None = None) -> MosaicSettings:
    found = session.exec(_query(user_id, project_id)).first()
    if found is not None:
        return found
    # Unsaved defaults, not persisted.
    return MosaicSettings(
        user_id=user_id,
        project_id=project_id,
        tile_size=app_settings.default_tile_size,
        tile_density=app_settings.default_tile_density,
        color_adjustment=app_settings.default_color_adjustment,
        style=app_settings.default_style,
    )


def save_settings(session: Session, user_id: int, project_id: int | None, params: MosaicParams) -> MosaicSettings:
    stmt = select(MosaicSettings).where(
        MosaicSettings.user_id == user_id, MosaicSettings.project_id == project_id
    )
    row = session.exec(stmt).first()
    if row is None:
        row = MosaicSettings(user_id=user_id, project_id=project_id)
    row.tile_size = params.tile_size
    row.tile_density = params.tile_density
    row.color_adjustment = params.color_adjustment
    row.style = params.style
    row.updated_at = utcnow()
    session.add(row)
    session.commit()
    session.refresh(row)
    return row

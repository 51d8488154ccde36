from pathlib import Path

import pytest
from PIL import Image
from sqlmodel import Session

from mosaic_studio.db.session import build_engine, init_db
from mosaic_studio.models.entities import ImageAsset
from mosaic_studio.services.image_store import ImageStore


@pytest.fixture
def engine(tmp_path: Path):
    eng = build_engine(f"sqlite:///{tmp_path / 'mosaic.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(tmp_path: Path) -> ImageStore:
    root = tmp_path / "uploads"
    root.mkdir()
    return ImageStore(root)


@pytest.fixture
def add_asset(engine, store: ImageStore):
    """Write an image (or raw bytes) under the store and register it."""

    def _add(name: str, content, kind: str = "tile", user_id: int = 1, project_id: int = 1) -> int:
        relative = f"user_{user_id}/project_{project_id}/{name}"
        target = store.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, Image.Image):
            content.save(target)
        else:
            target.write_bytes(content)
        with Session(engine) as session:
            asset = ImageAsset(user_id=user_id, project_id=project_id, kind=kind, path=relative, filename=name)
            session.add(asset)
            session.commit()
            session.refresh(asset)
            return asset.id

    return _add

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from mosaic_studio.core.settings import settings


def build_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


engine = build_engine(settings.database_url)


def init_db(bind: Engine | None = None) -> None:
    # Table classes must be registered on the metadata before create_all.
    import mosaic_studio.models.entities  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session(request: Request):
    with Session(request.app.state.engine) as session:
        yield session

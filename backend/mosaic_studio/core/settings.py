from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Mosaic Studio"
    database_url: str = "sqlite:///./mosaic_studio.db"
    uploads_dir: str = "uploads"
    jpeg_quality: int = 90
    max_workers: int = 4
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    # Returned when a user has not saved settings yet.
    default_tile_size: int = 50
    default_tile_density: int = 80
    default_color_adjustment: int = 50
    default_style: str = "classic"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def ensure_directories() -> None:
    Path(settings.uploads_dir).mkdir(parents=True, exist_ok=True)

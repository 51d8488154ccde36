from datetime import datetime


def mosaics_dir(user_id: int, project_id: int) -> str:
    return f"user_{user_id}/project_{project_id}/mosaics"


def build_output_names(now: datetime | None = None) -> tuple[str, str]:
    ts = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"mosaic_sd_{ts}.jpg", f"mosaic_hd_{ts}.jpg"

"""Error taxonomy shared by the image store, compositor and orchestrator."""
from __future__ import annotations


class MosaicError(RuntimeError):
    """Base class. ``kind`` is the stable name recorded on failed jobs."""

    kind = "MosaicError"


class AlreadyInProgress(MosaicError):
    kind = "AlreadyInProgress"

    def __init__(self, project_id: int):
        super().__init__("a mosaic generation is already in progress for this project")
        self.project_id = project_id


class NotFoundError(MosaicError):
    kind = "NotFound"


class ImageNotFound(NotFoundError):
    pass


class JobNotFound(NotFoundError):
    def __init__(self, job_id: int):
        super().__init__("mosaic not found")
        self.job_id = job_id


class ImageDecodeError(MosaicError):
    kind = "DecodeError"


class NoTilesAvailable(MosaicError):
    kind = "NoTilesAvailable"

    def __init__(self, message: str = "no valid tile images found"):
        super().__init__(message)


class StorageError(MosaicError):
    """Directory or file I/O failure other than a missing file."""

    kind = "IOError"


class EncodeError(MosaicError):
    kind = "EncodeError"

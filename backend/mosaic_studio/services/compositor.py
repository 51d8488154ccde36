from __future__ import annotations

import random
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageStat

from mosaic_studio.core.errors import EncodeError, NoTilesAvailable, StorageError

JPEG_QUALITY = 90


@dataclass
class CompositeCanvas:
    sd: Image.Image
    hd: Image.Image


def canvas_sizes(width: int, height: int) -> tuple[tuple[int, int], tuple[int, int]]:
    """SD is half the main image in each dimension, HD is the main image size."""
    return (width // 2, height // 2), (width, height)


def sd_cell_size(tile_size: int) -> int:
    return max(1, tile_size // 2)


def average_color(image: Image.Image, x: int, y: int, width: int, height: int) -> tuple[int, int, int, int]:
    """Mean RGBA of the part of the region that lies inside the image.

    Not used for tile placement, which is random.
    """
    left, top = max(x, 0), max(y, 0)
    right, bottom = min(x + width, image.width), min(y + height, image.height)
    if right <= left or bottom <= top:
        return (0, 0, 0, 255)
    region = image.crop((left, top, right, bottom)).convert("RGBA")
    means = ImageStat.Stat(region).mean
    r, g, b, a = (min(255, max(0, int(m))) for m in means)
    return (r, g, b, a)


def flatten(canvas: Image.Image) -> Image.Image:
    """Drop alpha by compositing over opaque black."""
    backdrop = Image.new("RGBA", canvas.size, (0, 0, 0, 255))
    return Image.alpha_composite(backdrop, canvas.convert("RGBA")).convert("RGB")


class MosaicCompositor:
    def __init__(self, rng: random.Random | None = None, quality: int = JPEG_QUALITY):
        self.rng = rng or random.Random()
        self.quality = quality

    def compose(self, main: Image.Image, tiles: list[Image.Image], tile_size: int) -> tuple[Image.Image, Image.Image]:
        if not tiles:
            raise NoTilesAvailable()
        canvas = self.allocate(main)
        self.paint(canvas.sd, tiles, sd_cell_size(tile_size))
        self.paint(canvas.hd, tiles, tile_size)
        return canvas.sd, canvas.hd

    def allocate(self, main: Image.Image) -> CompositeCanvas:
        sd_size, hd_size = canvas_sizes(*main.size)
        return CompositeCanvas(
            sd=Image.new("RGBA", sd_size, (0, 0, 0, 0)),
            hd=Image.new("RGBA", hd_size, (0, 0, 0, 0)),
        )

    def paint(self, canvas: Image.Image, tiles: list[Image.Image], cell: int) -> None:
        """Fill ``canvas`` row by row with randomly chosen tiles of ``cell`` px."""
        if not tiles:
            raise NoTilesAvailable()
        cell = max(1, cell)
        prepared = [t if t.mode == "RGBA" else t.convert("RGBA") for t in tiles]
        scaled: dict[int, Image.Image] = {}
        width, height = canvas.size
        for top in range(0, height, cell):
            for left in range(0, width, cell):
                idx = self.rng.randrange(len(prepared))
                if idx not in scaled:
                    scaled[idx] = prepared[idx].resize((cell, cell), Image.Resampling.BILINEAR)
                tile = scaled[idx]
                visible = (min(cell, width - left), min(cell, height - top))
                if visible != (cell, cell):
                    tile = tile.crop((0, 0, *visible))
                canvas.alpha_composite(tile, dest=(left, top))

    def encode_jpeg(self, canvas: Image.Image, path: Path) -> None:
        try:
            fh = open(path, "wb")
        except OSError as exc:
            raise StorageError(f"Failed to open {path.name} for writing: {exc}") from exc
        with fh:
            try:
                flatten(canvas).save(fh, format="JPEG", quality=self.quality)
            except (OSError, ValueError, SystemError) as exc:
                raise EncodeError(f"Failed to encode {path.name}: {exc}") from exc

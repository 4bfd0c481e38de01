"""Pixel comparison of two screenshots."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from PIL import Image
from pixelmatch.contrib.PIL import pixelmatch

ImageInput = Union[bytes, Image.Image]

WHITE = (255, 255, 255, 255)


@dataclass
class DiffResult:
    diff_pixels: int
    width: int
    height: int
    diff_image: Image.Image

    @property
    def ratio(self) -> float:
        area = self.width * self.height
        return self.diff_pixels / area if area else 0.0


def _load(image: ImageInput) -> Image.Image:
    if isinstance(image, (bytes, bytearray)):
        image = Image.open(io.BytesIO(image))
    return image.convert("RGBA")


def pad_to(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Place ``image`` top-left on a white canvas of ``size``."""
    if image.size == size:
        return image
    canvas = Image.new("RGBA", size, WHITE)
    canvas.paste(image, (0, 0))
    return canvas


def compare_images(a: ImageInput, b: ImageInput, *, threshold: float = 0.1) -> DiffResult:
    """
    Count the pixels that differ between ``a`` and ``b``.

    Both images are padded with white to the larger width and height, so a
    page that grew or shrank shows up as differing pixels instead of an
    error.  Anti-aliased pixels are not counted.
    """
    img_a, img_b = _load(a), _load(b)
    size = (max(img_a.width, img_b.width), max(img_a.height, img_b.height))
    img_a, img_b = pad_to(img_a, size), pad_to(img_b, size)
    diff = Image.new("RGBA", size)
    count = pixelmatch(img_a, img_b, diff, threshold=threshold, includeAA=False)
    return DiffResult(diff_pixels=count, width=size[0], height=size[1], diff_image=diff)


def to_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def diff_pngs(a: bytes, b: bytes, *, threshold: float = 0.1, max_ratio: float = 0.0) -> Tuple[float, Optional[bytes]]:
    """
    Diff two PNG captures in a worker process.

    Module-level and bytes in, bytes out, so it can be shipped to a
    :class:`concurrent.futures.ProcessPoolExecutor`.

    :return: The diff ratio, and the diff image as PNG when the ratio
        exceeds ``max_ratio`` (``None`` otherwise).
    """
    result = compare_images(a, b, threshold=threshold)
    if result.ratio <= max_ratio:
        return result.ratio, None
    return result.ratio, to_png(result.diff_image)

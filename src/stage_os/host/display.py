"""
Preview surface for the simulated host.

The simulated host paints its element table into a PreviewBuffer so the dev
web interface has something to show.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw

log = logging.getLogger(__name__)

Color = Tuple[int, int, int]


@dataclass
class PreviewBuffer:
    """
    RGB pixel buffer the simulated host renders into.

    Coordinates are preview pixels; callers scale host pixels down first.
    """

    width: int
    height: int
    _data: Optional[np.ndarray] = None

    def __post_init__(self):
        if self._data is None:
            self._data = np.zeros((self.height, self.width, 3), dtype=np.uint8)

    @property
    def data(self) -> np.ndarray:
        """Get the raw pixel data as numpy array (height, width, 3)."""
        return self._data

    def clear(self, color: Color = (0, 0, 0)) -> None:
        self._data[:, :] = color

    def _clip(self, x: int, y: int, w: int, h: int) -> Optional[Tuple[int, int, int, int]]:
        x0, y0 = max(0, int(x)), max(0, int(y))
        x1, y1 = min(self.width, int(x + w)), min(self.height, int(y + h))
        if x1 <= x0 or y1 <= y0:
            return None
        return x0, y0, x1, y1

    def fill_rect(self, x: int, y: int, w: int, h: int, color: Color) -> None:
        """Fill a rectangle, clipped to the buffer."""
        clipped = self._clip(x, y, w, h)
        if clipped is None:
            return
        x0, y0, x1, y1 = clipped
        self._data[y0:y1, x0:x1] = color

    def outline_rect(self, x: int, y: int, w: int, h: int, color: Color) -> None:
        """Draw a one pixel rectangle border, clipped to the buffer."""
        if w <= 0 or h <= 0:
            return
        self.fill_rect(x, y, w, 1, color)
        self.fill_rect(x, y + h - 1, w, 1, color)
        self.fill_rect(x, y, 1, h, color)
        self.fill_rect(x + w - 1, y, 1, h, color)

    def draw_text(self, x: int, y: int, text: str, color: Color = (255, 255, 255)) -> None:
        """Draw text with PIL's default bitmap font."""
        if not text:
            return
        image = self.to_image()
        ImageDraw.Draw(image).text((int(x), int(y)), str(text), fill=color)
        self._data = np.array(image)

    def blit(self, image: Image.Image, x: int = 0, y: int = 0) -> None:
        """Blit a PIL Image onto the buffer."""
        if image.mode != "RGB":
            image = image.convert("RGB")

        img_array = np.array(image)
        h, w = img_array.shape[:2]

        src_x, src_y = 0, 0
        dst_x, dst_y = int(x), int(y)

        if dst_x < 0:
            src_x = -dst_x
            w += dst_x
            dst_x = 0
        if dst_y < 0:
            src_y = -dst_y
            h += dst_y
            dst_y = 0

        w = min(w, self.width - dst_x)
        h = min(h, self.height - dst_y)

        if w > 0 and h > 0:
            self._data[dst_y : dst_y + h, dst_x : dst_x + w] = img_array[
                src_y : src_y + h, src_x : src_x + w
            ]

    def to_image(self) -> Image.Image:
        """Convert buffer to PIL Image."""
        return Image.fromarray(self._data)

    def copy(self) -> "PreviewBuffer":
        buffer = PreviewBuffer(self.width, self.height)
        buffer._data = self._data.copy()
        return buffer

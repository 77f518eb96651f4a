"""
Bitmap capture surface backed by Pillow.
Strokes are drawn onto an RGBA image; the platform accessor forwards pointer
strokes to draw_stroke().
"""

import base64
from io import BytesIO
from typing import Any, Callable, Dict, List, Sequence, Tuple

from PIL import Image, ImageDraw

from .capabilities import CaptureSurface, CaptureSurfaceFactory

Point = Tuple[float, float]

IMAGE_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/gif": "GIF",
}


class PillowCaptureSurface(CaptureSurface):
    """In-memory signature bitmap with an empty/non-empty flag."""

    def __init__(
        self,
        width: int = 500,
        height: int = 200,
        pen_color: Tuple[int, int, int, int] = (0, 0, 0, 255),
        background_color: Tuple[int, int, int, int] = (255, 255, 255, 0),
        min_width: float = 0.5,
        max_width: float = 2.5,
    ):
        self.width = width
        self.height = height
        self.pen_color = pen_color
        self.background_color = background_color
        self.min_width = min_width
        self.max_width = max_width
        self._strokes: List[List[Point]] = []
        self._listeners: List[Callable[[], None]] = []
        self._image = self._blank()

    def _blank(self) -> Image.Image:
        return Image.new("RGBA", (self.width, self.height), self.background_color)

    @property
    def image(self) -> Image.Image:
        return self._image

    @property
    def stroke_count(self) -> int:
        return len(self._strokes)

    def draw_stroke(self, points: Sequence[Point]) -> None:
        """Draw one completed stroke and notify stroke-end listeners."""
        if not points:
            return

        draw = ImageDraw.Draw(self._image)
        line_width = max(1, round((self.min_width + self.max_width) / 2))
        if len(points) == 1:
            x, y = points[0]
            r = line_width / 2
            draw.ellipse((x - r, y - r, x + r, y + r), fill=self.pen_color)
        else:
            draw.line([tuple(p) for p in points], fill=self.pen_color, width=line_width, joint="curve")

        self._strokes.append(list(points))
        for listener in list(self._listeners):
            listener()

    def is_empty(self) -> bool:
        return not self._strokes

    def clear(self) -> None:
        self._strokes = []
        self._image = self._blank()

    def to_data_url(self, mime_type: str = "image/png") -> str:
        image_format = IMAGE_FORMATS.get(mime_type)
        if image_format is None:
            raise ValueError(f"Unsupported image type: {mime_type}")

        image = self._image
        if image_format == "JPEG":
            # JPEG has no alpha channel; flatten onto white
            flattened = Image.new("RGB", image.size, (255, 255, 255))
            flattened.paste(image, mask=image.getchannel("A"))
            image = flattened

        buffer = BytesIO()
        image.save(buffer, format=image_format)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"

    def add_stroke_end_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)


class PillowCaptureSurfaceFactory(CaptureSurfaceFactory):
    """Creates PillowCaptureSurface instances sized from the coordinator options."""

    def __init__(self):
        self.created: List[PillowCaptureSurface] = []

    def create(self, canvas: Any, options: Dict[str, Any]) -> PillowCaptureSurface:
        surface = PillowCaptureSurface(
            width=int(options.get("width", 500)),
            height=int(options.get("height", 200)),
            min_width=options.get("min_width", 0.5),
            max_width=options.get("max_width", 2.5),
        )
        self.created.append(surface)
        return surface

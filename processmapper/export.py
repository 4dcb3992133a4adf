"""
Export Pipeline

Rasterises a whole diagram, independent of the live viewport, to a JPEG.

The exported region is the bounding box of every entity plus a fixed
margin, drawn at a fixed quality scale with Pillow. Interactive-only
decorations (port dots, selection, panels) are never drawn. When the
raster would exceed the pixel ceiling in either dimension it is scaled
down uniformly before encoding.
"""

import asyncio
import base64
import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, TypeVar, Union

from PIL import Image, ImageDraw, ImageFont

from .geometry import Point, Rect
from .interaction import label_rect
from .layout import BreadboardLayout, GridLayout
from .model import FlowDiagram, PrototypePlan
from .renderer import (
    BACKGROUND,
    CARD_FILL,
    CARD_STROKE,
    EDGE_COLOR,
    ELEMENT_COLORS,
    STEP_ACCENTS,
    TAG_COLORS,
    TEXT_PRIMARY,
    TEXT_SECONDARY,
    step_label_lines,
    truncate,
)
from .router import BezierPath, ConnectionRouter, RouterConfig, RoutingResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

FONT_CANDIDATES = [
    # Linux
    "DejaVuSans.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    # macOS
    "Helvetica",
    "/System/Library/Fonts/Helvetica.ttc",
    # Windows
    "Arial",
    "C:/Windows/Fonts/arial.ttf",
]


class ExportError(RuntimeError):
    """Raised when a diagram cannot be exported."""


@dataclass
class ExportConfig:
    """Export settings."""
    margin: int = 50
    scale: float = 2.0
    max_dimension: int = 8000
    jpeg_quality: int = 90
    background: str = BACKGROUND


@dataclass
class ExportResult:
    """An encoded raster image."""
    data: bytes
    width: int
    height: int
    scale: float  # effective canvas-to-pixel factor after any downscale
    mime_type: str = "image/jpeg"

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        try:
            path.write_bytes(self.data)
        except OSError as e:
            raise ExportError(f"Could not write {path}: {e}") from e
        return path


def _fit(width: int, height: int, factor: float, ceiling: int) -> Tuple[int, int]:
    return (
        min(ceiling, max(1, round(width * factor))),
        min(ceiling, max(1, round(height * factor))),
    )


def load_font(size: int) -> ImageFont.ImageFont:
    """Load a sans-serif font, falling back to Pillow's bundled default."""
    for font in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(font, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


class _Canvas:
    """Maps canvas coordinates onto a Pillow drawing surface."""

    def __init__(self, region: Rect, scale: float, background: str):
        self.region = region
        self.scale = scale
        width = max(1, int(round(region.width * scale)))
        height = max(1, int(round(region.height * scale)))
        self.image = Image.new("RGB", (width, height), background)
        self.draw = ImageDraw.Draw(self.image)
        self._fonts = {}

    def font(self, size: int):
        if size not in self._fonts:
            self._fonts[size] = load_font(max(1, int(size * self.scale)))
        return self._fonts[size]

    def point(self, p: Point) -> Tuple[float, float]:
        return ((p.x - self.region.x) * self.scale, (p.y - self.region.y) * self.scale)

    def box(self, rect: Rect) -> Tuple[float, float, float, float]:
        x0, y0 = self.point(Point(rect.x, rect.y))
        return (x0, y0, x0 + rect.width * self.scale, y0 + rect.height * self.scale)

    def rounded_rect(self, rect: Rect, radius: float, fill: str, outline: Optional[str] = None, width: int = 1) -> None:
        self.draw.rounded_rectangle(
            self.box(rect),
            radius=radius * self.scale,
            fill=fill,
            outline=outline,
            width=max(1, int(width * self.scale)),
        )

    def text(self, origin: Point, text: str, size: int, fill: str) -> None:
        self.draw.text(self.point(origin), text, font=self.font(size), fill=fill)

    def bezier(self, path: BezierPath, color: str, width: float = 2) -> None:
        points = [self.point(p) for p in path.sample(48)]
        self.draw.line(points, fill=color, width=max(1, int(width * self.scale)), joint="curve")

        # Arrowhead along the end tangent
        tangent = path.tangent_at(1.0)
        angle = math.atan2(tangent.y, tangent.x)
        tip = self.point(path.end)
        length, half = 10 * self.scale, 3.5 * self.scale
        base_x = tip[0] - length * math.cos(angle)
        base_y = tip[1] - length * math.sin(angle)
        self.draw.polygon(
            [
                tip,
                (base_x + half * math.sin(angle), base_y - half * math.cos(angle)),
                (base_x - half * math.sin(angle), base_y + half * math.cos(angle)),
            ],
            fill=color,
        )

    def encode(self, max_dimension: int, quality: int) -> ExportResult:
        image = self.image
        scale = self.scale
        factor = min(max_dimension / image.width, max_dimension / image.height)
        if factor < 1:
            size = _fit(image.width, image.height, factor, max_dimension)
            logger.info("Downscaling export from %dx%d to %dx%d", image.width, image.height, *size)
            image = image.resize(size, Image.LANCZOS)
            scale *= factor

        buffer = io.BytesIO()
        image.save(buffer, "JPEG", quality=quality)
        return ExportResult(data=buffer.getvalue(), width=image.width, height=image.height, scale=scale)


class ExportPipeline:
    """Whole-diagram raster export."""

    def __init__(
        self,
        config: Optional[ExportConfig] = None,
        layout: Optional[GridLayout] = None,
        breadboard_layout: Optional[BreadboardLayout] = None,
    ):
        self.config = config or ExportConfig()
        self.layout = layout or GridLayout()
        self.breadboard_layout = breadboard_layout or BreadboardLayout()
        self.router = ConnectionRouter()
        self.breadboard_router = ConnectionRouter(RouterConfig.for_breadboard())
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    def flow_bounds(self, diagram: FlowDiagram) -> Rect:
        """Region to export: every step box plus the margin."""
        bounds = self.layout.bounds(diagram.steps)
        if bounds is None:
            raise ExportError("Cannot export a diagram with no steps")
        return bounds.expanded(self.config.margin)

    def breadboard_bounds(self, plan: PrototypePlan) -> Rect:
        bounds = self.breadboard_layout.bounds(plan.screens)
        if bounds is None:
            raise ExportError("Cannot export a breadboard with no screens")
        return bounds.expanded(self.config.margin)

    def planned_size(self, region: Rect) -> Tuple[int, int]:
        """Final pixel size for ``region`` after scaling and the ceiling."""
        width = max(1, int(round(region.width * self.config.scale)))
        height = max(1, int(round(region.height * self.config.scale)))
        factor = min(self.config.max_dimension / width, self.config.max_dimension / height)
        if factor < 1:
            return _fit(width, height, factor, self.config.max_dimension)
        return width, height

    def render_flow(self, diagram: FlowDiagram) -> ExportResult:
        """Rasterise the whole process canvas."""
        region = self.flow_bounds(diagram)
        try:
            canvas = _Canvas(region, self.config.scale, self.config.background)
            self._draw_connections(canvas, self.router.route_flow(diagram, self.layout))
            for step in diagram.steps:
                rect = self.layout.entity_rect(step)
                if rect is None:
                    continue
                accent = STEP_ACCENTS.get(step.step_type, STEP_ACCENTS["step"])
                canvas.rounded_rect(rect, 12, CARD_FILL, CARD_STROKE, 2)
                canvas.draw.rectangle(canvas.box(Rect(rect.x, rect.y + 12, 4, rect.height - 24)), fill=accent)
                canvas.text(Point(rect.x + 16, rect.y + 12), truncate(step.title, 28), 14, TEXT_PRIMARY)
                y = rect.y + 36
                for line in step_label_lines(step):
                    canvas.text(Point(rect.x + 16, y), truncate(line, 32), 11, TEXT_SECONDARY)
                    y += 16
                tag_x = rect.x + 16
                for tag in step.tags:
                    fill, color = TAG_COLORS.get(tag, ("#f3f4f6", TEXT_SECONDARY))
                    width = len(tag) * 6 + 12
                    canvas.rounded_rect(Rect(tag_x, rect.bottom - 24, width, 16), 8, fill)
                    canvas.text(Point(tag_x + 6, rect.bottom - 22), tag, 10, color)
                    tag_x += width + 4
            return canvas.encode(self.config.max_dimension, self.config.jpeg_quality)
        except (OSError, ValueError, MemoryError) as e:
            raise ExportError(f"Raster export failed: {e}") from e

    def render_breadboard(self, plan: PrototypePlan) -> ExportResult:
        """Rasterise every screen of the breadboard."""
        region = self.breadboard_bounds(plan)
        layout = self.breadboard_layout
        try:
            canvas = _Canvas(region, self.config.scale, self.config.background)
            rects = layout.screen_rects(plan.screens)
            for screen in plan.screens:
                rect = rects[screen.id]
                canvas.rounded_rect(rect, 10, CARD_FILL, CARD_STROKE, 2)
                header_y = rect.y + layout.config.header_height
                canvas.draw.line(
                    [canvas.point(Point(rect.x, header_y)), canvas.point(Point(rect.right, header_y))],
                    fill=CARD_STROKE,
                    width=max(1, int(canvas.scale)),
                )
                canvas.text(Point(rect.x + 16, rect.y + 14), truncate(screen.title, 26), 14, TEXT_PRIMARY)
                for index, element in enumerate(screen.elements):
                    chip = layout.chip_rect(rect, index)
                    fill, color, border = ELEMENT_COLORS.get(element.element_type, ELEMENT_COLORS["info"])
                    canvas.rounded_rect(chip, 6, fill, border)
                    canvas.text(Point(chip.x + 10, chip.y + 9), truncate(element.label, 30), 12, color)
            self._draw_connections(canvas, self.breadboard_router.route_breadboard(plan, layout))
            return canvas.encode(self.config.max_dimension, self.config.jpeg_quality)
        except (OSError, ValueError, MemoryError) as e:
            raise ExportError(f"Raster export failed: {e}") from e

    def _draw_connections(self, canvas: _Canvas, routing: RoutingResult) -> None:
        for route in routing.routes:
            canvas.bezier(route.path, EDGE_COLOR)
            label = route.connection.label
            if label:
                anchor = route.label_position
                box = label_rect(anchor, label)
                canvas.rounded_rect(box, 4, CARD_FILL, CARD_STROKE)
                canvas.text(Point(box.x + 8, box.y + 3), label, 11, TEXT_SECONDARY)

    async def export_flow(self, diagram: FlowDiagram) -> Optional[ExportResult]:
        """Export in a worker thread. Returns None if an export is already running."""
        return await self._run_exclusive(self.render_flow, diagram)

    async def export_breadboard(self, plan: PrototypePlan) -> Optional[ExportResult]:
        return await self._run_exclusive(self.render_breadboard, plan)

    async def _run_exclusive(self, render: Callable[[T], ExportResult], subject: T) -> Optional[ExportResult]:
        if self._pending:
            logger.warning("Export already in progress, ignoring request")
            return None
        self._pending = True
        try:
            return await asyncio.to_thread(render, subject)
        finally:
            self._pending = False

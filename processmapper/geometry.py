"""
Geometry

Point and rectangle value types plus the viewport transform that maps
between screen space (pointer coordinates) and logical canvas space.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

MIN_SCALE = 0.1
MAX_SCALE = 3.0
ZOOM_STEP = 1.2
WHEEL_ZOOM_FACTOR = 0.01
FIT_PADDING = 50


@dataclass(frozen=True)
class Point:
    """A 2D point."""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def offset(self, dx: float, dy: float) -> "Point":
        return Point(self.x + dx, self.y + dy)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in canvas pixels."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, point: Point) -> bool:
        return self.x <= point.x <= self.right and self.y <= point.y <= self.bottom

    def union(self, other: "Rect") -> "Rect":
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rect(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def expanded(self, margin: float) -> "Rect":
        return Rect(
            self.x - margin,
            self.y - margin,
            self.width + 2 * margin,
            self.height + 2 * margin,
        )

    @staticmethod
    def enclosing(rects: Iterable["Rect"]) -> Optional["Rect"]:
        """Return the union of all rects, or None when there are none."""
        result: Optional[Rect] = None
        for rect in rects:
            result = rect if result is None else result.union(rect)
        return result


def is_finite_number(value) -> bool:
    """True for real ints/floats that are not NaN or infinite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass
class ViewportTransform:
    """Pan/zoom state of a diagram view.

    Screen coordinates relate to canvas coordinates by
    ``screen = canvas * scale + pan``. The transform is ephemeral: it is
    never persisted with the diagram.
    """
    pan_x: float = 0.0
    pan_y: float = 0.0
    scale: float = 1.0

    def to_canvas(self, point: Point) -> Point:
        """Convert a screen-space point into canvas space."""
        return Point((point.x - self.pan_x) / self.scale, (point.y - self.pan_y) / self.scale)

    def to_screen(self, point: Point) -> Point:
        """Convert a canvas-space point into screen space."""
        return Point(point.x * self.scale + self.pan_x, point.y * self.scale + self.pan_y)

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def set_scale(self, scale: float) -> None:
        self.scale = clamp_scale(scale)

    def zoom_by(self, delta: float) -> None:
        """Additive zoom used by ctrl+wheel."""
        self.set_scale(self.scale + delta)

    def zoom_in(self) -> None:
        self.set_scale(self.scale * ZOOM_STEP)

    def zoom_out(self) -> None:
        self.set_scale(self.scale / ZOOM_STEP)

    def reset(self) -> None:
        self.pan_x = 0.0
        self.pan_y = 0.0
        self.scale = 1.0

    def fit_to_frame(
        self,
        bounds: Optional[Rect],
        viewport_width: float,
        viewport_height: float,
        padding: float = FIT_PADDING,
    ) -> None:
        """Center and scale ``bounds`` inside the viewport.

        The fitted scale never enlarges the diagram beyond 1:1. With no
        bounds (empty diagram) or an unmeasured viewport the transform is
        reset to identity.
        """
        if bounds is None or viewport_width <= 0 or viewport_height <= 0:
            self.reset()
            return

        padded = bounds.expanded(padding)
        scale_x = viewport_width / padded.width
        scale_y = viewport_height / padded.height
        self.scale = clamp_scale(min(1.0, scale_x, scale_y))

        center = padded.center
        self.pan_x = viewport_width / 2 - center.x * self.scale
        self.pan_y = viewport_height / 2 - center.y * self.scale

    def svg_transform(self) -> str:
        return f"translate({self.pan_x:.2f} {self.pan_y:.2f}) scale({self.scale:.4f})"

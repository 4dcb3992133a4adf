"""
Layout Engine

Maps logical diagram positions to canvas pixels.

- GridLayout: explicit (row, column) cells on the process canvas, with the
  nearest-free-cell search used for drops and placements
- BreadboardLayout: screens placed by list index on a fixed-column grid
  whose row pitch follows the tallest screen in each row
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .geometry import Point, Rect
from .model import GridCell, ProcessStep, Screen

logger = logging.getLogger(__name__)


@dataclass
class CanvasConfig:
    """Geometry of the process canvas grid."""
    entity_width: int = 240
    entity_height: int = 120
    col_gap: int = 80
    row_gap: int = 80
    padding_x: int = 50
    padding_y: int = 50
    port_radius: int = 6
    drag_threshold: int = 5

    def scaled(self, scale: float) -> "CanvasConfig":
        """Create a new config with scaled dimensions."""
        return CanvasConfig(
            entity_width=int(self.entity_width * scale),
            entity_height=int(self.entity_height * scale),
            col_gap=int(self.col_gap * scale),
            row_gap=int(self.row_gap * scale),
            padding_x=int(self.padding_x * scale),
            padding_y=int(self.padding_y * scale),
            port_radius=self.port_radius,
            drag_threshold=self.drag_threshold,
        )

    @property
    def column_pitch(self) -> int:
        return self.entity_width + self.col_gap

    @property
    def row_pitch(self) -> int:
        return self.entity_height + self.row_gap


@dataclass
class BreadboardConfig:
    """Geometry of the breadboard screen grid."""
    card_width: int = 260
    header_height: int = 45
    elements_padding_y: int = 8
    chip_height: int = 32
    chip_spacing_y: int = 6
    chip_inset_x: int = 12
    dot_size: int = 20
    dot_offset_y: int = 20
    columns: int = 3
    col_gap: int = 60
    row_gap: int = 60
    min_card_height: int = 180
    padding_x: int = 40
    padding_y: int = 40
    port_radius: int = 6

    @property
    def dot_center_y(self) -> float:
        return self.dot_offset_y + self.dot_size / 2

    @property
    def column_pitch(self) -> int:
        return self.card_width + self.col_gap


def is_valid_cell(cell: GridCell) -> bool:
    """Cells must hold non-negative integer coordinates."""
    for value in (cell.row, cell.column):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return False
    return True


def _ring(radius: int) -> List[Tuple[int, int]]:
    """Offsets at Chebyshev distance ``radius``, in scan order.

    Closest (Manhattan) offsets come first; ties are broken clockwise from
    "right" in screen coordinates, so the orthogonal neighbours are visited
    right, down, left, up and the corners last.
    """
    offsets = [
        (dr, dc)
        for dr in range(-radius, radius + 1)
        for dc in range(-radius, radius + 1)
        if max(abs(dr), abs(dc)) == radius
    ]

    def scan_key(offset: Tuple[int, int]) -> Tuple[int, float]:
        dr, dc = offset
        angle = math.atan2(dr, dc) % (2 * math.pi)
        return abs(dr) + abs(dc), angle

    return sorted(offsets, key=scan_key)


class GridLayout:
    """Pixel geometry of the process canvas."""

    def __init__(self, config: Optional[CanvasConfig] = None):
        self.config = config or CanvasConfig()

    def grid_to_pixel(self, cell: GridCell) -> Point:
        """Top-left pixel of a cell."""
        return Point(
            self.config.padding_x + cell.column * self.config.column_pitch,
            self.config.padding_y + cell.row * self.config.row_pitch,
        )

    def pixel_to_grid(self, x: float, y: float) -> GridCell:
        """Nearest cell to a top-left pixel position, floored at (0, 0)."""
        column = round((x - self.config.padding_x) / self.config.column_pitch)
        row = round((y - self.config.padding_y) / self.config.row_pitch)
        return GridCell(row=max(0, int(row)), column=max(0, int(column)))

    def cell_at(self, point: Point) -> GridCell:
        """Cell whose box is closest to a pointer position."""
        return self.pixel_to_grid(
            point.x - self.config.entity_width / 2,
            point.y - self.config.entity_height / 2,
        )

    def find_nearest_free_cell(self, target: GridCell, occupied: Set[GridCell]) -> GridCell:
        """Return ``target`` if free, else the first free cell in expanding rings.

        Always terminates because ``occupied`` is finite.
        """
        if target not in occupied:
            return target

        radius = 1
        while True:
            for dr, dc in _ring(radius):
                row, column = target.row + dr, target.column + dc
                if row < 0 or column < 0:
                    continue
                candidate = GridCell(row=row, column=column)
                if candidate not in occupied:
                    return candidate
            radius += 1

    def entity_rect(self, step: ProcessStep) -> Optional[Rect]:
        """Box of a step, or None when its cell is malformed."""
        if not is_valid_cell(step.cell):
            logger.debug("Skipping step %s with invalid cell %r", step.id, step.cell)
            return None
        origin = self.grid_to_pixel(step.cell)
        return self.rect_at(origin)

    def rect_at(self, origin: Point) -> Rect:
        return Rect(origin.x, origin.y, self.config.entity_width, self.config.entity_height)

    def output_port(self, step: ProcessStep) -> Optional[Point]:
        rect = self.entity_rect(step)
        if rect is None:
            return None
        return Point(rect.right, rect.y + rect.height / 2)

    def input_port(self, step: ProcessStep) -> Optional[Point]:
        rect = self.entity_rect(step)
        if rect is None:
            return None
        return Point(rect.x, rect.y + rect.height / 2)

    def rects(self, steps: Iterable[ProcessStep]) -> Dict[str, Rect]:
        """Boxes of every step with valid geometry, keyed by id."""
        result: Dict[str, Rect] = {}
        for step in steps:
            rect = self.entity_rect(step)
            if rect is not None:
                result[step.id] = rect
        return result

    def bounds(self, steps: Iterable[ProcessStep]) -> Optional[Rect]:
        return Rect.enclosing(self.rects(steps).values())


class BreadboardLayout:
    """Pixel geometry of the breadboard.

    Positions are a pure function of screen order and element counts and are
    recomputed on every call.
    """

    def __init__(self, config: Optional[BreadboardConfig] = None):
        self.config = config or BreadboardConfig()

    def screen_height(self, screen: Screen) -> float:
        count = len(screen.elements)
        elements_height = count * (self.config.chip_height + self.config.chip_spacing_y)
        if count > 0:
            elements_height -= self.config.chip_spacing_y
        total = self.config.header_height + self.config.elements_padding_y * 2 + elements_height
        return max(total, self.config.min_card_height)

    def cell_of(self, index: int) -> GridCell:
        return GridCell(row=index // self.config.columns, column=index % self.config.columns)

    def row_heights(self, screens: Sequence[Screen]) -> List[float]:
        """Tallest screen per grid row."""
        heights: List[float] = []
        for index, screen in enumerate(screens):
            row = index // self.config.columns
            if row == len(heights):
                heights.append(self.config.min_card_height)
            heights[row] = max(heights[row], self.screen_height(screen))
        return heights

    def _row_offsets(self, screens: Sequence[Screen]) -> List[float]:
        offsets = []
        y = float(self.config.padding_y)
        for height in self.row_heights(screens):
            offsets.append(y)
            y += height + self.config.row_gap
        return offsets

    def positions(self, screens: Sequence[Screen]) -> Dict[str, Point]:
        """Top-left pixel of every screen, keyed by id."""
        offsets = self._row_offsets(screens)
        result: Dict[str, Point] = {}
        for index, screen in enumerate(screens):
            cell = self.cell_of(index)
            result[screen.id] = Point(
                self.config.padding_x + cell.column * self.config.column_pitch,
                offsets[cell.row],
            )
        return result

    def screen_rects(self, screens: Sequence[Screen]) -> Dict[str, Rect]:
        positions = self.positions(screens)
        return {
            s.id: Rect(positions[s.id].x, positions[s.id].y, self.config.card_width, self.screen_height(s))
            for s in screens
        }

    def chip_rect(self, screen_rect: Rect, element_index: int) -> Rect:
        y = (
            screen_rect.y
            + self.config.header_height
            + self.config.elements_padding_y
            + element_index * (self.config.chip_height + self.config.chip_spacing_y)
        )
        return Rect(
            screen_rect.x + self.config.chip_inset_x,
            y,
            self.config.card_width - 2 * self.config.chip_inset_x,
            self.config.chip_height,
        )

    def element_port(self, screen_rect: Rect, element_index: int) -> Point:
        """Right-edge port of an element chip, vertically centred on it."""
        chip = self.chip_rect(screen_rect, element_index)
        return Point(screen_rect.right, chip.y + chip.height / 2)

    def screen_port(self, screen_rect: Rect) -> Point:
        """Left-edge entry dot of a screen."""
        return Point(screen_rect.x, screen_rect.y + self.config.dot_center_y)

    def element_ports(self, screens: Sequence[Screen]) -> Iterator[Tuple[str, str, Point]]:
        """Yield (screen_id, element_id, port) for every element."""
        rects = self.screen_rects(screens)
        for screen in screens:
            for index, element in enumerate(screen.elements):
                yield screen.id, element.id, self.element_port(rects[screen.id], index)

    def bounds(self, screens: Sequence[Screen]) -> Optional[Rect]:
        return Rect.enclosing(self.screen_rects(screens).values())

    def canvas_size(self, screens: Sequence[Screen], min_width: float = 0) -> Tuple[float, float]:
        """Scrollable canvas size needed to show every screen."""
        heights = self.row_heights(screens)
        rows = max(1, len(heights))
        required_height = (
            self.config.padding_y * 2
            + sum(heights or [self.config.min_card_height])
            + (rows - 1) * self.config.row_gap
        )
        columns = min(len(screens), self.config.columns)
        required_width = (
            self.config.padding_x * 2
            + columns * self.config.card_width
            + max(0, columns - 1) * self.config.col_gap
        )
        return max(min_width, required_width), max(required_height, 400)


"""
Connection Router

Computes cubic bezier paths between ports and separates connections that
would otherwise be drawn on top of each other.

Overlapping connections (close chord midpoints heading the same way, or
near-identical midpoints in any direction) are grouped and stacked into
arcs by shifting their control points upward. Backward connections, whose
target sits in an earlier grid column than their source, skip grouping and
always get a larger fixed arc so they clear the forward flow.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .geometry import Point
from .layout import BreadboardLayout, GridLayout, is_valid_cell
from .model import Connection, FlowDiagram, PrototypePlan

logger = logging.getLogger(__name__)


@dataclass
class RouterConfig:
    """Tuning constants for path synthesis and overlap separation."""
    min_control_offset: float = 60.0
    horizontal_factor: float = 0.5
    vertical_factor: float = 0.15
    arc_spacing: float = 40.0
    backward_arc_offset: float = 120.0
    overlap_distance: float = 30.0
    overlap_angle: float = 0.3  # radians
    coincident_distance: float = 6.0

    @classmethod
    def for_breadboard(cls) -> "RouterConfig":
        return cls(min_control_offset=40.0, horizontal_factor=0.35)


def bernstein_point(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    """Evaluate a cubic bezier with the Bernstein basis."""
    u = 1 - t
    b0 = u * u * u
    b1 = 3 * u * u * t
    b2 = 3 * u * t * t
    b3 = t * t * t
    return Point(
        b0 * p0.x + b1 * p1.x + b2 * p2.x + b3 * p3.x,
        b0 * p0.y + b1 * p1.y + b2 * p2.y + b3 * p3.y,
    )


def _segment_distance(point: Point, a: Point, b: Point) -> float:
    dx, dy = b.x - a.x, b.y - a.y
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return point.distance_to(a)
    t = max(0.0, min(1.0, ((point.x - a.x) * dx + (point.y - a.y) * dy) / length_sq))
    return point.distance_to(Point(a.x + t * dx, a.y + t * dy))


@dataclass(frozen=True)
class BezierPath:
    """A single cubic bezier segment."""
    start: Point
    c1: Point
    c2: Point
    end: Point

    def point_at(self, t: float) -> Point:
        return bernstein_point(self.start, self.c1, self.c2, self.end, t)

    def tangent_at(self, t: float) -> Point:
        """First derivative at ``t`` (direction of travel)."""
        u = 1 - t
        return Point(
            3 * u * u * (self.c1.x - self.start.x)
            + 6 * u * t * (self.c2.x - self.c1.x)
            + 3 * t * t * (self.end.x - self.c2.x),
            3 * u * u * (self.c1.y - self.start.y)
            + 6 * u * t * (self.c2.y - self.c1.y)
            + 3 * t * t * (self.end.y - self.c2.y),
        )

    @property
    def midpoint(self) -> Point:
        """Point on the curve at t=0.5, where labels are anchored."""
        return self.point_at(0.5)

    def sample(self, count: int = 32) -> List[Point]:
        return [self.point_at(i / count) for i in range(count + 1)]

    def distance_to(self, point: Point, samples: int = 32) -> float:
        pts = self.sample(samples)
        return min(_segment_distance(point, a, b) for a, b in zip(pts, pts[1:]))

    def to_svg(self) -> str:
        return (
            f"M {self.start.x:.2f} {self.start.y:.2f} "
            f"C {self.c1.x:.2f} {self.c1.y:.2f}, "
            f"{self.c2.x:.2f} {self.c2.y:.2f}, "
            f"{self.end.x:.2f} {self.end.y:.2f}"
        )


@dataclass(frozen=True)
class ConnectionSegment:
    """Straight chord of a connection, the input to overlap grouping."""
    connection_id: str
    start: Point
    end: Point
    backward: bool = False

    @property
    def midpoint(self) -> Point:
        return Point((self.start.x + self.end.x) / 2, (self.start.y + self.end.y) / 2)

    @property
    def angle(self) -> float:
        return math.atan2(self.end.y - self.start.y, self.end.x - self.start.x)


@dataclass
class RoutedConnection:
    """A connection resolved to drawable geometry."""
    connection: Connection
    path: BezierPath
    arc_offset: float = 0.0
    backward: bool = False

    @property
    def label_position(self) -> Point:
        return self.path.midpoint


@dataclass
class RoutingResult:
    routes: List[RoutedConnection] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)  # connection ids with missing endpoints

    def by_id(self) -> Dict[str, RoutedConnection]:
        return {r.connection.id: r for r in self.routes}


def _angle_difference(a: float, b: float) -> float:
    diff = abs(a - b) % (2 * math.pi)
    return 2 * math.pi - diff if diff > math.pi else diff


class ConnectionRouter:
    """Turns port pairs into bezier paths with overlap-aware arc offsets."""

    def __init__(self, config: Optional[RouterConfig] = None):
        self.config = config or RouterConfig()

    def control_points(self, start: Point, end: Point, arc_offset: float = 0.0) -> Tuple[Point, Point]:
        dx = abs(end.x - start.x)
        dy = abs(end.y - start.y)
        offset = max(self.config.min_control_offset, dx * self.config.horizontal_factor)
        offset += dy * self.config.vertical_factor
        return (
            Point(start.x + offset, start.y - arc_offset),
            Point(end.x - offset, end.y - arc_offset),
        )

    def build_path(self, start: Point, end: Point, arc_offset: float = 0.0) -> BezierPath:
        c1, c2 = self.control_points(start, end, arc_offset)
        return BezierPath(start, c1, c2, end)

    def overlaps(self, a: ConnectionSegment, b: ConnectionSegment) -> bool:
        distance = a.midpoint.distance_to(b.midpoint)
        if distance < self.config.coincident_distance:
            return True
        return (
            distance < self.config.overlap_distance
            and _angle_difference(a.angle, b.angle) < self.config.overlap_angle
        )

    def group_overlaps(self, segments: Sequence[ConnectionSegment]) -> List[List[ConnectionSegment]]:
        """Single-pass grouping: each unprocessed segment anchors a group
        that collects every later unprocessed segment overlapping it."""
        groups: List[List[ConnectionSegment]] = []
        processed = set()
        for i, anchor in enumerate(segments):
            if i in processed:
                continue
            processed.add(i)
            group = [anchor]
            for j in range(i + 1, len(segments)):
                if j not in processed and self.overlaps(anchor, segments[j]):
                    group.append(segments[j])
                    processed.add(j)
            groups.append(group)
        return groups

    def assign_arc_offsets(self, segments: Sequence[ConnectionSegment]) -> Dict[str, float]:
        offsets: Dict[str, float] = {}
        forward = []
        for segment in segments:
            if segment.backward:
                offsets[segment.connection_id] = self.config.backward_arc_offset
            else:
                forward.append(segment)

        for group in self.group_overlaps(forward):
            for index, segment in enumerate(group):
                offsets[segment.connection_id] = index * self.config.arc_spacing
        return offsets

    def _route_segments(
        self,
        segments: List[ConnectionSegment],
        connections: Dict[str, Connection],
        unresolved: List[str],
    ) -> RoutingResult:
        offsets = self.assign_arc_offsets(segments)
        routes = [
            RoutedConnection(
                connection=connections[seg.connection_id],
                path=self.build_path(seg.start, seg.end, offsets[seg.connection_id]),
                arc_offset=offsets[seg.connection_id],
                backward=seg.backward,
            )
            for seg in segments
        ]
        return RoutingResult(routes=routes, unresolved=unresolved)

    def route_flow(self, diagram: FlowDiagram, layout: GridLayout) -> RoutingResult:
        """Route every process connection from source output port to target input port."""
        steps = {s.id: s for s in diagram.steps if is_valid_cell(s.cell)}
        segments: List[ConnectionSegment] = []
        unresolved: List[str] = []

        for conn in diagram.connections:
            source = steps.get(conn.source_id)
            target = steps.get(conn.target_id)
            if source is None or target is None:
                logger.debug("Connection %s has an unresolved endpoint", conn.id)
                unresolved.append(conn.id)
                continue
            segments.append(
                ConnectionSegment(
                    connection_id=conn.id,
                    start=layout.output_port(source),
                    end=layout.input_port(target),
                    backward=target.cell.column < source.cell.column,
                )
            )

        return self._route_segments(segments, {c.id: c for c in diagram.connections}, unresolved)

    def route_breadboard(self, plan: PrototypePlan, layout: BreadboardLayout) -> RoutingResult:
        """Route element ports to target screen entry dots."""
        rects = layout.screen_rects(plan.screens)
        index_of = {s.id: i for i, s in enumerate(plan.screens)}
        element_ports: Dict[str, Tuple[str, Point]] = {
            element_id: (screen_id, port)
            for screen_id, element_id, port in layout.element_ports(plan.screens)
        }
        segments: List[ConnectionSegment] = []
        unresolved: List[str] = []

        for conn in plan.connections:
            source = element_ports.get(conn.source_id)
            if source is None or conn.target_id not in rects:
                logger.debug("Connection %s has an unresolved endpoint", conn.id)
                unresolved.append(conn.id)
                continue
            source_screen_id, start = source
            source_column = layout.cell_of(index_of[source_screen_id]).column
            target_column = layout.cell_of(index_of[conn.target_id]).column
            segments.append(
                ConnectionSegment(
                    connection_id=conn.id,
                    start=start,
                    end=layout.screen_port(rects[conn.target_id]),
                    backward=target_column < source_column,
                )
            )

        return self._route_segments(segments, {c.id: c for c in plan.connections}, unresolved)

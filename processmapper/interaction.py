"""
Interaction

Pointer/keyboard driven editing of the two diagram kinds.

Controllers consume windowing-system independent events from an injected
ViewportEventSource, hit-test them against the current layout, mutate the
host-owned diagram and report every change through DiagramCallbacks. All
visual interaction state lives in one InteractionState record so every
transition is observable and testable.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Union

from .geometry import WHEEL_ZOOM_FACTOR, Point, Rect, ViewportTransform
from .layout import BreadboardLayout, GridLayout, is_valid_cell
from .model import (
    Connection,
    FlowDiagram,
    GridCell,
    ProcessStep,
    PrototypePlan,
    Screen,
    SubElement,
    new_id,
)
from .router import ConnectionRouter, RouterConfig, RoutingResult

logger = logging.getLogger(__name__)

# Screen-pixel tolerances, converted to canvas space with the current zoom
PORT_HIT_SLOP = 4
CONNECTION_HIT_TOLERANCE = 6
LABEL_CHAR_WIDTH = 7
LABEL_HEIGHT = 20


class Mode(Enum):
    IDLE = "idle"
    PANNING_CANVAS = "panning_canvas"
    ENTITY_SELECTED = "entity_selected"
    DRAGGING_ENTITY = "dragging_entity"
    PLACING_NEW_ENTITY = "placing_new_entity"
    CONNECTING_FROM_PORT = "connecting_from_port"


@dataclass
class InteractionState:
    """Everything the renderer needs to know about the ongoing interaction."""
    mode: Mode = Mode.IDLE
    selected_entity_id: Optional[str] = None
    selected_connection_id: Optional[str] = None
    connecting_from: Optional[str] = None  # step id or sub-element id
    connecting_port: Optional[str] = None  # port the connection started from
    editing_id: Optional[str] = None  # connection whose label is being edited
    editing_text: str = ""
    detail_panel_open: bool = False
    hovered_connection_id: Optional[str] = None
    # Pointer bookkeeping
    press_point: Optional[Point] = None  # screen space
    last_pointer: Optional[Point] = None  # screen space
    drag_armed: bool = False
    drag_position: Optional[Point] = None  # canvas-space top-left of the dragged entity

    @property
    def is_editing(self) -> bool:
        return self.editing_id is not None

    def clear_selection(self) -> None:
        self.selected_entity_id = None
        self.selected_connection_id = None
        self.detail_panel_open = False

    def clear_pointer(self) -> None:
        self.press_point = None
        self.last_pointer = None
        self.drag_armed = False
        self.drag_position = None

    def clear_editing(self) -> None:
        self.editing_id = None
        self.editing_text = ""

    def forget_connection(self, connection_id: str) -> None:
        """Drop every reference to a connection that no longer exists."""
        if self.selected_connection_id == connection_id:
            self.selected_connection_id = None
        if self.hovered_connection_id == connection_id:
            self.hovered_connection_id = None
        if self.editing_id == connection_id:
            self.clear_editing()


@dataclass(frozen=True)
class PointerEvent:
    """Pointer press/move/release in screen pixels."""
    x: float
    y: float
    button: int = 0
    click_count: int = 1

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


@dataclass(frozen=True)
class WheelEvent:
    delta_x: float = 0.0
    delta_y: float = 0.0
    ctrl: bool = False
    meta: bool = False


@dataclass(frozen=True)
class KeyEvent:
    key: str  # 'Escape', 'Enter', 'Delete', 'Backspace' or a printable character


@dataclass(frozen=True)
class ResizeEvent:
    width: float
    height: float


class EventHandler(Protocol):
    def on_resize(self, event: ResizeEvent) -> None: ...

    def on_pointer_down(self, event: PointerEvent) -> None: ...

    def on_pointer_move(self, event: PointerEvent) -> None: ...

    def on_pointer_up(self, event: PointerEvent) -> None: ...

    def on_wheel(self, event: WheelEvent) -> None: ...

    def on_key_down(self, event: KeyEvent) -> None: ...


class ViewportEventSource(Protocol):
    """Anything able to feed viewport events to handlers (a window, a widget, a test)."""

    def attach(self, handler: EventHandler) -> None: ...

    def detach(self, handler: EventHandler) -> None: ...


class EventDispatcher:
    """In-process ViewportEventSource that fans events out to attached handlers."""

    def __init__(self):
        self._handlers: List[EventHandler] = []

    def attach(self, handler: EventHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def detach(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def resize(self, width: float, height: float) -> None:
        for handler in list(self._handlers):
            handler.on_resize(ResizeEvent(width, height))

    def pointer_down(self, x: float, y: float, button: int = 0, click_count: int = 1) -> None:
        for handler in list(self._handlers):
            handler.on_pointer_down(PointerEvent(x, y, button, click_count))

    def pointer_move(self, x: float, y: float) -> None:
        for handler in list(self._handlers):
            handler.on_pointer_move(PointerEvent(x, y))

    def pointer_up(self, x: float, y: float) -> None:
        for handler in list(self._handlers):
            handler.on_pointer_up(PointerEvent(x, y))

    def click(self, x: float, y: float, click_count: int = 1) -> None:
        self.pointer_down(x, y, click_count=click_count)
        self.pointer_up(x, y)

    def wheel(self, delta_x: float = 0.0, delta_y: float = 0.0, ctrl: bool = False, meta: bool = False) -> None:
        for handler in list(self._handlers):
            handler.on_wheel(WheelEvent(delta_x, delta_y, ctrl, meta))

    def key(self, key: str) -> None:
        for handler in list(self._handlers):
            handler.on_key_down(KeyEvent(key))

    def type_text(self, text: str) -> None:
        for char in text:
            self.key(char)


Entity = Union[ProcessStep, Screen]


class DiagramCallbacks:
    """Change notifications sent to the host. Override what you need."""

    def entity_added(self, entity: Entity) -> None:
        pass

    def entity_updated(self, entity: Entity) -> None:
        pass

    def entity_removed(self, entity: Entity) -> None:
        pass

    def connection_added(self, connection: Connection) -> None:
        pass

    def connection_removed(self, connection: Connection) -> None:
        pass

    def connection_updated(self, connection: Connection) -> None:
        pass


class HitKind(Enum):
    PORT = "port"
    ENTITY = "entity"
    LABEL = "label"
    CONNECTION = "connection"
    CANVAS = "canvas"


@dataclass(frozen=True)
class Hit:
    kind: HitKind
    target_id: Optional[str] = None
    port: Optional[str] = None  # 'in'/'out' on the process canvas, 'element'/'screen' on the breadboard


CANVAS_HIT = Hit(HitKind.CANVAS)


def label_rect(anchor: Point, text: str) -> Rect:
    """Approximate box of a mid-path label centred on ``anchor``."""
    width = max(24, len(text) * LABEL_CHAR_WIDTH + 16)
    return Rect(anchor.x - width / 2, anchor.y - LABEL_HEIGHT / 2, width, LABEL_HEIGHT)


class _BaseController:
    """Event source binding, viewport bookkeeping and callbacks shared by both controllers."""

    def __init__(self, callbacks: Optional[DiagramCallbacks] = None):
        self.callbacks = callbacks or DiagramCallbacks()
        self.state = InteractionState()
        self.transform = ViewportTransform()
        self.viewport_width = 0.0
        self.viewport_height = 0.0
        self._sources: List[ViewportEventSource] = []

    def bind(self, source: ViewportEventSource) -> None:
        source.attach(self)
        self._sources.append(source)

    def unbind(self) -> None:
        for source in self._sources:
            source.detach(self)
        self._sources = []

    def _tolerance(self, screen_pixels: float) -> float:
        return screen_pixels / self.transform.scale

    def _canvas_point(self, event: PointerEvent) -> Point:
        return self.transform.to_canvas(event.point)

    def _connection_removed(self, conn: Connection) -> None:
        self.state.forget_connection(conn.id)
        self.callbacks.connection_removed(conn)

    def on_wheel(self, event: WheelEvent) -> None:
        self.transform.pan_by(-event.delta_x, -event.delta_y)


class ProcessCanvasController(_BaseController):
    """State machine for the free-form process canvas."""

    def __init__(
        self,
        diagram: FlowDiagram,
        callbacks: Optional[DiagramCallbacks] = None,
        layout: Optional[GridLayout] = None,
        router: Optional[ConnectionRouter] = None,
    ):
        super().__init__(callbacks)
        self.diagram = diagram
        self.layout = layout or GridLayout()
        self.router = router or ConnectionRouter()

    # --- Derived geometry -------------------------------------------------

    def routes(self) -> RoutingResult:
        """Route all connections from the current committed positions."""
        self.prune_orphans()
        return self.router.route_flow(self.diagram, self.layout)

    def prune_orphans(self) -> List[Connection]:
        """Drop connections whose source or target step no longer exists."""
        step_ids = {s.id for s in self.diagram.steps}
        orphan_ids = [
            c.id for c in self.diagram.connections
            if c.source_id not in step_ids or c.target_id not in step_ids
        ]
        removed = self.diagram.prune_connections(orphan_ids)
        for conn in removed:
            logger.info("Pruned orphaned connection %s", conn.id)
            self._connection_removed(conn)
        return removed

    def hit_test(self, point: Point) -> Hit:
        """Resolve a canvas-space point to the topmost element under it."""
        port_reach = self.layout.config.port_radius + self._tolerance(PORT_HIT_SLOP)
        for step in reversed(self.diagram.steps):
            for port_name, port in (("out", self.layout.output_port(step)), ("in", self.layout.input_port(step))):
                if port is not None and port.distance_to(point) <= port_reach:
                    return Hit(HitKind.PORT, step.id, port_name)

        for step in reversed(self.diagram.steps):
            rect = self.layout.entity_rect(step)
            if rect is not None and rect.contains(point):
                return Hit(HitKind.ENTITY, step.id)

        routes = self.router.route_flow(self.diagram, self.layout).routes
        for route in routes:
            if route.connection.label and label_rect(route.label_position, route.connection.label).contains(point):
                return Hit(HitKind.LABEL, route.connection.id)

        tolerance = self._tolerance(CONNECTION_HIT_TOLERANCE)
        for route in routes:
            if route.path.distance_to(point) <= tolerance:
                return Hit(HitKind.CONNECTION, route.connection.id)

        return CANVAS_HIT

    def drop_target(self) -> Optional[GridCell]:
        """Cell the dragged entity would snap to if released now."""
        if self.state.mode != Mode.DRAGGING_ENTITY or self.state.drag_position is None:
            return None
        target = self.layout.pixel_to_grid(self.state.drag_position.x, self.state.drag_position.y)
        occupied = self.diagram.occupied_cells(exclude=self.state.selected_entity_id)
        return self.layout.find_nearest_free_cell(target, occupied)

    def detail_panel_anchor(self) -> Optional[Point]:
        """Screen position for the floating detail panel of the selected step."""
        if not self.state.detail_panel_open or self.state.selected_entity_id is None:
            return None
        step = self.diagram.get_step(self.state.selected_entity_id)
        rect = self.layout.entity_rect(step) if step else None
        if rect is None:
            return None
        return self.transform.to_screen(Point(rect.right, rect.y))

    # --- Commands -----------------------------------------------------------

    def load(self, diagram: Optional[FlowDiagram] = None) -> None:
        """Adopt a (new) diagram: reset interaction, prune orphans, fit once."""
        if diagram is not None:
            self.diagram = diagram
        self.state = InteractionState()
        self.prune_orphans()
        self.fit_to_frame()

    def fit_to_frame(self) -> None:
        self.transform.fit_to_frame(
            self.layout.bounds(self.diagram.steps), self.viewport_width, self.viewport_height
        )

    def zoom_in(self) -> None:
        self.transform.zoom_in()

    def zoom_out(self) -> None:
        self.transform.zoom_out()

    def begin_placing(self) -> None:
        """Enter placement mode for a new step."""
        self._reset_modes()
        self.state.mode = Mode.PLACING_NEW_ENTITY

    def begin_connecting(self, step_id: str, port: str = "out") -> None:
        """Start a connection from one of the step's ports ('out' or 'in')."""
        if self.diagram.get_step(step_id) is None:
            return
        self._reset_modes()
        self.state.mode = Mode.CONNECTING_FROM_PORT
        self.state.connecting_from = step_id
        self.state.connecting_port = port

    def cancel(self) -> None:
        """Leave any transient mode without side effects."""
        self._reset_modes()

    def place_entity(self, cell: GridCell, title: str = "New Step") -> ProcessStep:
        """Create a step at ``cell`` or the nearest free cell, and select it."""
        free = self.layout.find_nearest_free_cell(cell, self.diagram.occupied_cells())
        step = self.diagram.add_step(ProcessStep(id=new_id("step"), title=title, cell=free))
        logger.debug("Placed step %s at (%d, %d)", step.id, free.row, free.column)
        self.callbacks.entity_added(step)
        self._select_entity(step.id)
        return step

    def update_entity(self, step_id: str, **changes) -> ProcessStep:
        """Edit step fields from the detail panel. An occupied cell is relocated like a drop."""
        cell = changes.get("cell")
        if cell is not None and is_valid_cell(cell):
            occupied = self.diagram.occupied_cells(exclude=step_id)
            changes["cell"] = self.layout.find_nearest_free_cell(cell, occupied)
        step = self.diagram.update_step(step_id, **changes)
        self.callbacks.entity_updated(step)
        return step

    def connect(self, source_id: str, target_id: str) -> Optional[Connection]:
        conn = self.diagram.add_connection(source_id, target_id)
        if conn is not None:
            self.callbacks.connection_added(conn)
        return conn

    def delete_entity(self, step_id: str) -> None:
        step = self.diagram.get_step(step_id)
        if step is None:
            return
        for conn in self.diagram.remove_step(step_id):
            self._connection_removed(conn)
        self.callbacks.entity_removed(step)
        if step_id in (self.state.selected_entity_id, self.state.connecting_from):
            self._reset_modes()

    def delete_connection(self, connection_id: str) -> None:
        conn = self.diagram.remove_connection(connection_id)
        if conn is None:
            return
        self._connection_removed(conn)

    def delete_selection(self) -> None:
        if self.state.selected_connection_id is not None:
            self.delete_connection(self.state.selected_connection_id)
        elif self.state.selected_entity_id is not None and self.state.mode == Mode.ENTITY_SELECTED:
            self.delete_entity(self.state.selected_entity_id)

    def begin_label_edit(self, connection_id: str) -> None:
        conn = self.diagram.get_connection(connection_id)
        if conn is None:
            return
        self.state.selected_connection_id = connection_id
        self.state.editing_id = connection_id
        self.state.editing_text = conn.label or ""

    def commit_label_edit(self) -> None:
        if not self.state.is_editing:
            return
        conn = self.diagram.set_connection_label(self.state.editing_id, self.state.editing_text.strip())
        self.state.clear_editing()
        if conn is not None:
            self.callbacks.connection_updated(conn)

    def cancel_label_edit(self) -> None:
        self.state.clear_editing()

    # --- Event handlers -----------------------------------------------------

    def on_resize(self, event: ResizeEvent) -> None:
        self.viewport_width = event.width
        self.viewport_height = event.height
        self.fit_to_frame()

    def on_wheel(self, event: WheelEvent) -> None:
        if event.ctrl or event.meta:
            self.transform.zoom_by(-event.delta_y * WHEEL_ZOOM_FACTOR)
        else:
            self.transform.pan_by(-event.delta_x, -event.delta_y)

    def on_pointer_down(self, event: PointerEvent) -> None:
        if event.button != 0:
            return
        if self.state.is_editing:
            self.commit_label_edit()

        point = self._canvas_point(event)
        mode = self.state.mode

        if mode == Mode.PLACING_NEW_ENTITY:
            self.place_entity(self.layout.cell_at(point))
            return

        hit = self.hit_test(point)

        if mode == Mode.CONNECTING_FROM_PORT:
            self._handle_connect_press(hit)
            return

        if hit.kind == HitKind.PORT:
            self.begin_connecting(hit.target_id, hit.port)
        elif hit.kind == HitKind.ENTITY:
            self._handle_entity_press(hit.target_id, event.point)
        elif hit.kind in (HitKind.CONNECTION, HitKind.LABEL):
            self._select_connection(hit.target_id)
            if event.click_count >= 2:
                self.begin_label_edit(hit.target_id)
        else:
            self.state.clear_selection()
            self.state.mode = Mode.PANNING_CANVAS
            self.state.last_pointer = event.point

    def on_pointer_move(self, event: PointerEvent) -> None:
        mode = self.state.mode

        if mode == Mode.PANNING_CANVAS and self.state.last_pointer is not None:
            self.transform.pan_by(event.x - self.state.last_pointer.x, event.y - self.state.last_pointer.y)
            self.state.last_pointer = event.point
            return

        if mode in (Mode.ENTITY_SELECTED, Mode.DRAGGING_ENTITY) and self.state.drag_armed:
            step = self._dragged_step()
            if step is None:
                self._cancel_drag()
                return
            press = self.state.press_point
            if mode == Mode.ENTITY_SELECTED:
                if press.distance_to(event.point) <= self.layout.config.drag_threshold:
                    return
                self.state.mode = Mode.DRAGGING_ENTITY
            origin = self.layout.grid_to_pixel(step.cell)
            self.state.drag_position = origin.offset(
                (event.x - press.x) / self.transform.scale,
                (event.y - press.y) / self.transform.scale,
            )
            return

        hit = self.hit_test(self._canvas_point(event))
        hovered = hit.target_id if hit.kind in (HitKind.CONNECTION, HitKind.LABEL) else None
        self.state.hovered_connection_id = hovered

    def on_pointer_up(self, event: PointerEvent) -> None:
        mode = self.state.mode
        if mode == Mode.PANNING_CANVAS:
            self.state.mode = Mode.IDLE
            self.state.clear_pointer()
        elif mode == Mode.DRAGGING_ENTITY:
            self._commit_drag()
        elif self.state.drag_armed:
            self.state.clear_pointer()

    def on_key_down(self, event: KeyEvent) -> None:
        key = event.key

        if self.state.is_editing:
            if key == "Enter":
                self.commit_label_edit()
            elif key == "Escape":
                self.cancel_label_edit()
            elif key == "Backspace":
                self.state.editing_text = self.state.editing_text[:-1]
            elif len(key) == 1:
                self.state.editing_text += key
            return

        if key == "Escape":
            if self.state.mode == Mode.DRAGGING_ENTITY:
                self._cancel_drag()
            elif self.state.mode in (Mode.PLACING_NEW_ENTITY, Mode.CONNECTING_FROM_PORT):
                self._reset_modes()
            else:
                self.state.clear_selection()
                self.state.mode = Mode.IDLE
        elif key in ("Delete", "Backspace"):
            self.delete_selection()

    # --- Internals ------------------------------------------------------------

    def _reset_modes(self) -> None:
        self.state.clear_selection()
        self.state.clear_pointer()
        self.state.clear_editing()
        self.state.connecting_from = None
        self.state.connecting_port = None
        self.state.mode = Mode.IDLE

    def _select_entity(self, step_id: str) -> None:
        self.state.clear_pointer()
        self.state.selected_connection_id = None
        self.state.selected_entity_id = step_id
        self.state.detail_panel_open = True
        self.state.mode = Mode.ENTITY_SELECTED

    def _select_connection(self, connection_id: str) -> None:
        self.state.clear_selection()
        self.state.clear_pointer()
        self.state.selected_connection_id = connection_id
        self.state.mode = Mode.IDLE

    def _handle_entity_press(self, step_id: str, screen_point: Point) -> None:
        if self.state.mode == Mode.ENTITY_SELECTED and self.state.selected_entity_id == step_id:
            self.state.drag_armed = True
            self.state.press_point = screen_point
        else:
            self._select_entity(step_id)

    def _handle_connect_press(self, hit: Hit) -> None:
        source_id = self.state.connecting_from
        if hit.kind != HitKind.PORT:
            return
        if hit.target_id == source_id:
            if hit.port == self.state.connecting_port:
                self._reset_modes()
            # Other ports of the source step are not valid targets
            return
        if self.state.connecting_port == "in":
            # Started on an input port: the clicked step feeds into it
            self.connect(hit.target_id, source_id)
        else:
            self.connect(source_id, hit.target_id)
        self._reset_modes()

    def _dragged_step(self) -> Optional[ProcessStep]:
        step_id = self.state.selected_entity_id
        step = self.diagram.get_step(step_id) if step_id else None
        if step is None or not is_valid_cell(step.cell):
            return None
        return step

    def _cancel_drag(self) -> None:
        self.state.clear_pointer()
        if self._dragged_step() is None:
            logger.debug("Dragged step disappeared, cancelling drag")
            self._reset_modes()
        else:
            self.state.mode = Mode.ENTITY_SELECTED

    def _commit_drag(self) -> None:
        step = self._dragged_step()
        cell = self.drop_target()
        if step is None or cell is None:
            self._cancel_drag()
            return
        if cell != step.cell:
            self.diagram.move_step(step.id, cell)
            logger.debug("Moved step %s to (%d, %d)", step.id, cell.row, cell.column)
            self.callbacks.entity_updated(step)
        self.state.clear_pointer()
        self.state.mode = Mode.ENTITY_SELECTED


class BreadboardController(_BaseController):
    """Reduced state machine for the screen breadboard.

    Connections run from a sub-element port to a screen entry dot. The
    breadboard scrolls but does not zoom; positions always come from the
    screen order.
    """

    def __init__(
        self,
        plan: PrototypePlan,
        callbacks: Optional[DiagramCallbacks] = None,
        layout: Optional[BreadboardLayout] = None,
        router: Optional[ConnectionRouter] = None,
    ):
        super().__init__(callbacks)
        self.plan = plan
        self.layout = layout or BreadboardLayout()
        self.router = router or ConnectionRouter(RouterConfig.for_breadboard())

    def routes(self) -> RoutingResult:
        self.prune_orphans()
        return self.router.route_breadboard(self.plan, self.layout)

    def prune_orphans(self) -> List[Connection]:
        removed = self.plan.prune_connections(c.id for c in self.plan.orphaned_connections())
        for conn in removed:
            logger.info("Pruned orphaned connection %s", conn.id)
            self._connection_removed(conn)
        return removed

    def load(self, plan: Optional[PrototypePlan] = None) -> None:
        if plan is not None:
            self.plan = plan
        self.state = InteractionState()
        self.transform.reset()
        self.prune_orphans()

    def canvas_size(self):
        return self.layout.canvas_size(self.plan.screens, min_width=self.viewport_width)

    def can_connect_to(self, screen_id: str) -> bool:
        """Whether a screen dot is a valid target for the pending connection."""
        source = self.state.connecting_from
        return source is not None and self.plan.can_connect(source, screen_id)

    def hit_test(self, point: Point) -> Hit:
        reach = self.layout.config.port_radius + self._tolerance(PORT_HIT_SLOP)
        rects = self.layout.screen_rects(self.plan.screens)

        for _screen_id, element_id, port in self.layout.element_ports(self.plan.screens):
            if port.distance_to(point) <= reach:
                return Hit(HitKind.PORT, element_id, "element")

        dot_reach = self.layout.config.dot_size / 2 + self._tolerance(PORT_HIT_SLOP)
        for screen in self.plan.screens:
            if self.layout.screen_port(rects[screen.id]).distance_to(point) <= dot_reach:
                return Hit(HitKind.PORT, screen.id, "screen")

        for screen in reversed(self.plan.screens):
            if rects[screen.id].contains(point):
                return Hit(HitKind.ENTITY, screen.id)

        tolerance = self._tolerance(CONNECTION_HIT_TOLERANCE)
        for route in self.router.route_breadboard(self.plan, self.layout).routes:
            if route.path.distance_to(point) <= tolerance:
                return Hit(HitKind.CONNECTION, route.connection.id)

        return CANVAS_HIT

    # --- Commands -------------------------------------------------------------

    def add_screen(self, title: str = "New Screen") -> Screen:
        screen = self.plan.add_screen(title)
        self.callbacks.entity_added(screen)
        return screen

    def rename_screen(self, screen_id: str, title: str) -> None:
        screen = self.plan.update_screen_title(screen_id, title)
        if screen is not None:
            self.callbacks.entity_updated(screen)

    def delete_screen(self, screen_id: str) -> None:
        screen = self.plan.get_screen(screen_id)
        if screen is None:
            return
        element_ids = {e.id for e in screen.elements}
        for conn in self.plan.remove_screen(screen_id):
            self._connection_removed(conn)
        self.callbacks.entity_removed(screen)
        if self.state.selected_entity_id == screen_id:
            self.state.clear_selection()
            self.state.mode = Mode.IDLE
        if self.state.connecting_from in element_ids:
            self._stop_connecting()

    def add_element(self, screen_id: str, element_type: str = "info", label: Optional[str] = None) -> Optional[SubElement]:
        element = self.plan.add_element(screen_id, element_type, label)
        if element is not None:
            self.callbacks.entity_updated(self.plan.get_screen(screen_id))
        return element

    def rename_element(self, element_id: str, label: str) -> None:
        element = self.plan.update_element_label(element_id, label)
        if element is not None:
            self.callbacks.entity_updated(self.plan.get_screen(element.screen_id))

    def delete_element(self, element_id: str) -> None:
        screen = self.plan.screen_of_element(element_id)
        if screen is None:
            return
        for conn in self.plan.remove_element(element_id):
            self._connection_removed(conn)
        self.callbacks.entity_updated(screen)
        if self.state.connecting_from == element_id:
            self._stop_connecting()

    def delete_connection(self, connection_id: str) -> None:
        conn = self.plan.remove_connection(connection_id)
        if conn is None:
            return
        self._connection_removed(conn)

    # --- Event handlers -------------------------------------------------------

    def on_resize(self, event: ResizeEvent) -> None:
        self.viewport_width = event.width
        self.viewport_height = event.height

    def on_pointer_down(self, event: PointerEvent) -> None:
        if event.button != 0:
            return
        hit = self.hit_test(self._canvas_point(event))

        if hit.kind == HitKind.PORT and hit.port == "element":
            if self.state.connecting_from == hit.target_id:
                self._stop_connecting()
            else:
                self.state.clear_selection()
                self.state.connecting_from = hit.target_id
                self.state.mode = Mode.CONNECTING_FROM_PORT
            return

        if self.state.mode == Mode.CONNECTING_FROM_PORT:
            if hit.kind == HitKind.PORT and self.can_connect_to(hit.target_id):
                conn = self.plan.add_connection(self.state.connecting_from, hit.target_id)
                if conn is not None:
                    self.callbacks.connection_added(conn)
                self._stop_connecting()
            return

        if hit.kind in (HitKind.PORT, HitKind.ENTITY):
            self.state.clear_selection()
            self.state.selected_entity_id = hit.target_id
            self.state.mode = Mode.ENTITY_SELECTED
        elif hit.kind == HitKind.CONNECTION:
            self.state.clear_selection()
            self.state.selected_connection_id = hit.target_id
            self.state.mode = Mode.IDLE
        else:
            self.state.clear_selection()
            self.state.mode = Mode.IDLE

    def on_pointer_move(self, event: PointerEvent) -> None:
        hit = self.hit_test(self._canvas_point(event))
        self.state.hovered_connection_id = hit.target_id if hit.kind == HitKind.CONNECTION else None

    def on_pointer_up(self, event: PointerEvent) -> None:
        pass

    def on_key_down(self, event: KeyEvent) -> None:
        if event.key == "Escape":
            if self.state.mode == Mode.CONNECTING_FROM_PORT:
                self._stop_connecting()
            else:
                self.state.clear_selection()
                self.state.mode = Mode.IDLE
        elif event.key in ("Delete", "Backspace"):
            if self.state.selected_connection_id is not None:
                self.delete_connection(self.state.selected_connection_id)
            elif self.state.selected_entity_id is not None:
                self.delete_screen(self.state.selected_entity_id)

    def _stop_connecting(self) -> None:
        self.state.connecting_from = None
        self.state.mode = Mode.IDLE

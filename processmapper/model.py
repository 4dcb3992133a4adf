"""
Diagram Model

In-memory entity graphs for the two diagram kinds:
- FlowDiagram: process steps placed on explicit (row, column) grid cells
- PrototypePlan: screens laid out by list order, each holding typed
  sub-elements that act as connection sources

Both containers own their cascade rules so a connection can never outlive
the entity or sub-element it references.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

STEP_TYPES = ("step", "branch", "note", "subprocess", "start", "end")
STEP_TAGS = ("friction", "handoff", "automated", "trigger")
DURATION_UNITS = ("minutes", "hours", "days", "weeks")
ELEMENT_TYPES = ("info", "action", "input")


def new_id(prefix: str) -> str:
    """Generate a unique identifier such as ``step-1f2e3d4c5b6a``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class GridCell:
    """Logical (row, column) cell on the process canvas."""
    row: int
    column: int


@dataclass
class Duration:
    value: float
    unit: str = "minutes"  # 'minutes', 'hours', 'days', 'weeks'


@dataclass
class Attachment:
    name: str
    kind: str = "file"  # 'file' or 'link'
    url: Optional[str] = None


@dataclass
class ProcessStep:
    """A process-canvas entity."""
    id: str
    title: str
    cell: GridCell
    step_type: str = "step"
    role: Optional[str] = None
    tools: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    duration: Optional[Duration] = None
    attachments: List[Attachment] = field(default_factory=list)


@dataclass
class SubElement:
    """A typed UI placeholder inside a screen."""
    id: str
    label: str
    screen_id: str
    element_type: str = "info"  # 'info', 'action', 'input'


@dataclass
class Screen:
    """A breadboard entity. Its position is derived from its list index."""
    id: str
    title: str
    elements: List[SubElement] = field(default_factory=list)


@dataclass
class Connection:
    """A directed link from a source (entity or sub-element) to a target entity."""
    id: str
    source_id: str
    target_id: str
    label: Optional[str] = None


@dataclass
class FlowDiagram:
    """Process steps on a logical grid plus the connections between them."""

    title: str = "Untitled Process"
    steps: List[ProcessStep] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)

    def get_step(self, step_id: str) -> Optional[ProcessStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def occupied_cells(self, exclude: Optional[str] = None) -> Set[GridCell]:
        """Cells currently taken, optionally ignoring one step (e.g. the one being dragged)."""
        return {s.cell for s in self.steps if s.id != exclude}

    def is_cell_free(self, cell: GridCell, exclude: Optional[str] = None) -> bool:
        return cell not in self.occupied_cells(exclude)

    def add_step(self, step: ProcessStep) -> ProcessStep:
        if self.get_step(step.id) is not None:
            raise ValueError(f"Duplicate step id: {step.id}")
        if not self.is_cell_free(step.cell):
            raise ValueError(f"Cell ({step.cell.row}, {step.cell.column}) is already occupied")
        self.steps.append(step)
        return step

    def move_step(self, step_id: str, cell: GridCell) -> ProcessStep:
        step = self.get_step(step_id)
        if step is None:
            raise ValueError(f"Unknown step: {step_id}")
        if not self.is_cell_free(cell, exclude=step_id):
            raise ValueError(f"Cell ({cell.row}, {cell.column}) is already occupied")
        step.cell = cell
        return step

    def update_step(self, step_id: str, **changes) -> ProcessStep:
        """Apply field changes to a step. Cell changes go through ``move_step``."""
        step = self.get_step(step_id)
        if step is None:
            raise ValueError(f"Unknown step: {step_id}")
        cell = changes.pop("cell", None)
        for name, value in changes.items():
            if name == "id" or not hasattr(step, name):
                raise ValueError(f"Cannot update field: {name}")
            setattr(step, name, value)
        if cell is not None:
            self.move_step(step_id, cell)
        return step

    def remove_step(self, step_id: str) -> List[Connection]:
        """Remove a step and every connection touching it.

        Returns the removed connections so callers can notify listeners.
        """
        step = self.get_step(step_id)
        if step is None:
            return []
        self.steps.remove(step)
        removed = [c for c in self.connections if step_id in (c.source_id, c.target_id)]
        self.connections = [c for c in self.connections if c not in removed]
        return removed

    def has_connection(self, source_id: str, target_id: str) -> bool:
        return any(c.source_id == source_id and c.target_id == target_id for c in self.connections)

    def add_connection(
        self,
        source_id: str,
        target_id: str,
        label: Optional[str] = None,
        connection_id: Optional[str] = None,
    ) -> Optional[Connection]:
        """Insert a connection unless it would be a self loop or a duplicate pair."""
        if source_id == target_id:
            logger.debug("Rejected self loop on %s", source_id)
            return None
        if self.get_step(source_id) is None or self.get_step(target_id) is None:
            logger.debug("Rejected connection with unknown endpoint %s -> %s", source_id, target_id)
            return None
        if self.has_connection(source_id, target_id):
            logger.debug("Suppressed duplicate connection %s -> %s", source_id, target_id)
            return None

        conn = Connection(
            id=connection_id or new_id("edge"),
            source_id=source_id,
            target_id=target_id,
            label=label,
        )
        self.connections.append(conn)
        return conn

    def remove_connection(self, connection_id: str) -> Optional[Connection]:
        conn = self.get_connection(connection_id)
        if conn is not None:
            self.connections.remove(conn)
        return conn

    def set_connection_label(self, connection_id: str, label: Optional[str]) -> Optional[Connection]:
        conn = self.get_connection(connection_id)
        if conn is not None:
            conn.label = label or None
        return conn

    def prune_connections(self, connection_ids: Iterable[str]) -> List[Connection]:
        ids = set(connection_ids)
        removed = [c for c in self.connections if c.id in ids]
        self.connections = [c for c in self.connections if c.id not in ids]
        return removed


@dataclass
class PrototypePlan:
    """Ordered prototype screens plus element-to-screen connections."""

    screens: List[Screen] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)

    def get_screen(self, screen_id: str) -> Optional[Screen]:
        for screen in self.screens:
            if screen.id == screen_id:
                return screen
        return None

    def screen_index(self, screen_id: str) -> int:
        for index, screen in enumerate(self.screens):
            if screen.id == screen_id:
                return index
        return -1

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def find_element(self, element_id: str) -> Optional[SubElement]:
        for screen in self.screens:
            for element in screen.elements:
                if element.id == element_id:
                    return element
        return None

    def screen_of_element(self, element_id: str) -> Optional[Screen]:
        for screen in self.screens:
            if any(e.id == element_id for e in screen.elements):
                return screen
        return None

    def element_lookup(self) -> Dict[str, SubElement]:
        return {e.id: e for s in self.screens for e in s.elements}

    def add_screen(self, title: str = "New Screen", screen_id: Optional[str] = None) -> Screen:
        screen = Screen(id=screen_id or new_id("screen"), title=title)
        self.screens.append(screen)
        return screen

    def update_screen_title(self, screen_id: str, title: str) -> Optional[Screen]:
        screen = self.get_screen(screen_id)
        if screen is not None:
            screen.title = title
        return screen

    def remove_screen(self, screen_id: str) -> List[Connection]:
        """Remove a screen, cascading to connections into it and out of its elements."""
        screen = self.get_screen(screen_id)
        if screen is None:
            return []
        element_ids = {e.id for e in screen.elements}
        self.screens.remove(screen)
        removed = [
            c for c in self.connections
            if c.target_id == screen_id or c.source_id in element_ids
        ]
        self.connections = [c for c in self.connections if c not in removed]
        return removed

    def add_element(
        self,
        screen_id: str,
        element_type: str = "info",
        label: Optional[str] = None,
        element_id: Optional[str] = None,
    ) -> Optional[SubElement]:
        screen = self.get_screen(screen_id)
        if screen is None:
            return None
        if element_type not in ELEMENT_TYPES:
            raise ValueError(f"Unknown element type: {element_type}")
        element = SubElement(
            id=element_id or new_id("element"),
            label=label if label is not None else f"New {element_type}",
            screen_id=screen_id,
            element_type=element_type,
        )
        screen.elements.append(element)
        return element

    def update_element_label(self, element_id: str, label: str) -> Optional[SubElement]:
        element = self.find_element(element_id)
        if element is not None:
            element.label = label
        return element

    def remove_element(self, element_id: str) -> List[Connection]:
        """Remove a sub-element and every connection it sources."""
        screen = self.screen_of_element(element_id)
        if screen is None:
            return []
        screen.elements = [e for e in screen.elements if e.id != element_id]
        removed = [c for c in self.connections if c.source_id == element_id]
        self.connections = [c for c in self.connections if c.source_id != element_id]
        return removed

    def has_connection(self, element_id: str, screen_id: str) -> bool:
        return any(c.source_id == element_id and c.target_id == screen_id for c in self.connections)

    def can_connect(self, element_id: str, screen_id: str) -> bool:
        """An element may link to any existing screen other than its own."""
        source_screen = self.screen_of_element(element_id)
        if source_screen is None or self.get_screen(screen_id) is None:
            return False
        return source_screen.id != screen_id

    def add_connection(
        self,
        element_id: str,
        screen_id: str,
        connection_id: Optional[str] = None,
    ) -> Optional[Connection]:
        if not self.can_connect(element_id, screen_id):
            return None
        if self.has_connection(element_id, screen_id):
            logger.debug("Suppressed duplicate connection %s -> %s", element_id, screen_id)
            return None
        conn = Connection(id=connection_id or new_id("conn"), source_id=element_id, target_id=screen_id)
        self.connections.append(conn)
        return conn

    def remove_connection(self, connection_id: str) -> Optional[Connection]:
        conn = self.get_connection(connection_id)
        if conn is not None:
            self.connections.remove(conn)
        return conn

    def orphaned_connections(self) -> List[Connection]:
        """Connections whose source element or target screen no longer exists."""
        elements = self.element_lookup()
        screen_ids = {s.id for s in self.screens}
        return [
            c for c in self.connections
            if c.source_id not in elements or c.target_id not in screen_ids
        ]

    def prune_connections(self, connection_ids: Iterable[str]) -> List[Connection]:
        ids = set(connection_ids)
        removed = [c for c in self.connections if c.id in ids]
        self.connections = [c for c in self.connections if c.id not in ids]
        return removed

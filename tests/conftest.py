"""Pytest configuration and fixtures."""

from typing import List, Tuple

import pytest

from processmapper.interaction import DiagramCallbacks, EventDispatcher
from processmapper.layout import BreadboardLayout, GridLayout
from processmapper.model import Connection, FlowDiagram, GridCell, ProcessStep, PrototypePlan, Screen, SubElement
from processmapper.router import ConnectionRouter


class RecordingCallbacks(DiagramCallbacks):
    """Collects (event, id) pairs for every change notification."""

    def __init__(self):
        self.events: List[Tuple[str, str]] = []

    def entity_added(self, entity):
        self.events.append(("entity_added", entity.id))

    def entity_updated(self, entity):
        self.events.append(("entity_updated", entity.id))

    def entity_removed(self, entity):
        self.events.append(("entity_removed", entity.id))

    def connection_added(self, connection):
        self.events.append(("connection_added", connection.id))

    def connection_removed(self, connection):
        self.events.append(("connection_removed", connection.id))

    def connection_updated(self, connection):
        self.events.append(("connection_updated", connection.id))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


def make_step(step_id: str, row, column, **kwargs) -> ProcessStep:
    return ProcessStep(id=step_id, title=kwargs.pop("title", step_id.upper()), cell=GridCell(row, column), **kwargs)


@pytest.fixture
def layout() -> GridLayout:
    return GridLayout()


@pytest.fixture
def breadboard_layout() -> BreadboardLayout:
    return BreadboardLayout()


@pytest.fixture
def router() -> ConnectionRouter:
    return ConnectionRouter()


@pytest.fixture
def recorder() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def two_step_flow() -> FlowDiagram:
    """Steps a at (0, 0) and b at (0, 1), no connections."""
    return FlowDiagram(title="Two steps", steps=[make_step("a", 0, 0), make_step("b", 0, 1)])


@pytest.fixture
def linked_flow() -> FlowDiagram:
    """Steps a -> b -> c with c below b."""
    return FlowDiagram(
        title="Linked",
        steps=[make_step("a", 0, 0), make_step("b", 0, 1), make_step("c", 1, 1)],
        connections=[
            Connection(id="ab", source_id="a", target_id="b"),
            Connection(id="bc", source_id="b", target_id="c", label="done"),
        ],
    )


@pytest.fixture
def sample_plan() -> PrototypePlan:
    """Three screens; s0 holds e0/e1, s1 holds e2, s2 is empty."""
    return PrototypePlan(
        screens=[
            Screen(
                id="s0",
                title="Inbox",
                elements=[
                    SubElement(id="e0", label="Open item", screen_id="s0", element_type="action"),
                    SubElement(id="e1", label="Item count", screen_id="s0", element_type="info"),
                ],
            ),
            Screen(
                id="s1",
                title="Detail",
                elements=[SubElement(id="e2", label="Back", screen_id="s1", element_type="action")],
            ),
            Screen(id="s2", title="Settings"),
        ],
    )

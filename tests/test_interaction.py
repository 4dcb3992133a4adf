"""Tests for the interaction state machines."""

import pytest

from conftest import make_step
from processmapper.geometry import Point
from processmapper.interaction import (
    BreadboardController,
    HitKind,
    InteractionState,
    Mode,
    ProcessCanvasController,
)
from processmapper.model import Connection, FlowDiagram, GridCell

# Step a sits at (0, 0): box (50, 50)-(290, 170), ports (50, 110) and (290, 110).
# Step b sits at (0, 1): box (370, 50)-(610, 170), ports (370, 110) and (610, 110).
A_CENTER = (170, 110)
A_OUT = (290, 110)
A_IN = (50, 110)
B_CENTER = (490, 110)
B_IN = (370, 110)
EMPTY = (1000, 700)


@pytest.fixture
def canvas(two_step_flow, recorder, dispatcher):
    controller = ProcessCanvasController(two_step_flow, callbacks=recorder)
    controller.bind(dispatcher)
    controller.load()
    return controller


def select(dispatcher, point):
    dispatcher.click(*point)


def start_drag(dispatcher, start, end):
    """Press the (already selected) entity and move past the threshold."""
    dispatcher.pointer_down(*start)
    dispatcher.pointer_move(*end)


class TestInteractionState:
    """Tests for the state record."""

    def test_defaults(self):
        """Test a fresh state is idle with nothing selected."""
        state = InteractionState()
        assert state.mode == Mode.IDLE
        assert state.selected_entity_id is None
        assert not state.is_editing

    def test_clear_selection_closes_panel(self):
        """Test clearing selection also closes the detail panel."""
        state = InteractionState(selected_entity_id="a", detail_panel_open=True)
        state.clear_selection()
        assert state.selected_entity_id is None
        assert not state.detail_panel_open


class TestHitTesting:
    """Tests for hit-test priority."""

    def test_port_beats_entity(self, canvas):
        """Test a port on the entity edge wins over the entity box."""
        hit = canvas.hit_test(Point(*A_OUT))
        assert (hit.kind, hit.target_id, hit.port) == (HitKind.PORT, "a", "out")

    def test_entity(self, canvas):
        """Test the inside of a box hits the entity."""
        assert canvas.hit_test(Point(*A_CENTER)).kind == HitKind.ENTITY

    def test_connection_path(self, canvas):
        """Test points on a curve hit the connection."""
        conn = canvas.connect("a", "b")
        midpoint = canvas.routes().by_id()[conn.id].path.midpoint
        hit = canvas.hit_test(midpoint)
        assert (hit.kind, hit.target_id) == (HitKind.CONNECTION, conn.id)

    def test_label_beats_path(self, canvas):
        """Test a labelled connection is hit through its label first."""
        conn = canvas.connect("a", "b")
        canvas.diagram.set_connection_label(conn.id, "approved")
        midpoint = canvas.routes().by_id()[conn.id].label_position
        assert canvas.hit_test(midpoint.offset(20, 5)).kind == HitKind.LABEL

    def test_empty_canvas(self, canvas):
        """Test empty space hits the canvas."""
        assert canvas.hit_test(Point(*EMPTY)).kind == HitKind.CANVAS

    def test_hit_uses_viewport_transform(self, canvas, dispatcher):
        """Test pointer coordinates are converted to canvas space."""
        canvas.transform.set_scale(2)
        dispatcher.click(A_CENTER[0] * 2, A_CENTER[1] * 2)
        assert canvas.state.selected_entity_id == "a"


class TestSelectionAndPanning:
    """Tests for IDLE, ENTITY_SELECTED and PANNING_CANVAS."""

    def test_click_entity_selects_and_opens_panel(self, canvas, dispatcher):
        """Test selecting an entity opens its detail panel."""
        select(dispatcher, A_CENTER)
        assert canvas.state.mode == Mode.ENTITY_SELECTED
        assert canvas.state.selected_entity_id == "a"
        assert canvas.state.detail_panel_open
        assert canvas.detail_panel_anchor() == Point(290, 50)

    def test_click_other_entity_switches_selection(self, canvas, dispatcher):
        """Test clicking a different entity selects it."""
        select(dispatcher, A_CENTER)
        select(dispatcher, B_CENTER)
        assert canvas.state.selected_entity_id == "b"
        assert canvas.state.mode == Mode.ENTITY_SELECTED

    def test_empty_canvas_pans_and_clears(self, canvas, dispatcher):
        """Test dragging the background pans and deselects."""
        select(dispatcher, A_CENTER)
        dispatcher.pointer_down(*EMPTY)
        assert canvas.state.mode == Mode.PANNING_CANVAS
        assert canvas.state.selected_entity_id is None
        assert not canvas.state.detail_panel_open

        dispatcher.pointer_move(EMPTY[0] + 10, EMPTY[1] + 20)
        dispatcher.pointer_move(EMPTY[0] + 15, EMPTY[1] + 20)
        dispatcher.pointer_up(EMPTY[0] + 15, EMPTY[1] + 20)

        assert (canvas.transform.pan_x, canvas.transform.pan_y) == (15, 20)
        assert canvas.state.mode == Mode.IDLE

    def test_escape_clears_selection(self, canvas, dispatcher):
        """Test Escape returns to idle."""
        select(dispatcher, A_CENTER)
        dispatcher.key("Escape")
        assert canvas.state.mode == Mode.IDLE
        assert canvas.state.selected_entity_id is None

    def test_secondary_button_ignored(self, canvas, dispatcher):
        """Test non-primary buttons do nothing."""
        dispatcher.pointer_down(*A_CENTER, button=2)
        assert canvas.state.mode == Mode.IDLE


class TestDragging:
    """Tests for DRAGGING_ENTITY."""

    def test_press_selected_then_small_move_keeps_selection(self, canvas, dispatcher):
        """Test moves within the threshold never start a drag."""
        select(dispatcher, A_CENTER)
        dispatcher.pointer_down(*A_CENTER)
        dispatcher.pointer_move(A_CENTER[0] + 2, A_CENTER[1] + 1)
        assert canvas.state.mode == Mode.ENTITY_SELECTED
        dispatcher.pointer_up(A_CENTER[0] + 2, A_CENTER[1] + 1)
        assert canvas.diagram.get_step("a").cell == GridCell(0, 0)
        assert canvas.state.mode == Mode.ENTITY_SELECTED

    def test_drag_unselected_entity_only_selects(self, canvas, dispatcher):
        """Test the first press selects instead of dragging."""
        dispatcher.pointer_down(*A_CENTER)
        dispatcher.pointer_move(A_CENTER[0], A_CENTER[1] + 200)
        assert canvas.state.mode == Mode.ENTITY_SELECTED
        assert canvas.state.drag_position is None

    def test_drag_to_free_cell(self, canvas, dispatcher, recorder):
        """Test dropping on a free cell commits that cell."""
        select(dispatcher, A_CENTER)
        start_drag(dispatcher, A_CENTER, (A_CENTER[0], A_CENTER[1] + 200))
        assert canvas.state.mode == Mode.DRAGGING_ENTITY
        assert canvas.state.drag_position == Point(50, 250)
        assert canvas.drop_target() == GridCell(1, 0)

        dispatcher.pointer_up(A_CENTER[0], A_CENTER[1] + 200)

        assert canvas.diagram.get_step("a").cell == GridCell(1, 0)
        assert canvas.state.mode == Mode.ENTITY_SELECTED
        assert canvas.state.selected_entity_id == "a"
        assert ("entity_updated", "a") in recorder.events

    def test_drop_on_occupied_cell_snaps_to_nearest_free(self, canvas, dispatcher):
        """Test dropping onto another entity relocates deterministically."""
        select(dispatcher, A_CENTER)
        start_drag(dispatcher, A_CENTER, B_CENTER)
        assert canvas.drop_target() == GridCell(0, 2)
        dispatcher.pointer_up(*B_CENTER)
        assert canvas.diagram.get_step("a").cell == GridCell(0, 2)
        assert canvas.diagram.get_step("b").cell == GridCell(0, 1)

    def test_drop_on_own_cell_is_not_an_update(self, canvas, dispatcher, recorder):
        """Test dragging back to the start commits nothing."""
        select(dispatcher, A_CENTER)
        start_drag(dispatcher, A_CENTER, (A_CENTER[0] + 40, A_CENTER[1]))
        dispatcher.pointer_move(*A_CENTER)
        dispatcher.pointer_up(*A_CENTER)
        assert canvas.diagram.get_step("a").cell == GridCell(0, 0)
        assert "entity_updated" not in recorder.names()

    def test_drag_respects_zoom(self, canvas, dispatcher):
        """Test screen deltas are divided by the scale."""
        canvas.transform.set_scale(0.5)
        select(dispatcher, (85, 55))
        start_drag(dispatcher, (85, 55), (85, 155))
        assert canvas.state.drag_position == Point(50, 250)

    def test_escape_cancels_drag(self, canvas, dispatcher):
        """Test Escape abandons the drag without moving."""
        select(dispatcher, A_CENTER)
        start_drag(dispatcher, A_CENTER, (A_CENTER[0], A_CENTER[1] + 200))
        dispatcher.key("Escape")
        assert canvas.state.mode == Mode.ENTITY_SELECTED
        assert canvas.state.drag_position is None
        dispatcher.pointer_up(A_CENTER[0], A_CENTER[1] + 200)
        assert canvas.diagram.get_step("a").cell == GridCell(0, 0)

    def test_entity_deleted_mid_drag_cancels(self, canvas, dispatcher):
        """Test a host-side delete during a drag returns to idle."""
        select(dispatcher, A_CENTER)
        start_drag(dispatcher, A_CENTER, (A_CENTER[0], A_CENTER[1] + 200))
        canvas.diagram.remove_step("a")
        dispatcher.pointer_move(A_CENTER[0], A_CENTER[1] + 250)
        assert canvas.state.mode == Mode.IDLE
        assert canvas.state.selected_entity_id is None

    def test_entity_deleted_before_release_cancels(self, canvas, dispatcher):
        """Test releasing after the dragged entity vanished is harmless."""
        select(dispatcher, A_CENTER)
        start_drag(dispatcher, A_CENTER, (A_CENTER[0], A_CENTER[1] + 200))
        canvas.delete_entity("a")
        dispatcher.pointer_up(A_CENTER[0], A_CENTER[1] + 200)
        assert canvas.state.mode == Mode.IDLE
        assert canvas.diagram.get_step("a") is None


class TestPlacing:
    """Tests for PLACING_NEW_ENTITY."""

    def test_begin_placing_clears_selection(self, canvas, dispatcher):
        """Test entering placement deselects and closes the panel."""
        select(dispatcher, A_CENTER)
        canvas.begin_placing()
        assert canvas.state.mode == Mode.PLACING_NEW_ENTITY
        assert canvas.state.selected_entity_id is None
        assert not canvas.state.detail_panel_open

    def test_place_on_free_cell(self, canvas, dispatcher, recorder):
        """Test a click creates, selects and reports the new step."""
        canvas.begin_placing()
        dispatcher.click(170, 310)
        step = canvas.diagram.get_step(canvas.state.selected_entity_id)
        assert step.cell == GridCell(1, 0)
        assert canvas.state.mode == Mode.ENTITY_SELECTED
        assert canvas.state.detail_panel_open
        assert recorder.events == [("entity_added", step.id)]

    def test_place_twice_on_same_cell(self, dispatcher, recorder):
        """Test the second placement on (0, 0) is relocated to (0, 1)."""
        controller = ProcessCanvasController(FlowDiagram(), callbacks=recorder)
        controller.bind(dispatcher)
        controller.load()

        controller.begin_placing()
        dispatcher.click(*A_CENTER)
        controller.begin_placing()
        dispatcher.click(*A_CENTER)

        cells = [s.cell for s in controller.diagram.steps]
        assert cells == [GridCell(0, 0), GridCell(0, 1)]

    def test_escape_cancels_placing(self, canvas, dispatcher):
        """Test Escape leaves placement without creating anything."""
        canvas.begin_placing()
        dispatcher.key("Escape")
        dispatcher.click(170, 310)
        assert canvas.state.mode == Mode.IDLE
        assert len(canvas.diagram.steps) == 2


class TestConnecting:
    """Tests for CONNECTING_FROM_PORT."""

    def test_connect_two_entities(self, canvas, dispatcher, recorder):
        """Test port to port creates a connection and returns to idle."""
        select(dispatcher, A_CENTER)
        dispatcher.click(*A_OUT)
        assert canvas.state.mode == Mode.CONNECTING_FROM_PORT
        assert canvas.state.connecting_from == "a"
        assert canvas.state.selected_entity_id is None
        assert not canvas.state.detail_panel_open

        dispatcher.click(*B_IN)

        assert canvas.state.mode == Mode.IDLE
        assert canvas.diagram.has_connection("a", "b")
        assert recorder.names() == ["connection_added"]

    def test_duplicate_connection_suppressed(self, canvas, dispatcher, recorder):
        """Test connecting the same pair twice keeps one connection."""
        for _ in range(2):
            dispatcher.click(*A_OUT)
            dispatcher.click(*B_IN)
        assert len(canvas.diagram.connections) == 1
        assert recorder.names() == ["connection_added"]
        assert canvas.state.mode == Mode.IDLE

    def test_same_port_cancels(self, canvas, dispatcher):
        """Test clicking the originating port again cancels."""
        dispatcher.click(*A_OUT)
        dispatcher.click(*A_OUT)
        assert canvas.state.mode == Mode.IDLE
        assert canvas.diagram.connections == []

    def test_own_ports_are_invalid_targets(self, canvas, dispatcher):
        """Test self loops cannot be authored."""
        dispatcher.click(*A_OUT)
        dispatcher.click(*A_IN)
        assert canvas.state.mode == Mode.CONNECTING_FROM_PORT
        assert canvas.diagram.connections == []

    def test_non_port_clicks_are_ignored(self, canvas, dispatcher):
        """Test entity and background clicks do not end connecting."""
        dispatcher.click(*A_OUT)
        dispatcher.click(*B_CENTER)
        dispatcher.click(*EMPTY)
        assert canvas.state.mode == Mode.CONNECTING_FROM_PORT
        assert canvas.state.selected_entity_id is None

    def test_escape_cancels(self, canvas, dispatcher):
        """Test Escape leaves connecting mode."""
        dispatcher.click(*A_OUT)
        dispatcher.key("Escape")
        assert canvas.state.mode == Mode.IDLE
        assert canvas.state.connecting_from is None
        assert canvas.state.connecting_port is None

    def test_same_input_port_cancels(self, canvas, dispatcher):
        """Test clicking the originating input port again cancels."""
        dispatcher.click(*A_IN)
        assert canvas.state.connecting_port == "in"
        dispatcher.click(*A_IN)
        assert canvas.state.mode == Mode.IDLE
        assert canvas.diagram.connections == []

    def test_other_port_of_origin_does_not_cancel(self, canvas, dispatcher):
        """Test only the originating port cancels, not its sibling."""
        dispatcher.click(*A_IN)
        dispatcher.click(*A_OUT)
        assert canvas.state.mode == Mode.CONNECTING_FROM_PORT
        assert canvas.state.connecting_from == "a"

    def test_connect_from_input_port(self, canvas, dispatcher, recorder):
        """Test a connection started on an input port points into that port."""
        dispatcher.click(*B_IN)
        dispatcher.click(*A_OUT)
        assert canvas.diagram.has_connection("a", "b")
        assert not canvas.diagram.has_connection("b", "a")
        assert recorder.names() == ["connection_added"]
        assert canvas.state.mode == Mode.IDLE


class TestConnectionEditing:
    """Tests for connection selection, deletion and label editing."""

    @pytest.fixture
    def connected(self, canvas):
        conn = canvas.connect("a", "b")
        midpoint = canvas.routes().by_id()[conn.id].path.midpoint
        return conn, (midpoint.x, midpoint.y)

    def test_select_connection(self, canvas, dispatcher, connected):
        """Test clicking a path selects it and clears entity selection."""
        conn, point = connected
        select(dispatcher, A_CENTER)
        dispatcher.click(*point)
        assert canvas.state.selected_connection_id == conn.id
        assert canvas.state.selected_entity_id is None
        assert canvas.state.mode == Mode.IDLE

    def test_delete_selected_connection(self, canvas, dispatcher, recorder, connected):
        """Test Delete removes the selected connection."""
        conn, point = connected
        dispatcher.click(*point)
        dispatcher.key("Delete")
        assert canvas.diagram.connections == []
        assert ("connection_removed", conn.id) in recorder.events
        assert canvas.state.selected_connection_id is None

    def test_backspace_deletes_too(self, canvas, dispatcher, connected):
        """Test Backspace behaves like Delete outside label editing."""
        _, point = connected
        dispatcher.click(*point)
        dispatcher.key("Backspace")
        assert canvas.diagram.connections == []

    def test_edit_label_and_commit(self, canvas, dispatcher, recorder, connected):
        """Test double click, typing and Enter commit a label."""
        conn, point = connected
        dispatcher.click(*point, click_count=2)
        assert canvas.state.editing_id == conn.id
        dispatcher.type_text("yess")
        dispatcher.key("Backspace")
        assert canvas.state.editing_text == "yes"
        dispatcher.key("Enter")
        assert conn.label == "yes"
        assert not canvas.state.is_editing
        assert ("connection_updated", conn.id) in recorder.events
        assert len(canvas.diagram.connections) == 1

    def test_escape_discards_label(self, canvas, dispatcher, recorder, connected):
        """Test Escape discards pending text."""
        conn, point = connected
        dispatcher.click(*point, click_count=2)
        dispatcher.type_text("no")
        dispatcher.key("Escape")
        assert conn.label is None
        assert not canvas.state.is_editing
        assert "connection_updated" not in recorder.names()

    def test_edit_starts_from_existing_label(self, canvas, connected):
        """Test editing begins with the stored label."""
        conn, _ = connected
        conn.label = "approved"
        canvas.begin_label_edit(conn.id)
        assert canvas.state.editing_text == "approved"

    def test_delete_selected_entity_cascades(self, canvas, dispatcher, recorder, connected):
        """Test Delete on a selected entity removes it and its connections."""
        conn, _ = connected
        select(dispatcher, A_CENTER)
        dispatcher.key("Delete")
        assert canvas.diagram.get_step("a") is None
        assert canvas.diagram.connections == []
        assert recorder.events[-2:] == [("connection_removed", conn.id), ("entity_removed", "a")]
        assert canvas.state.mode == Mode.IDLE

    def test_hover_tracks_connection(self, canvas, dispatcher, connected):
        """Test moving over a path sets the hovered connection."""
        conn, point = connected
        dispatcher.pointer_move(*point)
        assert canvas.state.hovered_connection_id == conn.id
        dispatcher.pointer_move(*EMPTY)
        assert canvas.state.hovered_connection_id is None

    def test_cascade_clears_connection_state(self, canvas, dispatcher, connected):
        """Test deleting a step forgets the selected and hovered connection."""
        conn, point = connected
        dispatcher.click(*point)
        dispatcher.pointer_move(*point)
        assert canvas.state.hovered_connection_id == conn.id

        canvas.delete_entity("b")

        assert canvas.state.selected_connection_id is None
        assert canvas.state.hovered_connection_id is None

    def test_cascade_ends_label_edit(self, canvas, dispatcher, connected):
        """Test deleting a step drops a label edit on its connection."""
        _, point = connected
        dispatcher.click(*point, click_count=2)
        canvas.delete_entity("a")
        assert not canvas.state.is_editing
        assert canvas.state.editing_text == ""


class TestViewportCommands:
    """Tests for wheel, zoom buttons, resize and load."""

    def test_ctrl_wheel_zooms(self, canvas, dispatcher):
        """Test ctrl+wheel zooms additively."""
        dispatcher.wheel(delta_y=-50, ctrl=True)
        assert canvas.transform.scale == pytest.approx(1.5)
        dispatcher.wheel(delta_y=-1000, meta=True)
        assert canvas.transform.scale == 3.0

    def test_plain_wheel_pans(self, canvas, dispatcher):
        """Test the wheel pans without a modifier."""
        dispatcher.wheel(delta_x=10, delta_y=20)
        assert (canvas.transform.pan_x, canvas.transform.pan_y) == (-10, -20)
        assert canvas.transform.scale == 1

    def test_zoom_buttons(self, canvas):
        """Test zoom commands."""
        canvas.zoom_in()
        assert canvas.transform.scale == pytest.approx(1.2)
        canvas.zoom_out()
        assert canvas.transform.scale == pytest.approx(1.0)

    def test_resize_refits(self, canvas, dispatcher):
        """Test resize stores the viewport and fits the diagram."""
        dispatcher.resize(1320, 880)
        assert (canvas.viewport_width, canvas.viewport_height) == (1320, 880)
        assert canvas.transform.scale == 1
        assert canvas.transform.pan_x == pytest.approx(330)
        assert canvas.transform.pan_y == pytest.approx(330)

    def test_load_prunes_orphans(self, recorder):
        """Test loading drops connections to missing steps."""
        diagram = FlowDiagram(
            steps=[make_step("a", 0, 0)],
            connections=[Connection(id="ghost", source_id="a", target_id="gone")],
        )
        controller = ProcessCanvasController(diagram, callbacks=recorder)
        controller.load()
        assert diagram.connections == []
        assert recorder.events == [("connection_removed", "ghost")]

    def test_unbind_stops_events(self, canvas, dispatcher):
        """Test a detached controller no longer reacts."""
        canvas.unbind()
        dispatcher.click(*A_CENTER)
        assert canvas.state.mode == Mode.IDLE

    def test_update_entity(self, canvas, recorder):
        """Test detail edits are reported."""
        canvas.update_entity("a", title="Screen candidates", tags=["friction"])
        assert canvas.diagram.get_step("a").tags == ["friction"]
        assert recorder.events == [("entity_updated", "a")]

    def test_update_entity_onto_occupied_cell(self, canvas, recorder):
        """Test a cell edit onto another step falls back to the nearest free cell."""
        canvas.update_entity("a", cell=GridCell(0, 1))
        assert canvas.diagram.get_step("a").cell == GridCell(0, 2)
        assert canvas.diagram.get_step("b").cell == GridCell(0, 1)
        assert recorder.events == [("entity_updated", "a")]


# Breadboard geometry for sample_plan: s0 at (40, 40), s1 at (360, 40), s2 at (680, 40).
# Element ports: e0 (300, 109), e1 (300, 147), e2 (620, 109).
# Screen dots: s0 (40, 70), s1 (360, 70), s2 (680, 70).
E0_PORT = (300, 109)
E2_PORT = (620, 109)
S0_DOT = (40, 70)
S1_DOT = (360, 70)
S2_DOT = (680, 70)
S0_BODY = (170, 190)


@pytest.fixture
def board(sample_plan, recorder, dispatcher):
    controller = BreadboardController(sample_plan, callbacks=recorder)
    controller.bind(dispatcher)
    controller.load()
    return controller


class TestBreadboardController:
    """Tests for the breadboard state machine."""

    def test_hit_element_port(self, board):
        """Test element ports are hit before the screen body."""
        hit = board.hit_test(Point(*E0_PORT))
        assert (hit.kind, hit.target_id, hit.port) == (HitKind.PORT, "e0", "element")

    def test_hit_screen_dot(self, board):
        """Test screen entry dots are ports."""
        hit = board.hit_test(Point(*S1_DOT))
        assert (hit.kind, hit.target_id, hit.port) == (HitKind.PORT, "s1", "screen")

    def test_connect_element_to_screen(self, board, dispatcher, recorder):
        """Test element port then screen dot creates a connection."""
        dispatcher.click(*E0_PORT)
        assert board.state.mode == Mode.CONNECTING_FROM_PORT
        assert board.state.connecting_from == "e0"
        assert board.can_connect_to("s1")
        assert not board.can_connect_to("s0")

        dispatcher.click(*S1_DOT)

        assert board.plan.has_connection("e0", "s1")
        assert board.state.mode == Mode.IDLE
        assert recorder.names() == ["connection_added"]

    def test_duplicate_suppressed(self, board, dispatcher):
        """Test the same element -> screen pair is created once."""
        for _ in range(2):
            dispatcher.click(*E0_PORT)
            dispatcher.click(*S1_DOT)
        assert len(board.plan.connections) == 1

    def test_own_screen_is_ignored(self, board, dispatcher):
        """Test an element cannot link to its own screen."""
        dispatcher.click(*E0_PORT)
        dispatcher.click(*S0_DOT)
        assert board.state.mode == Mode.CONNECTING_FROM_PORT
        assert board.plan.connections == []

    def test_same_element_toggles_off(self, board, dispatcher):
        """Test clicking the source element port again cancels."""
        dispatcher.click(*E0_PORT)
        dispatcher.click(*E0_PORT)
        assert board.state.mode == Mode.IDLE
        assert board.state.connecting_from is None

    def test_other_element_switches_source(self, board, dispatcher):
        """Test clicking another element port restarts from it."""
        dispatcher.click(*E0_PORT)
        dispatcher.click(*E2_PORT)
        assert board.state.connecting_from == "e2"

    def test_escape_cancels(self, board, dispatcher):
        """Test Escape cancels connecting."""
        dispatcher.click(*E0_PORT)
        dispatcher.key("Escape")
        assert board.state.mode == Mode.IDLE

    def test_select_screen_and_clear(self, board, dispatcher):
        """Test screen clicks select and empty canvas clears."""
        dispatcher.click(*S0_BODY)
        assert board.state.selected_entity_id == "s0"
        assert board.state.mode == Mode.ENTITY_SELECTED
        dispatcher.click(2000, 2000)
        assert board.state.selected_entity_id is None
        assert board.state.mode == Mode.IDLE

    def test_select_and_delete_connection(self, board, dispatcher, recorder):
        """Test clicking a connection and pressing Delete removes it."""
        conn = board.plan.add_connection("e2", "s2")
        midpoint = board.routes().by_id()[conn.id].path.midpoint
        dispatcher.click(midpoint.x, midpoint.y)
        assert board.state.selected_connection_id == conn.id
        dispatcher.key("Delete")
        assert board.plan.connections == []
        assert ("connection_removed", conn.id) in recorder.events

    def test_delete_element_cascades(self, board, recorder):
        """Test deleting a sub-element removes its connections."""
        conn = board.plan.add_connection("e0", "s1")
        board.delete_element("e0")
        assert board.plan.connections == []
        assert recorder.events == [("connection_removed", conn.id), ("entity_updated", "s0")]

    def test_delete_source_element_while_connecting(self, board, dispatcher):
        """Test removing the pending source cancels connecting."""
        dispatcher.click(*E0_PORT)
        board.delete_element("e0")
        assert board.state.mode == Mode.IDLE

    def test_delete_screen_cascades(self, board, recorder):
        """Test deleting a screen removes links into it and out of it."""
        board.plan.add_connection("e0", "s1")
        board.plan.add_connection("e2", "s0")
        board.delete_screen("s1")
        assert board.plan.connections == []
        assert recorder.names() == ["connection_removed", "connection_removed", "entity_removed"]

    def test_delete_element_clears_selected_connection(self, board, dispatcher):
        """Test a cascaded connection is no longer selected."""
        conn = board.plan.add_connection("e2", "s2")
        midpoint = board.routes().by_id()[conn.id].path.midpoint
        dispatcher.click(midpoint.x, midpoint.y)
        board.delete_element("e2")
        assert board.state.selected_connection_id is None

    def test_delete_screen_clears_selected_connection(self, board, dispatcher):
        """Test deleting the target screen forgets the selected connection."""
        conn = board.plan.add_connection("e2", "s2")
        midpoint = board.routes().by_id()[conn.id].path.midpoint
        dispatcher.click(midpoint.x, midpoint.y)
        board.delete_screen("s2")
        assert board.state.selected_connection_id is None

    def test_screen_commands(self, board, recorder):
        """Test add and rename commands report changes."""
        screen = board.add_screen("Checkout")
        element = board.add_element(screen.id, "input", "Card number")
        board.rename_element(element.id, "Card")
        board.rename_screen(screen.id, "Pay")
        assert board.plan.get_screen(screen.id).title == "Pay"
        assert element.label == "Card"
        assert recorder.names() == ["entity_added", "entity_updated", "entity_updated", "entity_updated"]

    def test_load_prunes_orphans(self, sample_plan, recorder):
        """Test orphaned connections are pruned on load."""
        sample_plan.connections.append(Connection(id="x", source_id="deleted", target_id="s1"))
        controller = BreadboardController(sample_plan, callbacks=recorder)
        controller.load()
        assert sample_plan.connections == []
        assert recorder.events == [("connection_removed", "x")]

    def test_canvas_size_tracks_viewport(self, board, dispatcher):
        """Test the scrollable width never shrinks below the viewport."""
        dispatcher.resize(1500, 900)
        assert board.canvas_size() == (1500, 400)

"""
SVG Renderer

Draws process canvases and breadboards as SVG documents:
- Connection layer with curved paths, arrowheads and mid-curve labels
- Entity layer with step cards or screen cards with element chips
- Interactive overlays (port dots, selection, hover, drag ghost) driven by
  the current InteractionState
"""

import html
from typing import List, Optional

from .geometry import Point, Rect, ViewportTransform
from .interaction import InteractionState, Mode, label_rect
from .layout import BreadboardLayout, GridLayout
from .model import FlowDiagram, ProcessStep, PrototypePlan, Screen
from .router import ConnectionRouter, RoutedConnection, RouterConfig

BACKGROUND = "#f9fafb"
CARD_FILL = "#ffffff"
CARD_STROKE = "#e5e7eb"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#4b5563"
EDGE_COLOR = "#9ca3af"
SELECTED_COLOR = "#8b5cf6"
HOVER_COLOR = "#6b7280"
PORT_COLOR = "#a78bfa"

# (fill, text)
TAG_COLORS = {
    "friction": ("#fee2e2", "#dc2626"),
    "handoff": ("#ede9fe", "#7c3aed"),
    "automated": ("#dcfce7", "#16a34a"),
    "trigger": ("#dbeafe", "#2563eb"),
}

STEP_ACCENTS = {
    "step": "#8b5cf6",
    "branch": "#f59e0b",
    "note": "#eab308",
    "subprocess": "#6366f1",
    "start": "#22c55e",
    "end": "#ef4444",
}

# (fill, text, border)
ELEMENT_COLORS = {
    "info": ("#eff6ff", "#1d4ed8", "#bfdbfe"),
    "action": ("#f0fdf4", "#15803d", "#bbf7d0"),
    "input": ("#faf5ff", "#7e22ce", "#e9d5ff"),
}

VIEW_MARGIN = 50


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"


def format_step_duration(step: ProcessStep) -> Optional[str]:
    if step.duration is None:
        return None
    value = step.duration.value
    shown = int(value) if float(value).is_integer() else value
    return f"{shown} {step.duration.unit}"


class SVGRenderer:
    """Renders both diagram kinds as SVG."""

    def __init__(
        self,
        layout: Optional[GridLayout] = None,
        breadboard_layout: Optional[BreadboardLayout] = None,
        router: Optional[ConnectionRouter] = None,
        breadboard_router: Optional[ConnectionRouter] = None,
    ):
        self.layout = layout or GridLayout()
        self.breadboard_layout = breadboard_layout or BreadboardLayout()
        self.router = router or ConnectionRouter()
        self.breadboard_router = breadboard_router or ConnectionRouter(RouterConfig.for_breadboard())

    # --- Process canvas ---------------------------------------------------------

    def render_flow(
        self,
        diagram: FlowDiagram,
        state: Optional[InteractionState] = None,
        transform: Optional[ViewportTransform] = None,
        interactive: bool = True,
    ) -> str:
        """Generate the SVG document for a process canvas."""
        state = state or InteractionState()
        if transform is not None:
            # Screen-space document; the host sizes it to the viewport
            svg_parts = ['<svg id="flow-svg" xmlns="http://www.w3.org/2000/svg" width="100%" height="100%">']
        else:
            svg_parts = [self._open_svg(self.layout.bounds(diagram.steps), "flow-svg")]
        svg_parts.append(self._render_defs())
        svg_parts.append(f'<rect width="100%" height="100%" fill="{BACKGROUND}"/>')

        group_transform = f' transform="{transform.svg_transform()}"' if transform else ""
        svg_parts.append(f'<g id="viewport"{group_transform}>')

        routes = self.router.route_flow(diagram, self.layout).routes
        svg_parts.append('<g id="connections-layer">')
        for route in routes:
            svg_parts.append(self._render_connection(route, state, interactive))
        svg_parts.append("</g>")

        dragging_id = state.selected_entity_id if state.mode == Mode.DRAGGING_ENTITY else None
        if dragging_id and state.drag_position is not None:
            svg_parts.append(self._render_drop_preview(diagram, dragging_id, state.drag_position))

        svg_parts.append('<g id="entities-layer">')
        for step in diagram.steps:
            rect = self.layout.entity_rect(step)
            if rect is None:
                continue
            if step.id == dragging_id and state.drag_position is not None:
                rect = self.layout.rect_at(state.drag_position)
            selected = step.id == state.selected_entity_id
            svg_parts.append(self._render_step(step, rect, selected, dragging=step.id == dragging_id))
            if interactive:
                svg_parts.append(self._render_step_ports(step, rect, state))
        svg_parts.append("</g>")

        svg_parts.append("</g>")
        svg_parts.append("</svg>")
        return "\n".join(svg_parts)

    def _render_step(self, step: ProcessStep, rect: Rect, selected: bool, dragging: bool = False) -> str:
        stroke = SELECTED_COLOR if selected else CARD_STROKE
        accent = STEP_ACCENTS.get(step.step_type, STEP_ACCENTS["step"])
        opacity = ' opacity="0.8"' if dragging else ""
        parts = [
            f'<g class="entity step step-{html.escape(step.step_type)}" data-id="{html.escape(step.id)}"{opacity}>',
            f'<rect x="{rect.x}" y="{rect.y}" width="{rect.width}" height="{rect.height}" '
            f'rx="12" ry="12" fill="{CARD_FILL}" stroke="{stroke}" stroke-width="2" filter="url(#shadow)"/>',
            f'<rect x="{rect.x}" y="{rect.y + 12}" width="4" height="{rect.height - 24}" fill="{accent}"/>',
            f'<text x="{rect.x + 16}" y="{rect.y + 26}" font-family="Arial, sans-serif" '
            f'font-size="14" font-weight="bold" fill="{TEXT_PRIMARY}">{html.escape(truncate(step.title, 28))}</text>',
        ]

        line_y = rect.y + 46
        if step.role:
            parts.append(
                f'<circle cx="{rect.x + 20}" cy="{line_y - 4}" r="3" fill="#a78bfa"/>'
                f'<text x="{rect.x + 28}" y="{line_y}" font-family="Arial, sans-serif" font-size="12" '
                f'fill="{TEXT_SECONDARY}">{html.escape(truncate(step.role, 28))}</text>'
            )
            line_y += 18
        if step.tools:
            tools = truncate(", ".join(step.tools), 32)
            parts.append(
                f'<text x="{rect.x + 16}" y="{line_y}" font-family="Arial, sans-serif" font-size="11" '
                f'fill="{TEXT_SECONDARY}">{html.escape(tools)}</text>'
            )
            line_y += 16
        duration = format_step_duration(step)
        if duration:
            parts.append(
                f'<text x="{rect.x + 16}" y="{line_y}" font-family="Arial, sans-serif" font-size="11" '
                f'fill="{TEXT_SECONDARY}">{html.escape(duration)}</text>'
            )

        tag_x = rect.x + 16
        for tag in step.tags:
            fill, color = TAG_COLORS.get(tag, ("#f3f4f6", TEXT_SECONDARY))
            width = len(tag) * 6 + 12
            parts.append(
                f'<rect x="{tag_x}" y="{rect.bottom - 24}" width="{width}" height="16" rx="8" fill="{fill}"/>'
                f'<text x="{tag_x + 6}" y="{rect.bottom - 12}" font-family="Arial, sans-serif" '
                f'font-size="10" fill="{color}">{html.escape(tag)}</text>'
            )
            tag_x += width + 4

        parts.append("</g>")
        return "\n".join(parts)

    def _render_step_ports(self, step: ProcessStep, rect: Rect, state: InteractionState) -> str:
        radius = self.layout.config.port_radius
        active = state.mode == Mode.CONNECTING_FROM_PORT and state.connecting_from == step.id
        in_fill = SELECTED_COLOR if active and state.connecting_port == "in" else CARD_FILL
        out_fill = SELECTED_COLOR if active and state.connecting_port != "in" else PORT_COLOR
        cy = rect.y + rect.height / 2
        return (
            f'<circle class="port port-in" data-id="{html.escape(step.id)}" cx="{rect.x}" cy="{cy}" '
            f'r="{radius}" fill="{in_fill}" stroke="{PORT_COLOR}" stroke-width="2"/>\n'
            f'<circle class="port port-out" data-id="{html.escape(step.id)}" cx="{rect.right}" cy="{cy}" '
            f'r="{radius}" fill="{out_fill}" stroke="{PORT_COLOR}" stroke-width="2"/>'
        )

    def _render_drop_preview(self, diagram: FlowDiagram, step_id: str, drag_position: Point) -> str:
        target = self.layout.pixel_to_grid(drag_position.x, drag_position.y)
        cell = self.layout.find_nearest_free_cell(target, diagram.occupied_cells(exclude=step_id))
        rect = self.layout.rect_at(self.layout.grid_to_pixel(cell))
        return (
            f'<rect class="drop-preview" x="{rect.x}" y="{rect.y}" width="{rect.width}" '
            f'height="{rect.height}" rx="12" ry="12" fill="#ede9fe" fill-opacity="0.4" '
            f'stroke="{SELECTED_COLOR}" stroke-width="2" stroke-dasharray="6,4"/>'
        )

    # --- Breadboard -------------------------------------------------------------

    def render_breadboard(
        self,
        plan: PrototypePlan,
        state: Optional[InteractionState] = None,
        interactive: bool = True,
    ) -> str:
        """Generate the SVG document for a breadboard."""
        state = state or InteractionState()
        layout = self.breadboard_layout
        rects = layout.screen_rects(plan.screens)

        svg_parts = [self._open_svg(layout.bounds(plan.screens), "breadboard-svg")]
        svg_parts.append(self._render_defs())
        svg_parts.append(f'<rect width="100%" height="100%" fill="{BACKGROUND}"/>')

        svg_parts.append('<g id="screens-layer">')
        for screen in plan.screens:
            selected = screen.id == state.selected_entity_id
            svg_parts.append(self._render_screen(screen, rects[screen.id], selected, state, interactive))
        svg_parts.append("</g>")

        routes = self.breadboard_router.route_breadboard(plan, layout).routes
        svg_parts.append('<g id="connections-layer">')
        for route in routes:
            svg_parts.append(self._render_connection(route, state, interactive))
        svg_parts.append("</g>")

        svg_parts.append("</svg>")
        return "\n".join(svg_parts)

    def _render_screen(
        self,
        screen: Screen,
        rect: Rect,
        selected: bool,
        state: InteractionState,
        interactive: bool,
    ) -> str:
        config = self.breadboard_layout.config
        stroke = SELECTED_COLOR if selected else CARD_STROKE
        parts = [
            f'<g class="entity screen" data-id="{html.escape(screen.id)}">',
            f'<rect x="{rect.x}" y="{rect.y}" width="{rect.width}" height="{rect.height}" '
            f'rx="10" ry="10" fill="{CARD_FILL}" stroke="{stroke}" stroke-width="2" filter="url(#shadow)"/>',
            f'<line x1="{rect.x}" y1="{rect.y + config.header_height}" x2="{rect.right}" '
            f'y2="{rect.y + config.header_height}" stroke="{CARD_STROKE}"/>',
            f'<text x="{rect.x + 44}" y="{rect.y + 28}" font-family="Arial, sans-serif" font-size="14" '
            f'font-weight="bold" fill="{TEXT_PRIMARY}">{html.escape(truncate(screen.title, 26))}</text>',
        ]

        for index, element in enumerate(screen.elements):
            chip = self.breadboard_layout.chip_rect(rect, index)
            fill, color, border = ELEMENT_COLORS.get(element.element_type, ELEMENT_COLORS["info"])
            connecting = state.connecting_from == element.id
            parts.append(
                f'<rect class="element element-{html.escape(element.element_type)}" '
                f'data-id="{html.escape(element.id)}" x="{chip.x}" y="{chip.y}" width="{chip.width}" '
                f'height="{chip.height}" rx="6" ry="6" fill="{fill}" '
                f'stroke="{SELECTED_COLOR if connecting else border}"/>'
            )
            parts.append(
                f'<text x="{chip.x + 10}" y="{chip.y + chip.height / 2 + 4}" font-family="Arial, sans-serif" '
                f'font-size="12" fill="{color}">{html.escape(truncate(element.label, 30))}</text>'
            )
            if interactive:
                port = self.breadboard_layout.element_port(rect, index)
                parts.append(
                    f'<circle class="port port-element" data-id="{html.escape(element.id)}" '
                    f'cx="{port.x}" cy="{port.y}" r="{config.port_radius}" '
                    f'fill="{SELECTED_COLOR if connecting else PORT_COLOR}"/>'
                )

        if interactive:
            dot = self.breadboard_layout.screen_port(rect)
            source = state.connecting_from
            can_target = (
                state.mode == Mode.CONNECTING_FROM_PORT
                and source is not None
                and all(e.id != source for e in screen.elements)
            )
            dot_fill = "#c4b5fd" if can_target else "#e5e7eb"
            parts.append(
                f'<circle class="port port-screen" data-id="{html.escape(screen.id)}" cx="{dot.x}" '
                f'cy="{dot.y}" r="{config.dot_size / 2}" fill="{dot_fill}" stroke="{CARD_FILL}" stroke-width="2"/>'
            )

        parts.append("</g>")
        return "\n".join(parts)

    # --- Shared -----------------------------------------------------------------

    def _open_svg(self, bounds: Optional[Rect], svg_id: str) -> str:
        view = bounds.expanded(VIEW_MARGIN) if bounds else Rect(0, 0, 400, 300)
        return (
            f'<svg id="{svg_id}" xmlns="http://www.w3.org/2000/svg" '
            f'viewBox="{view.x} {view.y} {view.width} {view.height}" '
            f'width="{view.width}" height="{view.height}">'
        )

    def _render_defs(self) -> str:
        """Render SVG definitions (markers, filters)."""
        return f"""<defs>
            <marker id="arrowhead" markerWidth="10" markerHeight="7"
                refX="9" refY="3.5" orient="auto">
                <polygon points="0 0, 10 3.5, 0 7" fill="{EDGE_COLOR}"/>
            </marker>
            <marker id="arrowhead-selected" markerWidth="10" markerHeight="7"
                refX="9" refY="3.5" orient="auto">
                <polygon points="0 0, 10 3.5, 0 7" fill="{SELECTED_COLOR}"/>
            </marker>
            <marker id="arrowhead-hover" markerWidth="10" markerHeight="7"
                refX="9" refY="3.5" orient="auto">
                <polygon points="0 0, 10 3.5, 0 7" fill="{HOVER_COLOR}"/>
            </marker>
            <filter id="shadow" x="-20%" y="-20%" width="140%" height="140%">
                <feDropShadow dx="0" dy="1" stdDeviation="2" flood-opacity="0.1"/>
            </filter>
        </defs>"""

    def _render_connection(self, route: RoutedConnection, state: InteractionState, interactive: bool) -> str:
        """Render one connection: hit area, visible path, arrowhead and label."""
        conn = route.connection
        path_d = route.path.to_svg()

        if conn.id == state.selected_connection_id:
            color, marker, width = SELECTED_COLOR, "arrowhead-selected", 3
        elif conn.id == state.hovered_connection_id:
            color, marker, width = HOVER_COLOR, "arrowhead-hover", 2.5
        else:
            color, marker, width = EDGE_COLOR, "arrowhead", 2

        classes = "connection backward" if route.backward else "connection"
        parts = [f'<g class="{classes}" data-id="{html.escape(conn.id)}">']
        if interactive:
            parts.append(f'<path class="hit-area" d="{path_d}" fill="none" stroke="transparent" stroke-width="14"/>')
        parts.append(
            f'<path d="{path_d}" fill="none" stroke="{color}" stroke-width="{width}" '
            f'marker-end="url(#{marker})"/>'
        )

        editing = conn.id == state.editing_id
        text = state.editing_text + "|" if editing else conn.label
        if text:
            anchor = route.label_position
            box = label_rect(anchor, text)
            label_class = "label label-editing" if editing else "label"
            parts.append(
                f'<g class="{label_class}">'
                f'<rect x="{box.x:.2f}" y="{box.y:.2f}" width="{box.width}" height="{box.height}" rx="4" '
                f'fill="{CARD_FILL}" stroke="{color if editing else CARD_STROKE}"/>'
                f'<text x="{anchor.x:.2f}" y="{anchor.y + 4:.2f}" text-anchor="middle" '
                f'font-family="Arial, sans-serif" font-size="11" fill="{TEXT_SECONDARY}">{html.escape(text)}</text>'
                f"</g>"
            )

        parts.append("</g>")
        return "\n".join(parts)


def step_label_lines(step: ProcessStep) -> List[str]:
    """Secondary text lines shown under a step title."""
    lines: List[str] = []
    if step.role:
        lines.append(step.role)
    if step.tools:
        lines.append(", ".join(step.tools))
    duration = format_step_duration(step)
    if duration:
        lines.append(duration)
    return lines


"""
JSON Loader

Plain serialization of process diagrams and prototype plans using the field
names of the host application's JSON (``nodes``/``edges`` for processes,
``screens``/``connections`` for prototype plans).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .geometry import is_finite_number
from .layout import BreadboardLayout, GridLayout, is_valid_cell
from .model import (
    ELEMENT_TYPES,
    STEP_TAGS,
    Attachment,
    Connection,
    Duration,
    FlowDiagram,
    GridCell,
    ProcessStep,
    PrototypePlan,
    Screen,
    SubElement,
)

logger = logging.getLogger(__name__)


def _coerce_coordinate(value: Any) -> Any:
    """Integral numbers become ints; anything else is kept so layout can skip it."""
    if is_finite_number(value) and float(value).is_integer():
        return int(value)
    return value


def _parse_cell(position: Any, layout: GridLayout) -> Optional[GridCell]:
    if not isinstance(position, dict):
        return None
    if "row" in position or "column" in position:
        return GridCell(
            row=_coerce_coordinate(position.get("row")),
            column=_coerce_coordinate(position.get("column")),
        )
    # Legacy pixel positions
    x, y = position.get("x"), position.get("y")
    if is_finite_number(x) and is_finite_number(y):
        return layout.pixel_to_grid(x, y)
    return None


def _parse_duration(raw: Any) -> Optional[Duration]:
    if not isinstance(raw, dict) or not is_finite_number(raw.get("value")):
        return None
    return Duration(value=raw["value"], unit=raw.get("unit", "minutes"))


def _string_list(node: Dict[str, Any], key: str) -> List[str]:
    """A list-of-strings field; anything else is dropped with a warning."""
    value = node.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning("Node %s has a malformed %s field, ignoring it", node.get("id"), key)
        return []
    return [item for item in value if isinstance(item, str)]


def _parse_step(node: Dict[str, Any], layout: GridLayout) -> Optional[ProcessStep]:
    step_id = node.get("id")
    if not step_id:
        logger.warning("Skipping node without id: %r", node)
        return None

    cell = _parse_cell(node.get("position"), layout)
    if cell is None:
        logger.warning("Skipping node %s without a usable position", step_id)
        return None
    if not is_valid_cell(cell):
        logger.warning("Node %s has an invalid grid cell (%r, %r)", step_id, cell.row, cell.column)

    tags = [t for t in _string_list(node, "tags") if t in STEP_TAGS]
    attachments = [
        Attachment(name=a.get("name", ""), kind=a.get("type", "file"), url=a.get("url"))
        for a in node.get("attachments") or []
        if isinstance(a, dict)
    ]
    return ProcessStep(
        id=step_id,
        title=node.get("title", ""),
        cell=cell,
        step_type=node.get("type", "step"),
        role=node.get("role"),
        tools=_string_list(node, "tools"),
        notes=node.get("notes"),
        tags=tags,
        duration=_parse_duration(node.get("duration")),
        attachments=attachments,
    )


def _resolve_collisions(steps: List[ProcessStep], layout: GridLayout) -> None:
    """Move steps sharing a cell with an earlier step to the nearest free cell."""
    occupied = set()
    for step in steps:
        if not is_valid_cell(step.cell):
            continue
        if step.cell in occupied:
            moved = layout.find_nearest_free_cell(step.cell, occupied)
            logger.warning(
                "Node %s overlaps another node at (%d, %d), moved to (%d, %d)",
                step.id, step.cell.row, step.cell.column, moved.row, moved.column,
            )
            step.cell = moved
        occupied.add(step.cell)


def flow_from_dict(data: Dict[str, Any], layout: Optional[GridLayout] = None) -> FlowDiagram:
    """Build a FlowDiagram from host JSON, skipping malformed records."""
    layout = layout or GridLayout()
    steps = []
    seen = set()
    for node in data.get("nodes") or []:
        step = _parse_step(node, layout) if isinstance(node, dict) else None
        if step is None:
            continue
        if step.id in seen:
            logger.warning("Skipping duplicate node id %s", step.id)
            continue
        seen.add(step.id)
        steps.append(step)
    _resolve_collisions(steps, layout)

    connections = []
    for edge in data.get("edges") or []:
        if not isinstance(edge, dict) or not edge.get("id"):
            logger.warning("Skipping edge without id: %r", edge)
            continue
        if not edge.get("source") or not edge.get("target"):
            logger.warning("Skipping edge %s without source or target", edge["id"])
            continue
        connections.append(
            Connection(id=edge["id"], source_id=edge["source"], target_id=edge["target"], label=edge.get("label"))
        )

    return FlowDiagram(title=data.get("title", "Untitled Process"), steps=steps, connections=connections)


def flow_to_dict(diagram: FlowDiagram) -> Dict[str, Any]:
    nodes = []
    for step in diagram.steps:
        node: Dict[str, Any] = {
            "id": step.id,
            "type": step.step_type,
            "title": step.title,
            "position": {"row": step.cell.row, "column": step.cell.column},
            "tags": list(step.tags),
        }
        if step.role:
            node["role"] = step.role
        if step.tools:
            node["tools"] = list(step.tools)
        if step.notes:
            node["notes"] = step.notes
        if step.duration:
            node["duration"] = {"value": step.duration.value, "unit": step.duration.unit}
        if step.attachments:
            node["attachments"] = [
                {k: v for k, v in (("name", a.name), ("type", a.kind), ("url", a.url)) if v is not None}
                for a in step.attachments
            ]
        nodes.append(node)

    edges = []
    for conn in diagram.connections:
        edge = {"id": conn.id, "source": conn.source_id, "target": conn.target_id}
        if conn.label:
            edge["label"] = conn.label
        edges.append(edge)

    return {"title": diagram.title, "nodes": nodes, "edges": edges}


def plan_from_dict(data: Dict[str, Any]) -> PrototypePlan:
    """Build a PrototypePlan from host JSON. Stored positions are ignored."""
    screens = []
    for raw in data.get("screens") or []:
        if not isinstance(raw, dict) or not raw.get("id"):
            logger.warning("Skipping screen without id: %r", raw)
            continue
        elements = []
        for el in raw.get("elements") or []:
            if not isinstance(el, dict) or not el.get("id"):
                logger.warning("Skipping element without id in screen %s", raw["id"])
                continue
            element_type = el.get("type", "info")
            if element_type not in ELEMENT_TYPES:
                logger.warning("Element %s has unknown type %r, using 'info'", el["id"], element_type)
                element_type = "info"
            elements.append(
                SubElement(id=el["id"], label=el.get("label", ""), screen_id=raw["id"], element_type=element_type)
            )
        screens.append(Screen(id=raw["id"], title=raw.get("title", ""), elements=elements))

    connections = []
    for raw in data.get("connections") or []:
        if not isinstance(raw, dict) or not raw.get("id"):
            logger.warning("Skipping connection without id: %r", raw)
            continue
        if not raw.get("fromElementId") or not raw.get("toScreenId"):
            logger.warning("Skipping connection %s without endpoints", raw["id"])
            continue
        connections.append(Connection(id=raw["id"], source_id=raw["fromElementId"], target_id=raw["toScreenId"]))

    return PrototypePlan(screens=screens, connections=connections)


def plan_to_dict(plan: PrototypePlan, layout: Optional[BreadboardLayout] = None) -> Dict[str, Any]:
    """Serialize a plan. Positions are written for the host but never read back."""
    layout = layout or BreadboardLayout()
    rects = layout.screen_rects(plan.screens)
    screens = []
    for screen in plan.screens:
        rect = rects[screen.id]
        elements = []
        for index, element in enumerate(screen.elements):
            chip = layout.chip_rect(rect, index)
            elements.append(
                {
                    "id": element.id,
                    "type": element.element_type,
                    "label": element.label,
                    "screenId": screen.id,
                    "position": {"x": chip.x - rect.x, "y": chip.y - rect.y},
                }
            )
        screens.append(
            {
                "id": screen.id,
                "title": screen.title,
                "position": {"x": rect.x, "y": rect.y},
                "elements": elements,
            }
        )

    connections = [
        {"id": c.id, "fromElementId": c.source_id, "toScreenId": c.target_id} for c in plan.connections
    ]
    return {"screens": screens, "connections": connections}


def _read_json(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise ValueError(f"Path does not exist: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return data


def load_flow(path: Union[str, Path], layout: Optional[GridLayout] = None) -> FlowDiagram:
    return flow_from_dict(_read_json(path), layout)


def load_plan(path: Union[str, Path]) -> PrototypePlan:
    data = _read_json(path)
    # Host pages sometimes wrap the plan in {"prototypePlan": {...}}
    if "screens" not in data and isinstance(data.get("prototypePlan"), dict):
        data = data["prototypePlan"]
    return plan_from_dict(data)


def save_json(data: Dict[str, Any], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path

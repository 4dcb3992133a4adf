"""Process Mapper - Node-link diagram engine for process maps and prototype breadboards."""

__version__ = "1.0.0"

from .geometry import Point, Rect, ViewportTransform
from .model import Connection, FlowDiagram, GridCell, ProcessStep, PrototypePlan, Screen, SubElement
from .layout import BreadboardLayout, GridLayout
from .router import ConnectionRouter
from .interaction import BreadboardController, DiagramCallbacks, EventDispatcher, ProcessCanvasController
from .renderer import SVGRenderer
from .export import ExportError, ExportPipeline

__all__ = [
    "__version__",
    "Point",
    "Rect",
    "ViewportTransform",
    "Connection",
    "FlowDiagram",
    "GridCell",
    "ProcessStep",
    "PrototypePlan",
    "Screen",
    "SubElement",
    "GridLayout",
    "BreadboardLayout",
    "ConnectionRouter",
    "ProcessCanvasController",
    "BreadboardController",
    "DiagramCallbacks",
    "EventDispatcher",
    "SVGRenderer",
    "ExportPipeline",
    "ExportError",
]

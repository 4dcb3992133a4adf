#!/usr/bin/env python3
"""
processmapper - Process Map and Breadboard Renderer

Renders process maps and prototype breadboards saved as JSON to SVG, and
exports the whole diagram as a JPEG independent of any viewport.

Usage:
    # Render a process map to SVG
    processmapper process.json

    # Render a breadboard
    processmapper plan.json -k breadboard -o plan.svg

    # Export a high-resolution JPEG and print process metrics
    processmapper process.json --export process.jpg --summary
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .export import ExportConfig, ExportPipeline
from .layout import CanvasConfig, GridLayout
from .loader import load_flow, load_plan
from .renderer import SVGRenderer
from .summary import summarize


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render process maps and prototype breadboards from JSON.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Static SVG of a process map
    processmapper process.json -o process.svg

    # Breadboard SVG plus a JPEG export
    processmapper plan.json -k breadboard --export plan.jpg

    # Compact layout (80% of the default spacing)
    processmapper process.json --scale 0.8
        """,
    )

    parser.add_argument("input", help="Path to the diagram JSON file")

    parser.add_argument(
        "-k",
        "--kind",
        choices=["flow", "breadboard"],
        default="flow",
        help="Diagram kind. Default: flow",
    )

    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output SVG path. Default: <input>.svg",
    )

    parser.add_argument(
        "--export",
        metavar="FILE",
        default=None,
        help="Also export the whole diagram as a JPEG to FILE.",
    )

    parser.add_argument(
        "--export-scale",
        type=float,
        default=ExportConfig.scale,
        help=f"Raster scale factor for --export. Default: {ExportConfig.scale}",
    )

    parser.add_argument(
        "--scale",
        type=float,
        default=1.0,
        help="Scale process canvas spacing and box sizes. Default: 1.0",
    )

    parser.add_argument("--summary", action="store_true", help="Print process metrics (flow only)")

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    return parser


def main(argv: Optional[List[str]] = None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        sys.exit(1)

    if args.summary and args.kind != "flow":
        print("Error: --summary is only available for process maps (-k flow)", file=sys.stderr)
        sys.exit(1)

    if args.scale <= 0 or args.export_scale <= 0:
        print("Error: Scale factors must be positive", file=sys.stderr)
        sys.exit(1)

    output_path = Path(args.output) if args.output else input_path.with_suffix(".svg")

    try:
        layout = GridLayout(CanvasConfig().scaled(args.scale))
        renderer = SVGRenderer(layout=layout)
        pipeline = ExportPipeline(ExportConfig(scale=args.export_scale), layout=layout)

        if args.verbose:
            print(f"Loading {args.kind} from {input_path}...")

        if args.kind == "flow":
            diagram = load_flow(input_path, layout)
            if args.verbose:
                print(f"Found {len(diagram.steps)} steps and {len(diagram.connections)} connections")
            svg = renderer.render_flow(diagram, interactive=False)
            entity_count, connection_count = len(diagram.steps), len(diagram.connections)
        else:
            plan = load_plan(input_path)
            if args.verbose:
                print(f"Found {len(plan.screens)} screens and {len(plan.connections)} connections")
            svg = renderer.render_breadboard(plan, interactive=False)
            entity_count, connection_count = len(plan.screens), len(plan.connections)

        output_path.write_text(svg, encoding="utf-8")
        print(f"Diagram generated: {output_path.absolute()}")

        if args.export:
            if args.verbose:
                print("Exporting raster image...")
            if args.kind == "flow":
                result = asyncio.run(pipeline.export_flow(diagram))
            else:
                result = asyncio.run(pipeline.export_breadboard(plan))
            saved = result.save(args.export)
            print(f"Image exported: {saved.absolute()} ({result.width}x{result.height})")

        print("\nSummary:")
        print(f"  Entities: {entity_count}")
        print(f"  Connections: {connection_count}")

        if args.summary:
            metrics = summarize(diagram)
            print(f"  Roles: {metrics.role_count}")
            print(f"  Tools: {len(metrics.tools)}")
            print(f"  Friction points: {metrics.friction_count}")
            print(f"  Handoffs: {metrics.handoff_count}")
            print(f"  Automated steps: {metrics.automated_count}")
            print(f"  Estimated time: {metrics.estimated_duration}")

    except (RuntimeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()

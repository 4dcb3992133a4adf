"""Process metrics shown beside the canvas."""

from dataclasses import dataclass, field
from typing import List

from .model import FlowDiagram

# Working time: 8-hour days, 5-day weeks
MINUTES_PER_UNIT = {
    "minutes": 1,
    "hours": 60,
    "days": 60 * 8,
    "weeks": 60 * 8 * 5,
}


@dataclass
class ProcessSummary:
    step_count: int = 0
    role_count: int = 0
    friction_count: int = 0
    handoff_count: int = 0
    automated_count: int = 0
    trigger_count: int = 0
    tools: List[str] = field(default_factory=list)
    total_minutes: float = 0

    @property
    def estimated_duration(self) -> str:
        return format_duration(self.total_minutes)


def _compact(value: float) -> str:
    value = round(value * 10) / 10
    return str(int(value)) if float(value).is_integer() else str(value)


def format_duration(minutes: float) -> str:
    """Render working minutes as ``45m``, ``2.5h``, ``1.5d`` or ``2w``."""
    if minutes < 60:
        return f"{_compact(minutes)}m"
    if minutes < MINUTES_PER_UNIT["days"]:
        return f"{_compact(minutes / 60)}h"
    if minutes < MINUTES_PER_UNIT["weeks"]:
        return f"{_compact(minutes / MINUTES_PER_UNIT['days'])}d"
    return f"{_compact(minutes / MINUTES_PER_UNIT['weeks'])}w"


def summarize(diagram: FlowDiagram) -> ProcessSummary:
    steps = diagram.steps
    tools: List[str] = []
    for step in steps:
        for tool in step.tools:
            if tool not in tools:
                tools.append(tool)

    total = 0.0
    for step in steps:
        if step.duration is not None:
            total += step.duration.value * MINUTES_PER_UNIT.get(step.duration.unit, 0)

    return ProcessSummary(
        step_count=len(steps),
        role_count=len({s.role for s in steps if s.role}),
        friction_count=sum(1 for s in steps if "friction" in s.tags),
        handoff_count=sum(1 for s in steps if "handoff" in s.tags),
        automated_count=sum(1 for s in steps if "automated" in s.tags),
        trigger_count=sum(1 for s in steps if "trigger" in s.tags),
        tools=tools,
        total_minutes=total,
    )

"""
Quantity roll-up for a project's work breakdown.

Task quantities are authoritative. Every subpackage, package and the project
itself gets ``total = sum(child totals)``, ``completed = sum(child completed)``
and a half-up rounded percentage. Nodes without children are leaves and keep
their own quantities; only their progress is recomputed.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .logs import get_logger
from .models import NodeType, Project, QuantityNode, TaskStatus, calculate_percentage, walk

log = get_logger("aggregate")

__all__ = [
    "QuantityAggregator",
    "ProjectStatistics",
    "aggregate",
    "calculate_percentage",
    "find_inconsistencies",
    "project_statistics",
    "rollup_node",
]


def _rollup(node: QuantityNode) -> Tuple[QuantityNode, int, int]:
    """Post-order: roll every child first, then total them into this node."""
    children = node.children
    if not children:
        return node.with_quantities(node.completed, node.total), node.completed, node.total

    completed = 0
    total = 0
    rolled = []
    for child in children:
        new_child, child_completed, child_total = _rollup(child)
        rolled.append(new_child)
        completed += child_completed
        total += child_total

    updated = node.with_children(rolled).with_quantities(completed, total)
    return updated, completed, total


def rollup_node(node: QuantityNode) -> QuantityNode:
    """Roll up a single subtree (any level)."""
    return _rollup(node)[0]


def aggregate(project: Project) -> Project:
    """Recompute completed/total/progress for every level of the project."""
    updated, completed, total = _rollup(project)
    log.debug(f"Rolled up project {project.id}: {completed}/{total} ({updated.progress}%)")
    return updated


class QuantityAggregator:
    """Class-level entry point for the roll-up."""

    @staticmethod
    def run(project: Project) -> Project:
        return aggregate(project)


def find_inconsistencies(project: Project) -> List[str]:
    """
    Compare stored quantities against what a roll-up would produce.

    Returns:
        One message per node whose completed, total or progress is stale;
        empty when the project is consistent.
    """
    expected = dict(walk(aggregate(project)))
    errors = []
    for path, node in walk(project):
        want = expected[path]
        for attr in ("completed", "total", "progress"):
            stored = getattr(node, attr)
            computed = getattr(want, attr)
            if stored != computed:
                errors.append(
                    f"{node.node_type.value} {path} \"{node.name}\": stored {attr} {stored}, computed {computed}")
    return errors


@dataclass
class ProjectStatistics:
    package_count: int
    subpackage_count: int
    task_count: int
    completed: int
    total: int
    progress: int
    tasks_by_status: Dict[str, int] = field(default_factory=dict)


def project_statistics(project: Project) -> ProjectStatistics:
    """Counts per level plus the rolled-up quantities of the project."""
    counts = Counter()
    statuses = Counter()
    for _, node in walk(project):
        counts[node.node_type] += 1
        if node.node_type is NodeType.TASK:
            statuses[node.status.value] += 1

    rolled = aggregate(project)
    return ProjectStatistics(
        package_count=counts[NodeType.PACKAGE],
        subpackage_count=counts[NodeType.SUBPACKAGE],
        task_count=counts[NodeType.TASK],
        completed=rolled.completed,
        total=rolled.total,
        progress=rolled.progress,
        tasks_by_status={status.value: statuses[status.value] for status in TaskStatus},
    )

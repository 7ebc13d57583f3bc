"""
wbstree - progress tracking for construction work breakdown structures.

This package organizes work through a four-level hierarchy:
Project → Package → Subpackage → Task
and provides the roll-up, distribution, task lifecycle and tree-flattening
logic that drives a windowed tree view over it.
"""

from .version import VERSION
from .errors import (
    WBSError,
    RecoverableError,
    FatalError,
    ValidationError,
    NodeNotFoundError,
    InvalidTransitionError,
    PersistenceError,
)
from .models import (
    NodePath,
    NodeType,
    TaskStatus,
    ReviewedNode,
    Project,
    Package,
    Subpackage,
    Task,
)
from .aggregate import QuantityAggregator, aggregate
from .distribute import Allocation, DistributionRequest, DistributionStrategy, distribute
from .lifecycle import TaskLifecycle
from .tree import ExpandedState, FlatItem, TreeBatchOperations, TreeFlattener, flatten
from .view import TreeView
from .service import ProjectOperations

__version__ = VERSION

__all__ = [
    "VERSION",
    "WBSError",
    "RecoverableError",
    "FatalError",
    "ValidationError",
    "NodeNotFoundError",
    "InvalidTransitionError",
    "PersistenceError",
    "NodePath",
    "NodeType",
    "TaskStatus",
    "ReviewedNode",
    "Project",
    "Package",
    "Subpackage",
    "Task",
    "QuantityAggregator",
    "aggregate",
    "Allocation",
    "DistributionRequest",
    "DistributionStrategy",
    "distribute",
    "TaskLifecycle",
    "ExpandedState",
    "FlatItem",
    "TreeBatchOperations",
    "TreeFlattener",
    "flatten",
    "TreeView",
    "ProjectOperations",
]

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Iterator, Optional, Tuple, Union
import re
import yaml

from .errors import NodeNotFoundError, ValidationError


def calculate_percentage(completed: int, total: int) -> int:
    """Whole-number percentage of completed over total, rounded half up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


class TaskStatus(Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class NodeType(Enum):
    PROJECT = "project"
    PACKAGE = "package"
    SUBPACKAGE = "subpackage"
    TASK = "task"

    @property
    def level(self) -> int:
        return _LEVELS[self]

    @classmethod
    def at_level(cls, level: int) -> 'NodeType':
        return _BY_LEVEL[level]


_LEVELS = {NodeType.PROJECT: 0, NodeType.PACKAGE: 1, NodeType.SUBPACKAGE: 2, NodeType.TASK: 3}
_BY_LEVEL = {level: node_type for node_type, level in _LEVELS.items()}


@dataclass(frozen=True)
class NodePath:
    """Structured address of one node in a project's work breakdown.

    The boundary (string) form is ``{type}-{project_id}[-{index}...]``, e.g.
    ``task-p1-0-2-1`` for task 1 of subpackage 2 of package 0. Project ids may
    themselves contain ``-``; the trailing index segments are fixed by the type.
    """

    node_type: NodeType
    project_id: str
    indices: Tuple[int, ...] = ()

    PATH_PATTERN = re.compile(r'^(project|package|subpackage|task)-(.+)$')
    INDEX_PATTERN = re.compile(r'^[0-9]+$')

    def __post_init__(self):
        if not self.project_id:
            raise ValidationError("Node path needs a project id")
        if len(self.indices) != self.node_type.level:
            raise ValidationError(
                f"A {self.node_type.value} path takes {self.node_type.level} indices, got {len(self.indices)}")
        if any(i < 0 for i in self.indices):
            raise ValidationError(f"Negative index in node path: {self.indices}")

    @classmethod
    def root(cls, project_id: str) -> 'NodePath':
        return cls(NodeType.PROJECT, project_id)

    @classmethod
    def parse(cls, text: str) -> 'NodePath':
        """Parse the boundary string form."""
        match = cls.PATH_PATTERN.match(text or '')
        if not match:
            raise ValidationError(f"Invalid node path format: {text}")
        node_type = NodeType(match.group(1))
        depth = node_type.level
        parts = match.group(2).rsplit('-', depth) if depth else [match.group(2)]
        if len(parts) != depth + 1 or not parts[0] or \
                not all(cls.INDEX_PATTERN.match(p) for p in parts[1:]):
            raise ValidationError(f"Invalid node path format: {text}")
        return cls(node_type, parts[0], tuple(int(p) for p in parts[1:]))

    @classmethod
    def validate_path(cls, text: str) -> bool:
        """Validate if a path string is properly formatted."""
        try:
            cls.parse(text)
            return True
        except ValueError:
            return False

    @property
    def level(self) -> int:
        return len(self.indices)

    @property
    def parent(self) -> Optional['NodePath']:
        if not self.indices:
            return None
        return NodePath(NodeType.at_level(self.level - 1), self.project_id, self.indices[:-1])

    def child(self, index: int) -> 'NodePath':
        if self.node_type is NodeType.TASK:
            raise ValidationError("Tasks have no children")
        return NodePath(NodeType.at_level(self.level + 1), self.project_id, self.indices + (index,))

    def ancestors(self) -> Iterator['NodePath']:
        """Yield the parent, grandparent, ... up to the project root."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    @property
    def package_index(self) -> Optional[int]:
        return self.indices[0] if self.level >= 1 else None

    @property
    def subpackage_index(self) -> Optional[int]:
        return self.indices[1] if self.level >= 2 else None

    @property
    def task_index(self) -> Optional[int]:
        return self.indices[2] if self.level >= 3 else None

    def __str__(self) -> str:
        return '-'.join([self.node_type.value, self.project_id] + [str(i) for i in self.indices])


def as_path(value: Union[NodePath, str]) -> NodePath:
    """Accept either a NodePath or its string form."""
    if isinstance(value, NodePath):
        return value
    return NodePath.parse(value)


class BaseYAMLModel(BaseModel):
    """Pydantic model with YAML (de)serialization."""

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode='json'), default_flow_style=False,
                              sort_keys=False, indent=2, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str):
        return cls.model_validate(yaml.safe_load(text) or {})


class QuantityNode(BaseYAMLModel):
    """Common quantity fields carried by every level of the breakdown."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    node_type: ClassVar[NodeType]
    child_field: ClassVar[Optional[str]] = None

    name: str = Field(description="Human readable name of the node")
    completed: int = Field(default=0, ge=0, description="Units of work completed")
    total: int = Field(default=0, ge=0, description="Units of work planned")
    progress: int = Field(default=0, ge=0, le=100, description="Completion percentage (0-100)")

    @model_validator(mode='after')
    def validate_quantities(self):
        if self.completed > self.total:
            raise ValueError("completed must not exceed total")
        return self

    @property
    def children(self) -> tuple:
        if self.child_field is None:
            return ()
        return getattr(self, self.child_field)

    def with_children(self, children) -> 'QuantityNode':
        if self.child_field is None:
            raise ValidationError(f"A {self.node_type.value} has no children")
        return self.model_copy(update={self.child_field: tuple(children)})

    def with_quantities(self, completed: int, total: int) -> 'QuantityNode':
        return self.model_copy(update={
            'completed': completed,
            'total': total,
            'progress': calculate_percentage(completed, total),
        })


def _dedupe_users(users) -> tuple:
    cleaned = []
    for uid in users:
        uid = uid.strip()
        if uid and uid not in cleaned:
            cleaned.append(uid)
    return tuple(cleaned)


class ReviewedNode(QuantityNode):
    """A node that goes through review: tasks, subpackages and packages."""

    status: TaskStatus = Field(default=TaskStatus.DRAFT, description="Lifecycle state of the node")
    reviewers: Tuple[str, ...] = Field(default_factory=tuple, description="User ids allowed to review")
    submitted_at: Optional[datetime] = Field(default=None, description="When the node was last submitted for review")
    approved_at: Optional[datetime] = Field(default=None, description="When the node was approved")
    review_comment: Optional[str] = Field(default=None, description="Comment left by the last review")

    @field_validator('reviewers')
    @classmethod
    def dedupe_reviewers(cls, v):
        return _dedupe_users(v)


class Project(QuantityNode):
    """A construction project and its full work breakdown."""

    node_type: ClassVar[NodeType] = NodeType.PROJECT
    child_field: ClassVar[Optional[str]] = 'packages'

    id: str = Field(min_length=1, description="Unique identifier of the project")
    packages: Tuple['Project.Package', ...] = Field(
        default_factory=tuple,
        description="Ordered work packages"
    )

    @property
    def path(self) -> NodePath:
        return NodePath.root(self.id)

    def find_by_path(self, path: Union[NodePath, str]) -> Optional[QuantityNode]:
        """Find a node by its path; None when any step is missing."""
        path = as_path(path)
        if path.project_id != self.id:
            return None
        node = self
        for index in path.indices:
            children = node.children
            if index >= len(children):
                return None
            node = children[index]
        return node

    class Package(ReviewedNode):
        node_type: ClassVar[NodeType] = NodeType.PACKAGE
        child_field: ClassVar[Optional[str]] = 'subpackages'

        subpackages: Tuple['Project.Subpackage', ...] = Field(
            default_factory=tuple,
            description="Ordered subpackages"
        )

    class Subpackage(ReviewedNode):
        node_type: ClassVar[NodeType] = NodeType.SUBPACKAGE
        child_field: ClassVar[Optional[str]] = 'tasks'

        tasks: Tuple['Project.Task', ...] = Field(
            default_factory=tuple,
            validation_alias=AliasChoices('tasks', 'taskpackages'),
            description="Ordered tasks"
        )

    class Task(ReviewedNode):
        node_type: ClassVar[NodeType] = NodeType.TASK

        submitters: Tuple[str, ...] = Field(default_factory=tuple, description="User ids allowed to submit progress")

        @field_validator('submitters')
        @classmethod
        def dedupe_submitters(cls, v):
            return _dedupe_users(v)

Project.Task.model_rebuild()
Project.Subpackage.model_rebuild()
Project.Package.model_rebuild()
Project.model_rebuild()

Package = Project.Package
Subpackage = Project.Subpackage
Task = Project.Task


def walk(project: Project) -> Iterator[Tuple[NodePath, QuantityNode]]:
    """Yield every node of the project in pre-order with its path."""
    stack = [(project.path, project)]
    while stack:
        path, node = stack.pop()
        yield path, node
        children = node.children
        for index in range(len(children) - 1, -1, -1):
            stack.append((path.child(index), children[index]))


def require_node(project: Project, path: Union[NodePath, str]) -> QuantityNode:
    """Like find_by_path, but a missing node raises NodeNotFoundError."""
    path = as_path(path)
    node = project.find_by_path(path)
    if node is None:
        raise NodeNotFoundError(path)
    return node


def replace_node(project: Project, path: Union[NodePath, str], node: QuantityNode) -> Project:
    """Return a new project with the node at path replaced; untouched branches are shared."""
    path = as_path(path)
    current = require_node(project, path)
    if type(node) is not type(current):
        raise ValidationError(
            f"Cannot put a {node.node_type.value} at {path} (expected {current.node_type.value})")
    if path.node_type is NodeType.PROJECT:
        return node

    def _swap(parent: QuantityNode, depth: int) -> QuantityNode:
        index = path.indices[depth]
        children = list(parent.children)
        if depth == path.level - 1:
            children[index] = node
        else:
            children[index] = _swap(children[index], depth + 1)
        return parent.with_children(children)

    return _swap(project, 0)

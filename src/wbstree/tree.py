"""
Flattening the work breakdown into rows for windowed rendering.

The flattener walks the project in pre-order and only descends into nodes the
ExpandedState marks as expanded, so the cost follows the visible part of the
tree. A search term filters the rows to matches plus their ancestors.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Union

from .logs import get_logger
from .models import NodePath, NodeType, Project, QuantityNode, as_path

log = get_logger("tree")

PathLike = Union[NodePath, str]


class ExpandedState:
    """Set of expanded node paths for one tree view."""

    def __init__(self, ids: Iterable[PathLike] = ()):
        self._expanded: Set[NodePath] = set()
        self.expand_all(ids)

    def toggle(self, id: PathLike) -> None:
        path = as_path(id)
        if path in self._expanded:
            self._expanded.discard(path)
        else:
            self._expanded.add(path)

    def is_expanded(self, id: PathLike) -> bool:
        return as_path(id) in self._expanded

    def expand(self, id: PathLike) -> None:
        self._expanded.add(as_path(id))

    def collapse(self, id: PathLike) -> None:
        self._expanded.discard(as_path(id))

    def expand_all(self, ids: Iterable[PathLike]) -> None:
        self._expanded.update(as_path(i) for i in ids)

    def collapse_all(self) -> None:
        self._expanded.clear()

    def get_expanded_ids(self) -> List[NodePath]:
        return list(self._expanded)

    def __contains__(self, id: PathLike) -> bool:
        return self.is_expanded(id)

    def __len__(self) -> int:
        return len(self._expanded)


@dataclass(frozen=True)
class FlatItem:
    """One row of the flattened tree."""

    path: NodePath
    data: QuantityNode
    has_children: bool
    is_expanded: bool
    is_visible: bool

    @property
    def id(self) -> NodePath:
        return self.path

    @property
    def node_type(self) -> NodeType:
        return self.path.node_type

    @property
    def level(self) -> int:
        return self.path.level

    @property
    def parent_path(self) -> Optional[NodePath]:
        return self.path.parent

    @property
    def project_id(self) -> str:
        return self.path.project_id

    @property
    def package_index(self) -> Optional[int]:
        return self.path.package_index

    @property
    def subpackage_index(self) -> Optional[int]:
        return self.path.subpackage_index

    @property
    def task_index(self) -> Optional[int]:
        return self.path.task_index

    def to_dict(self) -> Dict[str, Any]:
        """Boundary shape handed to renderers."""
        parent = self.parent_path
        return {
            'id': str(self.path),
            'type': self.node_type.value,
            'level': self.level,
            'parentId': str(parent) if parent else None,
            'projectId': self.project_id,
            'packageIndex': self.package_index,
            'subpackageIndex': self.subpackage_index,
            'taskIndex': self.task_index,
            'hasChildren': self.has_children,
            'isExpanded': self.is_expanded,
            'isVisible': self.is_visible,
            'data': self.data.model_dump(mode='json', exclude={'packages', 'subpackages', 'tasks'}),
        }


def matches_search(text: str, search_term: Optional[str]) -> bool:
    """Case-insensitive substring match; no term (or a blank one) matches everything."""
    if not search_term or not search_term.strip():
        return True
    return search_term.strip().casefold() in text.casefold()


def _walk(node: QuantityNode, path: NodePath, state: ExpandedState, search_term: Optional[str]) -> Iterator[FlatItem]:
    children = node.children
    expanded = bool(children) and state.is_expanded(path)
    yield FlatItem(
        path=path,
        data=node,
        has_children=bool(children),
        is_expanded=expanded,
        is_visible=matches_search(node.name, search_term),
    )
    if expanded:
        for index, child in enumerate(children):
            yield from _walk(child, path.child(index), state, search_term)


def _propagate_visibility(items: List[FlatItem]) -> List[FlatItem]:
    # Pre-order puts descendants after their ancestors, so one reverse pass
    # sees every child before its parent.
    has_visible_child: Set[NodePath] = set()
    for item in reversed(items):
        if item.is_visible or item.path in has_visible_child:
            parent = item.parent_path
            if parent is not None:
                has_visible_child.add(parent)
    return [
        item if item.is_visible else replace(item, is_visible=True)
        for item in items
        if item.is_visible or item.path in has_visible_child
    ]


def flatten(project: Project, expanded_state: ExpandedState, search_term: Optional[str] = None) -> List[FlatItem]:
    """
    Flatten the project into display rows.

    Args:
        project: The (rolled-up) project to render
        expanded_state: Which nodes are expanded in this view
        search_term: Optional filter on node names

    Returns:
        Rows in pre-order; with a search term, only matches and their ancestors
    """
    items = list(_walk(project, project.path, expanded_state, search_term))
    if search_term and search_term.strip():
        items = _propagate_visibility(items)
    log.debug(f"Flattened project {project.id} into {len(items)} rows")
    return items


class TreeFlattener:
    """Flattener bound to one view's expanded state."""

    def __init__(self, expanded_state: ExpandedState):
        self.expanded_state = expanded_state

    def flatten(self, project: Project, search_term: Optional[str] = None) -> List[FlatItem]:
        return flatten(project, self.expanded_state, search_term)


@dataclass
class TreeStats:
    total: int = 0
    by_type: Dict[NodeType, int] = field(default_factory=lambda: {t: 0 for t in NodeType})
    by_level: Dict[int, int] = field(default_factory=dict)
    expanded: int = 0


class TreeBatchOperations:
    """Bulk expansion and counting over flattened rows."""

    @staticmethod
    def expand_to_level(expanded_state: ExpandedState, items: Iterable[FlatItem], max_level: int) -> None:
        """Expand every row above max_level that has children."""
        expanded_state.expand_all(
            item.path for item in items if item.level < max_level and item.has_children
        )

    @staticmethod
    def smart_expand(expanded_state: ExpandedState, items: Iterable[FlatItem], max_nodes: int = 500) -> int:
        """
        Expand level by level, stopping after max_nodes expansions.

        Returns:
            The number of nodes expanded
        """
        items = list(items)
        expanded_count = 0
        for level in range(len(NodeType)):
            if expanded_count >= max_nodes:
                break
            for item in items:
                if item.level != level or not item.has_children:
                    continue
                if expanded_count >= max_nodes:
                    break
                expanded_state.expand(item.path)
                expanded_count += 1
        return expanded_count

    @staticmethod
    def calculate_stats(items: Iterable[FlatItem]) -> TreeStats:
        stats = TreeStats()
        for item in items:
            stats.total += 1
            stats.by_type[item.node_type] += 1
            stats.by_level[item.level] = stats.by_level.get(item.level, 0) + 1
            if item.is_expanded:
                stats.expanded += 1
        return stats

    @staticmethod
    def reveal(expanded_state: ExpandedState, path: PathLike) -> None:
        """Expand every ancestor of path so the next flatten reaches it."""
        expanded_state.expand_all(as_path(path).ancestors())

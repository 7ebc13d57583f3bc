"""
TreeView - one tree-view session over a project.

The view owns its ExpandedState, the current project and the search term.
Rows are recomputed from scratch whenever any of them changes; the renderer
only ever sees a window of rows plus the two callbacks it may invoke.
"""

from typing import Callable, List, Optional, Protocol, Union

from .config import Settings
from .logs import get_logger
from .models import NodePath, Project, as_path
from .tree import ExpandedState, FlatItem, TreeBatchOperations, TreeStats, flatten

log = get_logger("view")


class Renderer(Protocol):
    def render(self,
               items: List[FlatItem],
               toggle_expand: Callable[[Union[NodePath, str]], None],
               on_item_click: Callable[[FlatItem], None]) -> None:
        ...


class TreeView:
    """Expansion, search, selection and windowing for one rendered tree."""

    def __init__(self, project: Project, settings: Optional[Settings] = None,
                 expanded_state: Optional[ExpandedState] = None,
                 on_select: Optional[Callable[[FlatItem], None]] = None):
        self.settings = settings or Settings()
        self.expanded_state = expanded_state if expanded_state is not None else ExpandedState()
        self.on_select = on_select
        self.selected: Optional[NodePath] = None
        self._project = project
        self._search_term: Optional[str] = None
        self._items: Optional[List[FlatItem]] = None
        if expanded_state is None:
            self.expand_to_level(self.settings.default_expand_level)

    @property
    def project(self) -> Project:
        return self._project

    @property
    def search_term(self) -> Optional[str]:
        return self._search_term

    @property
    def items(self) -> List[FlatItem]:
        if self._items is None:
            self._items = flatten(self._project, self.expanded_state, self._search_term)
        return self._items

    def _invalidate(self) -> None:
        self._items = None

    def set_project(self, project: Project) -> None:
        """Swap in the project produced by a mutation (already rolled up)."""
        self._project = project
        self._invalidate()

    def set_search(self, search_term: Optional[str]) -> None:
        self._search_term = search_term
        self._invalidate()

    def toggle_expand(self, id: Union[NodePath, str]) -> None:
        self.expanded_state.toggle(id)
        self._invalidate()

    def expand_to_level(self, max_level: int) -> None:
        # Each pass exposes one more level of rows
        for _ in range(max_level):
            TreeBatchOperations.expand_to_level(self.expanded_state, self.items, max_level)
            self._invalidate()

    def expand_all(self) -> int:
        """Bounded expansion of the currently visible rows (one level deeper per call)."""
        count = TreeBatchOperations.smart_expand(
            self.expanded_state, self.items, self.settings.view_expand_all_max_nodes)
        self._invalidate()
        return count

    def collapse_all(self) -> None:
        self.expanded_state.collapse_all()
        self._invalidate()

    def reveal(self, path: Union[NodePath, str]) -> None:
        TreeBatchOperations.reveal(self.expanded_state, path)
        self._invalidate()

    def index_of(self, path: Union[NodePath, str]) -> Optional[int]:
        """Row index of a node, for scrolling; None when it is not rendered."""
        path = as_path(path)
        for index, item in enumerate(self.items):
            if item.path == path:
                return index
        return None

    def window(self, offset: int = 0, size: Optional[int] = None) -> List[FlatItem]:
        """The rows a renderer of `size` rows starting at `offset` needs."""
        offset = max(offset, 0)
        if size is None:
            return self.items[offset:]
        return self.items[offset:offset + max(size, 0)]

    def on_item_click(self, item: FlatItem) -> None:
        self.selected = item.path
        log.debug(f"Selected {item.path}")
        if self.on_select is not None:
            self.on_select(item)

    @property
    def stats(self) -> TreeStats:
        return TreeBatchOperations.calculate_stats(self.items)

    def render(self, renderer: Renderer, offset: int = 0, size: Optional[int] = None) -> None:
        renderer.render(self.window(offset, size), self.toggle_expand, self.on_item_click)

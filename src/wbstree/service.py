"""
ProjectOperations - async mutations of a project through an injected store.

Each operation runs the pure step first (lifecycle transition or
distribution), rolls the project up, then saves it. Validation and transition
errors are raised before any I/O. A failed save raises PersistenceError and
the caller keeps the project it passed in, so the same call can be retried.
Errors the store raises in wbstree's own terms (a bad project id, a corrupt
file) come through unchanged; anything else it raises becomes a
PersistenceError.
"""

from typing import Callable, Iterable, Optional, Protocol, Union

from . import lifecycle
from .aggregate import aggregate
from .distribute import DistributionRequest, apply_distribution
from .errors import NodeNotFoundError, PersistenceError, ValidationError, WBSError
from .lifecycle import TaskPermissions, task_permissions
from .logs import get_logger
from .models import NodePath, NodeType, Project, ReviewedNode, TaskStatus, as_path, replace_node, require_node

log = get_logger("service")

Identity = Callable[[], Optional[str]]

REVIEWED_TYPES = (NodeType.TASK, NodeType.SUBPACKAGE, NodeType.PACKAGE)


class ProjectRepository(Protocol):
    async def load_project(self, project_id: str) -> Optional[Project]:
        ...

    async def save_project(self, project_id: str, project: Project) -> bool:
        ...


def _task_path(path: Union[NodePath, str]) -> NodePath:
    path = as_path(path)
    if path.node_type is not NodeType.TASK:
        raise ValidationError(f"{path} is not a task")
    return path


def _reviewed_path(path: Union[NodePath, str]) -> NodePath:
    path = as_path(path)
    if path.node_type not in REVIEWED_TYPES:
        raise ValidationError(f"{path} has no review step")
    return path


class ProjectOperations:
    """Assign, submit, review and distribute against a project store."""

    def __init__(self, repository: ProjectRepository, identity: Optional[Identity] = None):
        self.repository = repository
        self.identity = identity

    async def load_project(self, project_id: str) -> Project:
        try:
            project = await self.repository.load_project(project_id)
        except WBSError:
            raise
        except Exception as e:
            log.error(f"Loading project {project_id} failed: {e}")
            raise PersistenceError(f"Could not load project {project_id}: {e}") from e
        if project is None:
            raise NodeNotFoundError(NodePath.root(project_id))
        return project

    async def _save(self, project: Project) -> Project:
        try:
            saved = await self.repository.save_project(project.id, project)
        except WBSError:
            raise
        except Exception as e:
            log.error(f"Saving project {project.id} failed: {e}")
            raise PersistenceError(f"Could not save project {project.id}: {e}") from e
        if not saved:
            log.error(f"Store refused project {project.id}")
            raise PersistenceError(f"Could not save project {project.id}")
        return project

    async def _update_node(self, project: Project, path: NodePath, transition) -> Project:
        node = require_node(project, path)
        updated_node = transition(node)
        updated = replace_node(project, path, updated_node)
        if updated_node.status is TaskStatus.APPROVED and node.status is not TaskStatus.APPROVED:
            updated = lifecycle.cascade_completion(updated, path)
        return await self._save(aggregate(updated))

    async def assign_task(self, project: Project, path: Union[NodePath, str],
                          submitters: Iterable[str], reviewers: Iterable[str]) -> Project:
        log.info(f"Assigning {path}")
        return await self._update_node(
            project, _task_path(path), lambda task: lifecycle.assign(task, submitters, reviewers))

    async def assign_reviewers(self, project: Project, path: Union[NodePath, str],
                               reviewers: Iterable[str]) -> Project:
        """Set who reviews a subpackage or package once its children are approved."""
        path = _reviewed_path(path)
        if path.node_type is NodeType.TASK:
            raise ValidationError(f"{path} is a task; assign it submitters and reviewers together")
        log.info(f"Assigning reviewers to {path}")
        return await self._update_node(
            project, path, lambda node: lifecycle.set_reviewers(node, reviewers))

    async def submit_task_progress(self, project: Project, path: Union[NodePath, str],
                                   completed: int, total: int) -> Project:
        log.info(f"Submitting {completed}/{total} for {path}")
        return await self._update_node(
            project, _task_path(path), lambda task: lifecycle.submit_progress(task, completed, total))

    async def review_task(self, project: Project, path: Union[NodePath, str],
                          approved: bool, comment: Optional[str] = None) -> Project:
        """Review a task, or a subpackage or package submitted by the completion cascade."""
        log.info(f"Reviewing {path}: {'approve' if approved else 'reject'}")
        return await self._update_node(
            project, _reviewed_path(path), lambda node: lifecycle.review(node, approved, comment))

    async def distribute_quantity(self, project: Project, path: Union[NodePath, str],
                                  request: DistributionRequest) -> Project:
        log.info(f"Distributing {request.parent_total} under {path}")
        updated = aggregate(apply_distribution(project, path, request))
        return await self._save(updated)

    async def rollup(self, project: Project) -> Project:
        return await self._save(aggregate(project))

    def current_user(self) -> Optional[str]:
        return self.identity() if self.identity is not None else None

    def permissions(self, node: Optional[ReviewedNode]) -> TaskPermissions:
        return task_permissions(node, self.current_user())

"""
Task lifecycle: assignment, progress submission and review.

    draft -> in-progress -> submitted -> approved | rejected
    rejected -> submitted | approved            (resubmitted progress)

Every function takes a node and returns a new one. An event that is not legal
in the node's state raises InvalidTransitionError; bad arguments raise
ValidationError. Both happen before anything is built.

Subpackages and packages follow their tasks: once every child is approved,
``cascade_completion`` submits the parent for review (or approves it outright
when it has no reviewers) and carries on upwards.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Union

from .errors import InvalidTransitionError, ValidationError
from .logs import get_logger
from .models import (
    NodePath, NodeType, Project, ReviewedNode, Task, TaskStatus,
    as_path, calculate_percentage, replace_node, require_node
)


log = get_logger("lifecycle")


class TaskEvent(Enum):
    ASSIGN = "assign"
    SUBMIT = "submit"
    REVIEW = "review"


# States from which each event may fire
TRANSITIONS: Dict[TaskEvent, FrozenSet[TaskStatus]] = {
    TaskEvent.ASSIGN: frozenset(TaskStatus),
    TaskEvent.SUBMIT: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.REJECTED}),
    TaskEvent.REVIEW: frozenset({TaskStatus.SUBMITTED}),
}


def can_fire(status: TaskStatus, event: TaskEvent) -> bool:
    return status in TRANSITIONS[event]


def check_transition(status: TaskStatus, event: TaskEvent) -> None:
    if not can_fire(status, event):
        raise InvalidTransitionError(status, event)


def _clean(users: Optional[Iterable[str]]) -> tuple:
    cleaned = []
    for uid in users or ():
        uid = (uid or '').strip()
        if uid and uid not in cleaned:
            cleaned.append(uid)
    return tuple(cleaned)


def assign(task: Task, submitters: Optional[Iterable[str]], reviewers: Optional[Iterable[str]]) -> Task:
    """Replace the task's submitters and reviewers."""
    check_transition(task.status, TaskEvent.ASSIGN)
    submitters = _clean(submitters)
    reviewers = _clean(reviewers)
    if not submitters and not reviewers:
        raise ValidationError("no assignee")

    status = task.status
    if status is TaskStatus.DRAFT and submitters:
        status = TaskStatus.IN_PROGRESS

    log.debug(f"Assigned '{task.name}': submitters={submitters} reviewers={reviewers} ({status.value})")
    return task.model_copy(update={
        'submitters': submitters,
        'reviewers': reviewers,
        'status': status,
    })


def submit_progress(task: Task, completed: int, total: int, now: Optional[datetime] = None) -> Task:
    """
    Record progress on a task.

    Reaching completed == total approves the task straight away, even when
    reviewers are assigned. Anything less moves it to submitted for review.
    """
    check_transition(task.status, TaskEvent.SUBMIT)
    if completed < 0:
        raise ValidationError(f"completed must not be negative ({completed})")
    if total <= 0:
        raise ValidationError(f"total must be positive ({total})")
    if completed > total:
        raise ValidationError(f"completed ({completed}) must not exceed total ({total})")

    now = now or datetime.now()
    update = {
        'completed': completed,
        'total': total,
        'progress': calculate_percentage(completed, total),
    }
    if completed == total:
        update['status'] = TaskStatus.APPROVED
        update['approved_at'] = now
    else:
        update['status'] = TaskStatus.SUBMITTED
        update['submitted_at'] = now

    log.debug(f"Submitted '{task.name}' {completed}/{total} -> {update['status'].value}")
    return task.model_copy(update=update)


def review(node: ReviewedNode, approved: bool, comment: Optional[str] = None,
           now: Optional[datetime] = None) -> ReviewedNode:
    """Approve or reject a submitted task, subpackage or package; a rejection needs a comment."""
    check_transition(node.status, TaskEvent.REVIEW)
    comment = (comment or '').strip()
    if not approved and not comment:
        raise ValidationError("A rejection needs a comment")

    update = {'review_comment': comment or None}
    if approved:
        update['status'] = TaskStatus.APPROVED
        update['approved_at'] = now or datetime.now()
    else:
        update['status'] = TaskStatus.REJECTED

    log.debug(f"Reviewed '{node.name}' -> {update['status'].value}")
    return node.model_copy(update=update)


def set_reviewers(node: ReviewedNode, reviewers: Optional[Iterable[str]]) -> ReviewedNode:
    """Replace the reviewers of a subpackage or package."""
    check_transition(node.status, TaskEvent.ASSIGN)
    reviewers = _clean(reviewers)
    if not reviewers:
        raise ValidationError("no assignee")
    return node.model_copy(update={'reviewers': reviewers})


def cascade_completion(project: Project, path: Union[NodePath, str], now: Optional[datetime] = None) -> Project:
    """
    Move the ancestors of a newly approved node forward.

    Walking up from path, each parent whose children are all approved is
    submitted for review when it has reviewers and stops the walk there;
    without reviewers it is approved and the walk continues. Parents that are
    already submitted or approved are left alone.

    Returns:
        A new project (or the same one when nothing moved)
    """
    path = as_path(path)
    if require_node(project, path).status is not TaskStatus.APPROVED:
        return project

    now = now or datetime.now()
    for parent_path in path.ancestors():
        parent = require_node(project, parent_path)
        if not all(child.status is TaskStatus.APPROVED for child in parent.children):
            break
        if parent_path.node_type is NodeType.PROJECT:
            log.info(f"Every package of project {project.id} is approved")
            break
        if parent.status in (TaskStatus.SUBMITTED, TaskStatus.APPROVED):
            break

        if parent.reviewers:
            log.info(f"All children of {parent_path} approved, submitting it for review")
            project = replace_node(project, parent_path, parent.model_copy(update={
                'status': TaskStatus.SUBMITTED,
                'submitted_at': now,
            }))
            break

        log.info(f"All children of {parent_path} approved and nobody reviews it, approving")
        project = replace_node(project, parent_path, parent.model_copy(update={
            'status': TaskStatus.APPROVED,
            'approved_at': now,
        }))
    return project


class TaskLifecycle:
    """Namespace over the lifecycle transitions."""

    assign = staticmethod(assign)
    submit_progress = staticmethod(submit_progress)
    review = staticmethod(review)
    set_reviewers = staticmethod(set_reviewers)
    cascade_completion = staticmethod(cascade_completion)
    check_transition = staticmethod(check_transition)


@dataclass(frozen=True)
class TaskPermissions:
    can_assign: bool = False
    can_submit: bool = False
    can_review: bool = False


def task_permissions(task: Optional[ReviewedNode], user_id: Optional[str]) -> TaskPermissions:
    """UI affordances for the current user; security is enforced elsewhere."""
    if task is None or not user_id:
        return TaskPermissions()
    return TaskPermissions(
        can_assign=True,
        can_submit=user_id in getattr(task, "submitters", ()) and can_fire(task.status, TaskEvent.SUBMIT),
        can_review=user_id in task.reviewers and can_fire(task.status, TaskEvent.REVIEW),
    )

"""Unit tests for the task lifecycle."""

import pytest
from datetime import datetime

from wbstree.errors import InvalidTransitionError, ValidationError
from wbstree.lifecycle import (
    TRANSITIONS, TaskEvent, TaskLifecycle, TaskPermissions,
    assign, can_fire, cascade_completion, review, set_reviewers, submit_progress, task_permissions
)
from wbstree.models import Package, Project, Subpackage, Task, TaskStatus, replace_node

NOW = datetime(2024, 6, 1, 12, 0)


def _task(status=TaskStatus.DRAFT, **kwargs):
    return Task(name="Pour slab", status=status, **kwargs)


class TestTransitionTable:
    """Test which events are legal in which states."""

    def test_assign_always_allowed(self):
        assert TRANSITIONS[TaskEvent.ASSIGN] == frozenset(TaskStatus)

    def test_submit_states(self):
        assert can_fire(TaskStatus.IN_PROGRESS, TaskEvent.SUBMIT)
        assert can_fire(TaskStatus.REJECTED, TaskEvent.SUBMIT)
        assert not can_fire(TaskStatus.DRAFT, TaskEvent.SUBMIT)
        assert not can_fire(TaskStatus.SUBMITTED, TaskEvent.SUBMIT)
        assert not can_fire(TaskStatus.APPROVED, TaskEvent.SUBMIT)

    def test_review_states(self):
        assert [s for s in TaskStatus if can_fire(s, TaskEvent.REVIEW)] == [TaskStatus.SUBMITTED]


class TestAssign:
    """Test assignment."""

    def test_draft_with_submitter_starts(self):
        task = assign(_task(), ["alice"], ["bob"])
        assert task.status is TaskStatus.IN_PROGRESS
        assert task.submitters == ("alice",)
        assert task.reviewers == ("bob",)

    def test_reviewers_only_stays_draft(self):
        task = assign(_task(), [], ["bob"])
        assert task.status is TaskStatus.DRAFT
        assert task.reviewers == ("bob",)

    def test_no_assignee(self):
        with pytest.raises(ValidationError, match="no assignee"):
            assign(_task(), [" "], None)

    def test_cleans_user_ids(self):
        task = assign(_task(), [" alice ", "alice", "carol"], ["bob", "", "bob"])
        assert task.submitters == ("alice", "carol")
        assert task.reviewers == ("bob",)

    def test_replaces_assignees(self):
        task = assign(_task(TaskStatus.IN_PROGRESS, submitters=("alice",)), ["dave"], [])
        assert task.submitters == ("dave",)
        assert task.reviewers == ()

    def test_keeps_later_states(self):
        task = assign(_task(TaskStatus.APPROVED, completed=4, total=4), ["alice"], [])
        assert task.status is TaskStatus.APPROVED
        assert (task.completed, task.total) == (4, 4)

    def test_original_untouched(self):
        original = _task()
        assign(original, ["alice"], [])
        assert original.status is TaskStatus.DRAFT
        assert original.submitters == ()


class TestSubmitProgress:
    """Test progress submission."""

    def test_partial_goes_to_review(self):
        task = submit_progress(_task(TaskStatus.IN_PROGRESS), 3, 10, now=NOW)
        assert task.status is TaskStatus.SUBMITTED
        assert (task.completed, task.total, task.progress) == (3, 10, 30)
        assert task.submitted_at == NOW
        assert task.approved_at is None

    def test_complete_auto_approves(self):
        task = submit_progress(_task(TaskStatus.IN_PROGRESS, reviewers=("bob",)), 10, 10, now=NOW)
        assert task.status is TaskStatus.APPROVED
        assert task.progress == 100
        assert task.approved_at == NOW

    def test_resubmit_after_rejection(self):
        task = submit_progress(_task(TaskStatus.REJECTED, review_comment="Recount"), 4, 10, now=NOW)
        assert task.status is TaskStatus.SUBMITTED

    def test_draft_cannot_submit(self):
        with pytest.raises(InvalidTransitionError, match="Cannot submit a task in state 'draft'") as exc:
            submit_progress(_task(), 1, 2)
        assert exc.value.state is TaskStatus.DRAFT
        assert exc.value.event is TaskEvent.SUBMIT

    def test_state_checked_before_arguments(self):
        with pytest.raises(InvalidTransitionError):
            submit_progress(_task(TaskStatus.APPROVED), -1, 0)

    def test_bad_quantities(self):
        task = _task(TaskStatus.IN_PROGRESS)
        with pytest.raises(ValidationError, match="must not exceed"):
            submit_progress(task, 11, 10)
        with pytest.raises(ValidationError, match="must be positive"):
            submit_progress(task, 0, 0)
        with pytest.raises(ValidationError, match="must not be negative"):
            submit_progress(task, -1, 10)

    def test_default_timestamp(self):
        task = submit_progress(_task(TaskStatus.IN_PROGRESS), 1, 2)
        assert isinstance(task.submitted_at, datetime)


class TestReview:
    """Test review outcomes."""

    def test_approve(self):
        task = review(_task(TaskStatus.SUBMITTED, completed=3, total=10), True, now=NOW)
        assert task.status is TaskStatus.APPROVED
        assert task.approved_at == NOW
        assert task.review_comment is None
        assert (task.completed, task.total) == (3, 10)

    def test_reject_needs_comment(self):
        with pytest.raises(ValidationError, match="needs a comment"):
            review(_task(TaskStatus.SUBMITTED), False, "  ")

    def test_reject(self):
        task = review(_task(TaskStatus.SUBMITTED), False, " Photos missing ")
        assert task.status is TaskStatus.REJECTED
        assert task.review_comment == "Photos missing"

    def test_only_submitted_tasks(self):
        for status in (TaskStatus.DRAFT, TaskStatus.IN_PROGRESS, TaskStatus.APPROVED, TaskStatus.REJECTED):
            with pytest.raises(InvalidTransitionError, match="Cannot review"):
                review(_task(status), True)

    def test_full_cycle(self):
        task = TaskLifecycle.assign(_task(), ["alice"], ["bob"])
        task = TaskLifecycle.submit_progress(task, 2, 5, now=NOW)
        task = TaskLifecycle.review(task, False, "Wrong area")
        task = TaskLifecycle.submit_progress(task, 3, 5, now=NOW)
        task = TaskLifecycle.review(task, True, now=NOW)
        assert task.status is TaskStatus.APPROVED
        assert (task.completed, task.total, task.progress) == (3, 5, 60)


class TestPermissions:
    """Test per-user affordances."""

    def test_submitter(self):
        perms = task_permissions(_task(TaskStatus.IN_PROGRESS, submitters=("alice",)), "alice")
        assert perms == TaskPermissions(can_assign=True, can_submit=True, can_review=False)

    def test_reviewer(self):
        perms = task_permissions(_task(TaskStatus.SUBMITTED, reviewers=("bob",)), "bob")
        assert perms.can_review
        assert not perms.can_submit

    def test_wrong_state(self):
        perms = task_permissions(_task(TaskStatus.SUBMITTED, submitters=("alice",)), "alice")
        assert not perms.can_submit

    def test_anonymous(self):
        assert task_permissions(_task(), None) == TaskPermissions()
        assert task_permissions(None, "alice") == TaskPermissions()


def _shell(first_task=TaskStatus.APPROVED, sub_reviewers=(), pkg_reviewers=()):
    """
    q1 "Annex"
      0 Shell (package)
        0 Walls:  Blockwork (first_task), Render (approved)
        1 Roof:   Membrane (approved)
    """
    return Project(id="q1", name="Annex", packages=(
        Package(name="Shell", reviewers=pkg_reviewers, subpackages=(
            Subpackage(name="Walls", reviewers=sub_reviewers, tasks=(
                Task(name="Blockwork", status=first_task),
                Task(name="Render", status=TaskStatus.APPROVED),
            )),
            Subpackage(name="Roof", tasks=(
                Task(name="Membrane", status=TaskStatus.APPROVED),
            )),
        )),
    ))


class TestCascadeCompletion:
    """Test how approvals move subpackages and packages forward."""

    def test_not_all_children_approved(self):
        project = _shell(first_task=TaskStatus.SUBMITTED, sub_reviewers=("rita",))
        assert cascade_completion(project, "task-q1-0-0-1", now=NOW) is project

    def test_parent_with_reviewers_submitted(self):
        project = cascade_completion(_shell(sub_reviewers=("rita",)), "task-q1-0-0-0", now=NOW)
        walls = project.find_by_path("subpackage-q1-0-0")
        assert walls.status is TaskStatus.SUBMITTED
        assert walls.submitted_at == NOW
        # The package waits for the subpackage review
        assert project.find_by_path("package-q1-0").status is TaskStatus.DRAFT

    def test_parent_without_reviewers_approved_and_continues(self):
        project = _shell(pkg_reviewers=("paul",))
        project = cascade_completion(project, "task-q1-0-1-0", now=NOW)
        roof = project.find_by_path("subpackage-q1-0-1")
        assert roof.status is TaskStatus.APPROVED
        assert roof.approved_at == NOW
        # Walls is still a draft, so Shell does not move
        assert project.find_by_path("package-q1-0").status is TaskStatus.DRAFT

        project = cascade_completion(project, "task-q1-0-0-0", now=NOW)
        assert project.find_by_path("subpackage-q1-0-0").status is TaskStatus.APPROVED
        shell = project.find_by_path("package-q1-0")
        assert shell.status is TaskStatus.SUBMITTED
        assert shell.submitted_at == NOW

    def test_reviewed_subpackage_continues(self):
        project = cascade_completion(_shell(sub_reviewers=("rita",)), "task-q1-0-0-0", now=NOW)
        project = cascade_completion(project, "task-q1-0-1-0", now=NOW)
        walls = review(project.find_by_path("subpackage-q1-0-0"), True, now=NOW)
        project = cascade_completion(replace_node(project, "subpackage-q1-0-0", walls), "subpackage-q1-0-0", now=NOW)
        assert project.find_by_path("package-q1-0").status is TaskStatus.APPROVED

    def test_already_submitted_parent_untouched(self):
        project = cascade_completion(_shell(sub_reviewers=("rita",)), "task-q1-0-0-0", now=NOW)
        again = cascade_completion(project, "task-q1-0-0-1", now=datetime(2030, 1, 1))
        assert again.find_by_path("subpackage-q1-0-0").submitted_at == NOW

    def test_unapproved_node_is_a_no_op(self):
        project = _shell(first_task=TaskStatus.IN_PROGRESS)
        assert cascade_completion(project, "task-q1-0-0-0") is project

    def test_quantities_untouched(self):
        project = cascade_completion(_shell(), "task-q1-0-0-0", now=NOW)
        assert project.find_by_path("package-q1-0").total == 0
        assert project.find_by_path("task-q1-0-0-0").status is TaskStatus.APPROVED


class TestMidLevelReview:
    """Test reviewers and review on subpackages and packages."""

    def test_set_reviewers(self):
        sub = set_reviewers(Subpackage(name="Walls"), [" rita", "rita", "sam"])
        assert sub.reviewers == ("rita", "sam")
        with pytest.raises(ValidationError, match="no assignee"):
            set_reviewers(sub, [])

    def test_review_submitted_subpackage(self):
        sub = Subpackage(name="Walls", status=TaskStatus.SUBMITTED, reviewers=("rita",))
        rejected = review(sub, False, "Cracks at level 2")
        assert rejected.status is TaskStatus.REJECTED
        assert rejected.review_comment == "Cracks at level 2"

    def test_review_draft_package(self):
        with pytest.raises(InvalidTransitionError, match="Cannot review a task in state 'draft'"):
            review(Package(name="Shell"), True)

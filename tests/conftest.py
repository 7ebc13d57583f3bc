"""Shared fixtures: a small two-package project."""

import pytest

from wbstree.aggregate import aggregate
from wbstree.models import Package, Project, Subpackage, Task, TaskStatus


def build_project() -> Project:
    """
    p1 "Tower"
      0 Structure
        0 Foundations: Excavation 5/10, Pile caps 0/20
        1 Framing:     Steel foo beams 3/4
      1 Finishes
        0 Paint (no tasks, 2/8)
        1 Tiling:      Floor tiles 0/0 (draft)

    Stored quantities above the tasks are left at zero; roll it up to get
    a consistent project.
    """
    return Project(
        id="p1",
        name="Tower",
        packages=(
            Package(name="Structure", subpackages=(
                Subpackage(name="Foundations", tasks=(
                    Task(name="Excavation", completed=5, total=10, status=TaskStatus.SUBMITTED,
                         submitters=("alice",), reviewers=("bob",)),
                    Task(name="Pile caps", completed=0, total=20, status=TaskStatus.IN_PROGRESS,
                         submitters=("alice",)),
                )),
                Subpackage(name="Framing", tasks=(
                    Task(name="Steel foo beams", completed=3, total=4, status=TaskStatus.REJECTED,
                         submitters=("carol",), reviewers=("bob",), review_comment="Recount"),
                )),
            )),
            Package(name="Finishes", subpackages=(
                Subpackage(name="Paint", completed=2, total=8),
                Subpackage(name="Tiling", tasks=(
                    Task(name="Floor tiles"),
                )),
            )),
        ),
    )


@pytest.fixture
def project() -> Project:
    return build_project()


@pytest.fixture
def rolled(project) -> Project:
    return aggregate(project)

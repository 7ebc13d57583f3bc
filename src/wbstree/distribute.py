"""
Splitting a parent quantity across its children.

A distribution produces one allocation per child whose ``allocated`` values
sum exactly to the parent total. Nothing is applied until the whole request
validates; ``apply_distribution`` then writes it into a new project, which the
caller must roll up again.
"""

from enum import Enum
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from .aggregate import rollup_node
from .errors import ValidationError
from .logs import get_logger
from .models import NodePath, NodeType, Project, QuantityNode, as_path, replace_node, require_node

log = get_logger("distribute")


class DistributionStrategy(Enum):
    EQUAL = "equal"
    PROPORTIONAL = "proportional"
    MANUAL = "manual"
    REMAINING = "remaining"


class Allocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(description="Position of the child under its parent")
    name: str = Field(description="Name of the child")
    allocated: int = Field(description="Units given to the child")
    completed: Optional[int] = Field(default=None, description="Completed units; None keeps the child's own value")


class DistributionRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    parent_total: int = Field(alias="parentTotal", description="Target total of the parent")
    distributions: List[Allocation] = Field(default_factory=list, description="One allocation per child")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


def children_allocations(parent: QuantityNode) -> List[Allocation]:
    """The parent's current split, one allocation per child."""
    return [
        Allocation(index=i, name=child.name, allocated=child.total, completed=child.completed)
        for i, child in enumerate(parent.children)
    ]


def _equal(total: int, count: int) -> List[int]:
    if count == 0:
        return []
    base, remainder = divmod(total, count)
    return [base + (1 if i < remainder else 0) for i in range(count)]


def _proportional(total: int, weights: Sequence[int]) -> List[int]:
    # Largest remainder: floor every quota, hand leftover units to the biggest fractions
    weight_sum = sum(weights)
    quotas = [total * w // weight_sum for w in weights]
    remainders = [total * w % weight_sum for w in weights]
    leftover = total - sum(quotas)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        quotas[i] += 1
    return quotas


def distribute(parent_total: int,
               children: Sequence[Allocation],
               strategy: Union[DistributionStrategy, str] = DistributionStrategy.EQUAL,
               manual: Optional[Sequence[int]] = None) -> DistributionRequest:
    """
    Split parent_total across children.

    Args:
        parent_total: Target total for the parent
        children: Current allocation of every child (see children_allocations)
        strategy: How to split
        manual: Allocations in child order, required for the manual strategy

    Returns:
        A validated DistributionRequest whose allocations sum to parent_total

    Raises:
        ValidationError: if the split is impossible or invalid
    """
    strategy = DistributionStrategy(strategy)
    children = list(children)
    if parent_total < 0:
        raise ValidationError(f"Parent total must not be negative: {parent_total}")
    if any(c.allocated < 0 for c in children):
        raise ValidationError("Existing allocations must not be negative")

    if strategy is DistributionStrategy.EQUAL:
        amounts = _equal(parent_total, len(children))
    elif strategy is DistributionStrategy.PROPORTIONAL:
        weights = [c.allocated for c in children]
        if sum(weights) > 0:
            amounts = _proportional(parent_total, weights)
        else:
            amounts = _equal(parent_total, len(children))
    elif strategy is DistributionStrategy.REMAINING:
        amounts = [c.allocated for c in children]
        if amounts:
            amounts[0] += parent_total - sum(amounts)
    else:
        if manual is None:
            raise ValidationError("Manual distribution needs allocations")
        amounts = list(manual)
        if len(amounts) != len(children):
            raise ValidationError(f"Expected {len(children)} manual allocations, got {len(amounts)}")

    request = DistributionRequest(
        parent_total=parent_total,
        distributions=[
            Allocation(index=c.index, name=c.name, allocated=amount, completed=c.completed)
            for c, amount in zip(children, amounts)
        ],
    )
    validate_request(request, children)
    log.debug(f"{strategy.value} split of {parent_total} over {len(children)} children: {amounts}")
    return request


def validate_request(request: DistributionRequest, children: Optional[Sequence[Allocation]] = None) -> None:
    """
    Check a request against the distribution rules.

    When children is given, the request must cover each of them exactly once
    and a missing ``completed`` falls back to the child's current value.
    """
    if request.parent_total < 0:
        raise ValidationError(f"Parent total must not be negative: {request.parent_total}")
    if not request.distributions and request.parent_total > 0:
        raise ValidationError("No children to distribute to")

    indices = [a.index for a in request.distributions]
    if len(set(indices)) != len(indices):
        raise ValidationError(f"Duplicate allocation index in {indices}")

    current = {c.index: c for c in children} if children is not None else None
    if current is not None:
        unknown = sorted(set(indices) - set(current))
        if unknown:
            raise ValidationError(f"Unknown child index {unknown}")
        missing = sorted(set(current) - set(indices))
        if missing:
            raise ValidationError(f"Missing allocation for child index {missing}")

    for a in request.distributions:
        if a.allocated < 0:
            raise ValidationError(f"{a.name}: allocation must not be negative ({a.allocated})")
        completed = a.completed
        if completed is None and current is not None:
            completed = current[a.index].completed
        if completed is not None and completed < 0:
            raise ValidationError(f"{a.name}: completed must not be negative ({completed})")
        if completed is not None and completed > a.allocated:
            raise ValidationError(f"{a.name}: allocated {a.allocated} is less than completed {completed}")

    allocated = sum(a.allocated for a in request.distributions)
    if allocated != request.parent_total:
        raise ValidationError(f"Allocations sum to {allocated}, expected {request.parent_total}")


def apply_distribution(project: Project, path: Union[NodePath, str], request: DistributionRequest) -> Project:
    """
    Write a distribution into a package or subpackage.

    A child that has children of its own only accepts its rolled-up quantity;
    any other value would be overwritten by the next roll-up.

    Returns:
        A new project; roll it up before rendering
    """
    path = as_path(path)
    parent = require_node(project, path)
    if path.node_type not in (NodeType.PACKAGE, NodeType.SUBPACKAGE):
        raise ValidationError(f"Quantities are distributed from packages and subpackages, not a {path.node_type.value}")

    validate_request(request, children_allocations(parent))

    children = list(parent.children)
    completed_sum = 0
    for a in request.distributions:
        child = children[a.index]
        completed = child.completed if a.completed is None else a.completed
        if child.children:
            rolled = rollup_node(child)
            if a.allocated != rolled.total or completed != rolled.completed:
                raise ValidationError(
                    f"{child.name} has its own children; it can only take their sum "
                    f"({rolled.completed}/{rolled.total})")
            children[a.index] = rolled
        else:
            children[a.index] = child.with_quantities(completed, a.allocated)
        completed_sum += completed

    updated = parent.with_children(children).with_quantities(completed_sum, request.parent_total)
    log.info(f"Distributed {request.parent_total} units under {path}")
    return replace_node(project, path, updated)

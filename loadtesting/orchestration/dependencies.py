"""
Dependency ordering for batch sub-tests.

A sub-test may list the ids of sub-tests that must complete before it starts.
The dependencies form a DAG; unknown ids and cycles are rejected before
anything runs.
"""

import heapq
from typing import Dict, List, Sequence, Tuple

from ..core.exceptions import ValidationError
from ..core.models import BatchTestItem


def _order_key(item: BatchTestItem, index: int) -> Tuple[int, int]:
    return (item.execution_order or 0, index)


def _graph(items: Sequence[BatchTestItem]) -> Tuple[Dict[str, int], Dict[str, List[str]]]:
    ids = {item.id for item in items}
    indegree = {item.id: 0 for item in items}
    dependents: Dict[str, List[str]] = {item.id: [] for item in items}

    for item in items:
        for dependency in dict.fromkeys(item.dependencies):
            if dependency == item.id:
                raise ValidationError(
                    f"Test '{item.id}' depends on itself", field_name="dependencies"
                )
            if dependency not in ids:
                raise ValidationError(
                    f"Test '{item.id}' depends on unknown test '{dependency}'",
                    field_name="dependencies",
                )
            indegree[item.id] += 1
            dependents[dependency].append(item.id)
    return indegree, dependents


def _cycle_error(items: Sequence[BatchTestItem], placed: int) -> ValidationError:
    return ValidationError(
        f"Dependency cycle between batch tests ({len(items) - placed} test(s) unresolved)",
        field_name="dependencies",
    )


def execution_order(items: Sequence[BatchTestItem]) -> List[BatchTestItem]:
    """
    Stable topological order.

    Among the tests whose dependencies are satisfied, the lowest
    execution_order runs first, ties broken by declaration order. Without
    dependencies this is simply a stable sort on execution_order.
    """
    indegree, dependents = _graph(items)
    positions = {item.id: index for index, item in enumerate(items)}
    by_id = {item.id: item for item in items}

    ready = [
        (_order_key(item, index), item.id)
        for index, item in enumerate(items)
        if indegree[item.id] == 0
    ]
    heapq.heapify(ready)

    ordered: List[BatchTestItem] = []
    while ready:
        _, item_id = heapq.heappop(ready)
        ordered.append(by_id[item_id])
        for dependent in dependents[item_id]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(
                    ready, (_order_key(by_id[dependent], positions[dependent]), dependent)
                )

    if len(ordered) != len(items):
        raise _cycle_error(items, len(ordered))
    return ordered


def dependency_waves(items: Sequence[BatchTestItem]) -> List[List[BatchTestItem]]:
    """
    Group tests into waves that may run concurrently.

    Wave k holds the tests whose dependencies all sit in earlier waves; each
    wave keeps declaration order.
    """
    indegree, dependents = _graph(items)

    waves: List[List[BatchTestItem]] = []
    current = [item for item in items if indegree[item.id] == 0]
    placed = 0
    while current:
        waves.append(current)
        placed += len(current)
        unlocked = set()
        for item in current:
            for dependent in dependents[item.id]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    unlocked.add(dependent)
        current = [item for item in items if item.id in unlocked]

    if placed != len(items):
        raise _cycle_error(items, placed)
    return waves


def validate_dependencies(items: Sequence[BatchTestItem]) -> None:
    """Raise ValidationError on unknown ids or cycles."""
    execution_order(items)
